from __future__ import annotations

import datetime as _dt
from zoneinfo import ZoneInfo

import pytest

from fg_gateway.seasons import (
    current_season_year,
    game_id,
    normalize_sport,
    same_sport,
    to_upstream_season_year,
)

NY = ZoneInfo("America/New_York")


@pytest.mark.parametrize(
    "sport, month, expected",
    [
        ("baseball", 1, 2024),
        ("baseball", 2, 2025),
        ("football", 6, 2024),
        ("football", 7, 2025),
        ("basketball", 7, 2024),
        ("basketball", 8, 2025),
        ("hockey", 12, 2025),
    ],
)
def test_rollover(sport, month, expected):
    now = _dt.datetime(2025, month, 15, 12, tzinfo=NY)
    assert current_season_year(sport, now) == expected


def test_rollover_uses_new_york_wall_clock():
    # 03:30 UTC on Feb 1st is still January 31st in New York
    utc = _dt.datetime(2025, 2, 1, 3, 30, tzinfo=_dt.timezone.utc)
    assert current_season_year("baseball", utc.astimezone(NY)) == 2024


def test_synonyms_and_case():
    assert normalize_sport(" MLB ") == "baseball"
    assert normalize_sport("NFL") == "football"
    assert same_sport("nba", "Basketball")
    assert not same_sport("nhl", "football")
    assert not same_sport(None, None)


def test_upstream_season_year():
    assert to_upstream_season_year("baseball", 2024) == 2024
    assert to_upstream_season_year("football", 2024) == 2024
    assert to_upstream_season_year("basketball", 2024) == 2025
    assert to_upstream_season_year("hockey", 2024) == 2025


def test_game_ids():
    assert [game_id(s) for s in ("football", "baseball", "basketball", "hockey")] == ["ffl", "flb", "fba", "fhl"]
    with pytest.raises(ValueError):
        game_id("curling")
