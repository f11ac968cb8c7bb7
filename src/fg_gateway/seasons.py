"""Sport naming and season-year rules shared by the executor and the prober."""

from __future__ import annotations

import datetime as _dt
from zoneinfo import ZoneInfo

SEASON_TIMEZONE = "America/New_York"

# upstream game ids
GAME_IDS = {
    "football": "ffl",
    "baseball": "flb",
    "basketball": "fba",
    "hockey": "fhl",
}

SPORT_SYNONYMS = {
    "mlb": "baseball",
    "nfl": "football",
    "nba": "basketball",
    "nhl": "hockey",
}

# month (1-12) in which the new season becomes the default
ROLLOVER_MONTHS = {
    "baseball": 2,
    "football": 7,
    "basketball": 8,
    "hockey": 8,
}

# seasons that span two calendar years are keyed by their END year upstream
_END_YEAR_KEYED = {"basketball", "hockey"}


def normalize_sport(value: str | None) -> str | None:
    if not value:
        return None
    s = value.strip().lower()
    return SPORT_SYNONYMS.get(s, s)


def same_sport(a: str | None, b: str | None) -> bool:
    na, nb = normalize_sport(a), normalize_sport(b)
    return na is not None and na == nb


def now_in_season_tz() -> _dt.datetime:
    return _dt.datetime.now(ZoneInfo(SEASON_TIMEZONE))


def current_season_year(sport: str, now: _dt.datetime | None = None) -> int:
    """Default season for `sport` at `now`; before the rollover month it is last year's."""
    now = now or now_in_season_tz()
    rollover = ROLLOVER_MONTHS.get(normalize_sport(sport) or "", 1)
    return now.year if now.month >= rollover else now.year - 1


def to_upstream_season_year(sport: str, season_year: int) -> int:
    if normalize_sport(sport) in _END_YEAR_KEYED:
        return season_year + 1
    return season_year


def game_id(sport: str) -> str:
    gid = GAME_IDS.get(normalize_sport(sport) or "")
    if gid is None:
        raise ValueError(f"unsupported sport: {sport!r}")
    return gid
