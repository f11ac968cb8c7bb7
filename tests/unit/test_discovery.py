from __future__ import annotations

import threading

import pytest

from fg_gateway.discovery import DiscoveryConfig, DiscoveryRejected, SeasonProber
from fg_gateway.espn_client import OutcomeKind, UpstreamOutcome
from fg_gateway.models import MIN_SEASON_YEAR, VerifiedIdentity
from fg_gateway.store_client import AddSeasonStatus
from tests.helpers.fakes import (
    AUTH_FAILED,
    CREDS,
    NOT_FOUND,
    RATE_LIMITED,
    SERVER_ERROR,
    FakeEspn,
    FakeStore,
    espn_league,
    league,
    ok,
)

ME = VerifiedIdentity(subject_id="user_2abcdefghijk", issuer="https://auth.example.test")
TIMEOUT = UpstreamOutcome(OutcomeKind.TIMEOUT, 504, message="ESPN did not answer within 7s")


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def prober(store, espn, *, year=2025, config=None, sleep=None) -> SeasonProber:
    return SeasonProber(
        "baseball",
        store,
        espn,
        config=config or DiscoveryConfig(),
        sleep=sleep or SleepRecorder(),
        current_year=lambda: year,
    )


def found(year: int, n_teams: int = 4) -> UpstreamOutcome:
    return ok(espn_league(555, n_teams=n_teams, season=year, name=f"Dynasty {year}"))


def test_walks_back_until_two_consecutive_misses():
    espn = FakeEspn({2024: found(2024), 2023: found(2023), 2022: found(2022)})
    store = FakeStore()
    sleep = SleepRecorder()

    result = prober(store, espn, sleep=sleep).discover("555", "3", ME, CREDS)

    assert result.discovered_years == [2024, 2023, 2022]
    assert espn.fetched_years == [2025, 2024, 2023, 2022, 2021, 2020]
    assert store.calls_named("add_season") == [2024, 2023, 2022]
    assert result.rate_limited is False
    assert result.min_year_reached is False
    assert result.error is None
    # one delay between each pair of fetches
    assert sleep.calls == [0.2] * 5


def test_discovered_season_details():
    espn = FakeEspn({2025: found(2025, n_teams=4)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    season = result.discovered[0]
    assert season.season_year == 2025
    assert season.league_name == "Dynasty 2025"
    assert season.team_count == 4
    assert season.team_id == "3"
    assert season.team_name == "City3 Club3"


def test_mandatory_window_is_fetched_even_after_misses():
    espn = FakeEspn()
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert espn.fetched_years == [2025, 2024]
    assert result.discovered == []


def test_zero_team_season_counts_as_miss():
    espn = FakeEspn({2025: found(2025, n_teams=0), 2024: found(2024, n_teams=0)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.discovered == []
    assert espn.fetched_years == [2025, 2024]


def test_existing_seasons_are_skipped_not_fetched():
    espn = FakeEspn({2023: found(2023)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS, existing_years=[2024])

    assert result.skipped == 1
    assert 2024 not in espn.fetched_years
    assert result.discovered_years == [2023]


def test_conflict_triggers_exactly_one_team_patch():
    espn = FakeEspn({2025: found(2025), 2024: found(2024)})
    store = FakeStore(add_statuses={2024: AddSeasonStatus.EXISTS})

    prober(store, espn).discover("555", "3", ME, CREDS)

    assert store.calls_named("patch_team") == [2024]


def test_failed_patch_is_not_fatal():
    espn = FakeEspn({2025: found(2025), 2024: found(2024), 2023: found(2023)})
    store = FakeStore(add_statuses={2024: AddSeasonStatus.EXISTS}, patch_ok=False)

    result = prober(store, espn).discover("555", "3", ME, CREDS)

    assert result.discovered_years == [2025, 2024, 2023]
    assert result.error is None


def test_rate_limit_halts_and_keeps_partial_results():
    espn = FakeEspn({2025: found(2025), 2024: found(2024), 2023: RATE_LIMITED, 2022: found(2022)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.rate_limited is True
    assert result.discovered_years == [2025, 2024]
    assert espn.fetched_years == [2025, 2024, 2023]


def test_limit_exceeded_stops_discovery():
    espn = FakeEspn({2025: found(2025), 2024: found(2024), 2023: found(2023)})
    store = FakeStore(add_statuses={2024: AddSeasonStatus.LIMIT_EXCEEDED})

    result = prober(store, espn).discover("555", "3", ME, CREDS)

    assert result.limit_exceeded is True
    assert result.discovered_years == [2025, 2024]
    assert 2023 not in espn.fetched_years


def test_auth_failure_without_known_seasons_aborts():
    espn = FakeEspn({2025: AUTH_FAILED, 2024: found(2024)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.error["code"] == "AUTH_FAILED"
    assert espn.fetched_years == [2025]


def test_auth_failure_after_a_known_season_is_a_miss():
    espn = FakeEspn({2025: found(2025), 2024: AUTH_FAILED, 2023: AUTH_FAILED, 2022: found(2022)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.error is None
    assert result.discovered_years == [2025]
    assert espn.fetched_years == [2025, 2024, 2023]


def test_auth_failure_with_stored_season_is_a_miss():
    espn = FakeEspn({2025: AUTH_FAILED})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS, existing_years=[2019])

    assert result.error is None


def test_transient_error_is_retried_once():
    espn = FakeEspn({2025: [SERVER_ERROR, found(2025)]})
    sleep = SleepRecorder()

    result = prober(FakeStore(), espn, sleep=sleep).discover("555", "3", ME, CREDS)

    assert result.discovered_years == [2025]
    assert espn.fetched_years[:2] == [2025, 2025]
    assert sleep.calls[0] == 1.0


def test_transient_error_twice_aborts():
    espn = FakeEspn({2025: found(2025), 2024: [TIMEOUT, TIMEOUT]})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.error["code"] == "ESPN_ERROR"
    assert result.discovered_years == [2025]
    assert espn.fetched_years == [2025, 2024, 2024]


def test_retry_outcome_is_classified_normally():
    espn = FakeEspn({2025: [TIMEOUT, RATE_LIMITED]})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.rate_limited is True
    assert result.error is None


def test_floor_year_is_reported():
    espn = FakeEspn(default=found(2000))
    result = prober(FakeStore(), espn, config=DiscoveryConfig(min_year=2022)).discover("555", "3", ME, CREDS)

    assert result.min_year_reached is True
    assert result.discovered_years == [2025, 2024, 2023, 2022]


def test_floor_cannot_go_below_storable_seasons():
    with pytest.raises(ValueError):
        DiscoveryConfig(min_year=1999)
    assert DiscoveryConfig().min_year == MIN_SEASON_YEAR


def test_cancellation_stops_the_loop():
    cancel = threading.Event()
    cancel.set()
    espn = FakeEspn({2025: found(2025)})

    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS, cancel=cancel)

    assert result.cancelled is True
    assert espn.calls == []


def test_not_found_misses_reset_after_a_hit():
    espn = FakeEspn({2025: NOT_FOUND, 2024: found(2024), 2023: NOT_FOUND, 2022: found(2022)})
    result = prober(FakeStore(), espn).discover("555", "3", ME, CREDS)

    assert result.discovered_years == [2024, 2022]
    assert espn.fetched_years == [2025, 2024, 2023, 2022, 2021, 2020]


# --- run() -------------------------------------------------------------------


def test_run_uses_stored_team_and_seasons():
    store = FakeStore([league("baseball", "555", 2025, team_id="3"), league("football", "555", 2024)])
    espn = FakeEspn({2024: found(2024)})

    result = prober(store, espn).run("555", ME)

    assert result.skipped == 1
    assert 2025 not in espn.fetched_years
    assert result.discovered_years == [2024]
    assert result.discovered[0].team_id == "3"


def test_run_requires_credentials():
    store = FakeStore([league("baseball", "555", 2025)], credentials=None)
    with pytest.raises(DiscoveryRejected) as exc:
        prober(store, FakeEspn()).run("555", ME)
    assert exc.value.code == "CREDENTIALS_MISSING"
    assert exc.value.status == 404


def test_run_requires_a_base_team():
    store = FakeStore([league("baseball", "555", 2025, team_id=None)])
    with pytest.raises(DiscoveryRejected) as exc:
        prober(store, FakeEspn()).run("555", ME)
    assert exc.value.code == "TEAM_ID_MISSING"
    assert exc.value.status == 400


def test_run_maps_store_auth_failure():
    store = FakeStore(status=401, error="unauthorized")
    with pytest.raises(DiscoveryRejected) as exc:
        prober(store, FakeEspn()).run("555", ME)
    assert exc.value.code == "AUTH_FAILED"
