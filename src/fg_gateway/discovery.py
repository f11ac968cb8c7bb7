"""Backward season discovery for a stored league.

Starting at the current calendar year the prober asks the upstream for each
earlier season of the league, persisting every season that exists, until it
runs into consecutive misses, the floor year, a rate limit or the store's
league limit. Probes are sequential and spaced by a fixed delay.
"""

from __future__ import annotations

import datetime as _dt
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from fg_common.errors import ErrorCode, typed_error
from fg_common.telemetry import log_event

from .espn_client import EspnClient, OutcomeKind, UpstreamOutcome
from .models import (
    MIN_SEASON_YEAR,
    DiscoveredSeason,
    DiscoveryResult,
    StoredLeague,
    UpstreamCredentials,
    VerifiedIdentity,
)
from .seasons import same_sport
from .store_client import AddSeasonStatus, LeagueStoreClient, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveryConfig:
    min_year: int = MIN_SEASON_YEAR
    max_consecutive_misses: int = 2
    mandatory_years: int = 2
    probe_delay_s: float = 0.2
    retry_delay_s: float = 1.0

    def __post_init__(self) -> None:
        if self.min_year < MIN_SEASON_YEAR:
            raise ValueError(f"min_year must be >= {MIN_SEASON_YEAR}, stored leagues reject older seasons")


class DiscoveryRejected(Exception):
    """Discovery could not start; carries the HTTP status for the onboarding route."""

    def __init__(self, code: str, message: str, status: int) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_payload(self) -> dict:
        return typed_error(self.code, self.message)


class SeasonProber:
    def __init__(
        self,
        sport: str,
        store: LeagueStoreClient,
        espn: EspnClient,
        *,
        config: DiscoveryConfig | None = None,
        sleep: Callable[[float], None] | None = None,
        current_year: Callable[[], int] = lambda: _dt.date.today().year,
    ) -> None:
        self.sport = sport
        self.store = store
        self.espn = espn
        self.config = config or DiscoveryConfig()
        self.sleep = sleep or time.sleep
        self.current_year = current_year

    def run(
        self,
        league_id: str,
        identity: VerifiedIdentity,
        authorization: str | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> DiscoveryResult:
        """Load credentials and stored seasons for `league_id`, then discover."""
        try:
            credentials = self.store.fetch_credentials(identity, authorization)
        except StoreError as e:
            if e.is_auth_failure:
                raise DiscoveryRejected(ErrorCode.AUTH_FAILED, "Store rejected the session", 401) from e
            raise
        if credentials is None:
            raise DiscoveryRejected(ErrorCode.CREDENTIALS_MISSING, "No ESPN credentials stored", 404)

        fetch = self.store.fetch_leagues(identity, authorization)
        if fetch.auth_failed:
            raise DiscoveryRejected(ErrorCode.AUTH_FAILED, "Store rejected the session", 401)
        if not fetch.ok:
            raise StoreError(fetch.error or "league fetch failed", status=fetch.status)

        stored = [lg for lg in fetch.leagues if lg.league_id == league_id and same_sport(lg.sport, self.sport)]
        base = next((lg for lg in stored if lg.team_id), None)
        if base is None:
            raise DiscoveryRejected(
                ErrorCode.TEAM_ID_MISSING, f"League {league_id} has no team selected; pick your team first", 400
            )

        return self.discover(
            league_id,
            base.team_id or "",
            identity,
            credentials,
            authorization=authorization,
            existing_years=[lg.season_year for lg in stored if lg.season_year],
            cancel=cancel,
        )

    def discover(
        self,
        league_id: str,
        base_team_id: str,
        identity: VerifiedIdentity,
        credentials: UpstreamCredentials,
        *,
        authorization: str | None = None,
        existing_years: Iterable[int] = (),
        cancel: threading.Event | None = None,
    ) -> DiscoveryResult:
        cfg = self.config
        start_year = self.current_year()
        existing = set(existing_years)
        result = DiscoveryResult(league_id=league_id, sport=self.sport, start_year=start_year)
        misses = 0
        probed = 0
        t0 = time.perf_counter()

        for year in range(start_year, cfg.min_year - 1, -1):
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break
            if year == cfg.min_year:
                result.min_year_reached = True
            if year in existing:
                result.skipped += 1
                continue

            mandatory = year > start_year - cfg.mandatory_years
            if not mandatory and misses >= cfg.max_consecutive_misses:
                break

            if probed:
                self.sleep(cfg.probe_delay_s)
            probed += 1

            outcome = self._probe(league_id, year, credentials)
            if outcome.is_transient:
                logger.info("probe %s/%s transient (%s); retrying once", league_id, year, outcome.kind.value)
                self.sleep(cfg.retry_delay_s)
                outcome = self._probe(league_id, year, credentials)
                if outcome.is_transient:
                    result.error = typed_error(
                        ErrorCode.ESPN_ERROR, outcome.message or "ESPN request failed", details={"year": year}
                    )["error"]
                    break

            if outcome.kind is OutcomeKind.RATE_LIMITED:
                result.rate_limited = True
                break

            if outcome.kind is OutcomeKind.AUTH_FAILED:
                if result.discovered or existing:
                    misses += 1
                    continue
                result.error = typed_error(
                    ErrorCode.AUTH_FAILED, "ESPN rejected the stored credentials", details={"year": year}
                )["error"]
                break

            if outcome.kind is OutcomeKind.NOT_FOUND or outcome.league is None or not outcome.league.teams:
                misses += 1
                continue

            misses = 0
            season = self._record(outcome, year, base_team_id)
            result.discovered.append(season)
            if self._persist(league_id, season, identity, authorization) is AddSeasonStatus.LIMIT_EXCEEDED:
                result.limit_exceeded = True
                break

        ms = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "discovery league=%s sport=%s found=%s skipped=%d rate_limited=%s limit=%s error=%s",
            league_id, self.sport, result.discovered_years, result.skipped,
            result.rate_limited, result.limit_exceeded, (result.error or {}).get("code"),
        )
        log_event(
            "discovery",
            "discover_seasons",
            {"league_id": league_id, "found": result.discovered_years, "probes": probed},
            ok=result.error is None,
            ms=ms,
            sport=self.sport,
        )
        return result

    def _probe(self, league_id: str, year: int, credentials: UpstreamCredentials) -> UpstreamOutcome:
        return self.espn.basic_league_info(
            sport=self.sport, league_id=league_id, season_year=year, credentials=credentials
        )

    @staticmethod
    def _record(outcome: UpstreamOutcome, year: int, base_team_id: str) -> DiscoveredSeason:
        league = outcome.league
        assert league is not None
        team = league.team(base_team_id)
        return DiscoveredSeason(
            season_year=year,
            league_name=league.league_name,
            team_count=len(league.teams),
            team_id=base_team_id or None,
            team_name=team.display_name if team else None,
        )

    def _persist(
        self,
        league_id: str,
        season: DiscoveredSeason,
        identity: VerifiedIdentity,
        authorization: str | None,
    ) -> AddSeasonStatus:
        record = StoredLeague(
            league_id=league_id,
            sport=self.sport,
            season_year=season.season_year,
            team_id=season.team_id,
            league_name=season.league_name,
            team_name=season.team_name,
        )
        status = self.store.add_season(identity, authorization, league=record)
        if status is AddSeasonStatus.EXISTS and season.team_id:
            if not self.store.patch_team(identity, authorization, league=record):
                # non-fatal: the season stays stored without a team
                logger.warning("attaching team %s to %s/%s failed", season.team_id, league_id, season.season_year)
        return status
