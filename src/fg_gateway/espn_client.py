"""Read-only client for the ESPN fantasy league endpoint.

Every fetch returns an `UpstreamOutcome`; HTTP failures, timeouts and
undecodable bodies are classified into outcome kinds instead of raised.
Transport retries are disabled so rate limits are never retried through.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import requests
from pydantic import ValidationError

from fg_common.errors import ErrorCode

from .http_client import HttpClient, HttpClientConfig
from .models import EspnLeague, UpstreamCredentials
from .seasons import game_id, to_upstream_season_year

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://lm-api-reads.fantasy.espn.com/apis/v3"
DEFAULT_TIMEOUT_S = 7.0

BASIC_INFO_VIEWS = ("mStandings", "mTeam", "mSettings")
LEAGUE_INFO_VIEWS = ("mSettings", "mTeam", "mStatus")
STANDINGS_VIEWS = ("mStandings", "mTeam")
MATCHUP_VIEWS = ("mMatchupScore", "mScoreboard", "mTeam")
ROSTER_VIEWS = ("mRoster", "mTeam")
FREE_AGENT_VIEWS = ("kona_player_info",)

FREE_AGENT_STATUSES = ("FREEAGENT", "WAIVERS")
FREE_AGENT_DEFAULT_LIMIT = 25
FREE_AGENT_MAX_LIMIT = 100

# position filter -> lineup slot ids, per sport
POSITION_SLOTS: dict[str, dict[str, tuple[int, ...]]] = {
    "baseball": {
        "C": (0,), "1B": (1,), "2B": (2,), "3B": (3,), "SS": (4,), "OF": (5,),
        "DH": (11,), "UTIL": (12,), "P": (13,), "SP": (14,), "RP": (15,),
        "ALL": (0, 1, 2, 3, 4, 5, 11, 12, 13, 14, 15),
    },
    "football": {
        "QB": (0,), "RB": (2,), "WR": (4,), "TE": (6,), "K": (17,), "D/ST": (16,), "DST": (16,), "FLEX": (23,),
        "ALL": (0, 2, 4, 6, 16, 17, 23),
    },
    "basketball": {
        "PG": (0,), "SG": (1,), "SF": (2,), "PF": (3,), "C": (4,), "G": (5,), "F": (6,), "UTIL": (11,),
        "ALL": tuple(range(12)),
    },
    "hockey": {
        "C": (0,), "LW": (1,), "RW": (2,), "F": (3,), "D": (4,), "G": (5,), "UTIL": (6,),
        "ALL": tuple(range(7)),
    },
}


def positions(sport: str) -> list[str]:
    return list(POSITION_SLOTS.get(sport, {"ALL": ()}))


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return FREE_AGENT_DEFAULT_LIMIT
    return min(max(1, limit), FREE_AGENT_MAX_LIMIT)


def free_agent_filter(sport: str, position: str, limit: int) -> str:
    """`X-Fantasy-Filter` value selecting unrostered players, most owned first."""
    slots = POSITION_SLOTS.get(sport, {})
    slot_ids = slots.get(position) or slots.get("ALL", ())
    return json.dumps(
        {
            "players": {
                "filterStatus": {"value": list(FREE_AGENT_STATUSES)},
                "filterSlotIds": {"value": list(slot_ids)},
                "sortPercOwned": {"sortPriority": 1, "sortAsc": False},
                "sortDraftRanks": {"sortPriority": 100, "sortAsc": True, "value": "STANDARD"},
                "limit": limit,
            }
        },
        separators=(",", ":"),
    )


class OutcomeKind(str, enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    TIMEOUT = "timeout"
    ERROR = "error"
    INVALID = "invalid"


_TRANSIENT = {OutcomeKind.TIMEOUT, OutcomeKind.ERROR, OutcomeKind.INVALID}


@dataclass(frozen=True)
class UpstreamOutcome:
    kind: OutcomeKind
    status: int | None = None
    league: EspnLeague | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def is_transient(self) -> bool:
        return self.kind in _TRANSIENT

    @property
    def error_code(self) -> str | None:
        if self.kind is OutcomeKind.OK:
            return None
        if self.kind is OutcomeKind.AUTH_FAILED:
            return ErrorCode.ESPN_ACCESS_DENIED if self.status == 403 else ErrorCode.ESPN_COOKIES_EXPIRED
        return {
            OutcomeKind.NOT_FOUND: ErrorCode.ESPN_NOT_FOUND,
            OutcomeKind.RATE_LIMITED: ErrorCode.ESPN_RATE_LIMIT,
            OutcomeKind.TIMEOUT: ErrorCode.ESPN_TIMEOUT,
            OutcomeKind.INVALID: ErrorCode.ESPN_INVALID_RESPONSE,
        }.get(self.kind, ErrorCode.ESPN_API_ERROR)


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:200].lower()
    return head.startswith("<!doctype") or "<html" in head


def classify_response(resp: requests.Response) -> UpstreamOutcome:
    status = resp.status_code
    if status in (401, 403):
        return UpstreamOutcome(OutcomeKind.AUTH_FAILED, status, message="ESPN rejected the stored credentials")
    if status == 404:
        return UpstreamOutcome(OutcomeKind.NOT_FOUND, status, message="League not found")
    if status == 429:
        return UpstreamOutcome(OutcomeKind.RATE_LIMITED, status, message="ESPN rate limit reached")
    if not 200 <= status < 300:
        return UpstreamOutcome(OutcomeKind.ERROR, status, message=f"ESPN returned HTTP {status}")

    try:
        payload = resp.json()
    except ValueError:
        # ESPN answers with a login page when the cookies are stale
        if _looks_like_html(resp.text):
            return UpstreamOutcome(OutcomeKind.AUTH_FAILED, 401, message="ESPN returned a login page")
        return UpstreamOutcome(OutcomeKind.INVALID, status, message="ESPN response was not JSON")

    try:
        league = EspnLeague.model_validate(payload)
    except ValidationError as e:
        return UpstreamOutcome(
            OutcomeKind.INVALID, status, message=f"unexpected ESPN payload ({e.error_count()} errors)"
        )
    return UpstreamOutcome(OutcomeKind.OK, status, league=league)


class EspnClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        http: HttpClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = http or HttpClient(config=HttpClientConfig(retries=0))
        self.timeout_s = timeout_s

    def league_url(self, sport: str, league_id: str, season_year: int) -> str:
        year = to_upstream_season_year(sport, season_year)
        return f"{self.base_url}/games/{game_id(sport)}/seasons/{year}/segments/0/leagues/{league_id}"

    def fetch_league(
        self,
        *,
        sport: str,
        league_id: str,
        season_year: int,
        credentials: UpstreamCredentials,
        views: Sequence[str],
        extra_params: Sequence[tuple[str, Any]] = (),
        extra_headers: Mapping[str, str] | None = None,
    ) -> UpstreamOutcome:
        url = self.league_url(sport, league_id, season_year)
        params = [("view", v) for v in views] + list(extra_params)
        headers = {
            "Cookie": credentials.cookie_header(),
            "Accept": "application/json",
            "X-Fantasy-Source": "kona",
            "X-Fantasy-Platform": "kona-web-2.0.0",
        }
        headers.update(extra_headers or {})
        try:
            resp = self.http.get(url, headers=headers, params=params, timeout=self.timeout_s)
        except requests.Timeout:
            return UpstreamOutcome(OutcomeKind.TIMEOUT, 504, message=f"ESPN did not answer within {self.timeout_s:g}s")
        except requests.RequestException as e:
            return UpstreamOutcome(OutcomeKind.ERROR, None, message=f"ESPN request failed: {type(e).__name__}")

        outcome = classify_response(resp)
        if not outcome.ok:
            logger.info(
                "upstream %s league=%s season=%s -> %s (status=%s)",
                sport, league_id, season_year, outcome.kind.value, outcome.status,
            )
        return outcome

    def basic_league_info(
        self, *, sport: str, league_id: str, season_year: int, credentials: UpstreamCredentials
    ) -> UpstreamOutcome:
        return self.fetch_league(
            sport=sport,
            league_id=league_id,
            season_year=season_year,
            credentials=credentials,
            views=BASIC_INFO_VIEWS,
        )
