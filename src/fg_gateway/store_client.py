"""HTTP client for the credential/league store.

Each call identifies the caller with `X-User-Id` and forwards the original
`Authorization` header when one is available. Expected outcomes (no leagues,
no credentials, conflicts, limits) are returned as values; only unexpected
store failures raise `StoreError`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

import requests
from pydantic import ValidationError

from fg_common.context import get_request_id
from fg_common.errors import ErrorCode

from .http_client import HttpClient
from .models import StoredLeague, UpstreamCredentials, VerifiedIdentity

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = (401, 403)


class StoreError(Exception):
    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code

    @property
    def is_auth_failure(self) -> bool:
        return self.status in AUTH_FAILURE_STATUSES


@dataclass(frozen=True)
class LeagueFetch:
    leagues: list[StoredLeague] = field(default_factory=list)
    status: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def auth_failed(self) -> bool:
        return self.status in AUTH_FAILURE_STATUSES


class AddSeasonStatus(str, enum.Enum):
    CREATED = "created"
    EXISTS = "exists"
    LIMIT_EXCEEDED = "limit_exceeded"
    FAILED = "failed"


def _json_or_empty(resp: requests.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class LeagueStoreClient:
    def __init__(self, base_url: str, *, http: HttpClient | None = None, timeout_s: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = http or HttpClient()
        self.timeout_s = timeout_s

    def _headers(self, identity: VerifiedIdentity, authorization: str | None) -> dict[str, str]:
        headers = {
            "X-User-Id": identity.subject_id,
            "X-Correlation-Id": get_request_id(),
            "Accept": "application/json",
        }
        if authorization:
            headers["Authorization"] = authorization
        return headers

    def fetch_leagues(self, identity: VerifiedIdentity, authorization: str | None = None) -> LeagueFetch:
        try:
            resp = self.http.get(
                f"{self.base_url}/leagues",
                headers=self._headers(identity, authorization),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            return LeagueFetch(error=f"store unreachable: {type(e).__name__}")

        if resp.status_code != 200:
            return LeagueFetch(status=resp.status_code, error=f"store returned HTTP {resp.status_code}")

        body = _json_or_empty(resp)
        leagues: list[StoredLeague] = []
        for raw in body.get("leagues") or []:
            try:
                leagues.append(StoredLeague.model_validate(raw))
            except ValidationError as e:
                logger.warning("dropping malformed stored league (%d validation errors)", e.error_count())
        return LeagueFetch(leagues=leagues, status=resp.status_code)

    def fetch_credentials(
        self, identity: VerifiedIdentity, authorization: str | None = None
    ) -> UpstreamCredentials | None:
        """Upstream cookies for the caller, or None when none are stored."""
        try:
            resp = self.http.get(
                f"{self.base_url}/credentials/espn",
                headers=self._headers(identity, authorization),
                params={"raw": "true"},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise StoreError(f"store unreachable: {type(e).__name__}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise StoreError(f"credential lookup failed: HTTP {resp.status_code}", status=resp.status_code)

        creds = _json_or_empty(resp).get("credentials")
        if not creds:
            return None
        try:
            return UpstreamCredentials.model_validate(creds)
        except ValidationError:
            # incomplete cookie pair is the same as none
            logger.warning("stored upstream credentials are incomplete")
            return None

    def add_season(
        self,
        identity: VerifiedIdentity,
        authorization: str | None,
        *,
        league: StoredLeague,
    ) -> AddSeasonStatus:
        try:
            resp = self.http.request(
                "POST",
                f"{self.base_url}/leagues/add",
                headers=self._headers(identity, authorization),
                json=league.to_wire(),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("add season %s/%s failed: %s", league.league_id, league.season_year, type(e).__name__)
            return AddSeasonStatus.FAILED

        if resp.status_code in (200, 201):
            return AddSeasonStatus.CREATED
        if resp.status_code == 409:
            return AddSeasonStatus.EXISTS
        if resp.status_code == 400 and _json_or_empty(resp).get("code") == ErrorCode.LIMIT_EXCEEDED:
            return AddSeasonStatus.LIMIT_EXCEEDED

        logger.warning(
            "add season %s/%s rejected: HTTP %s", league.league_id, league.season_year, resp.status_code
        )
        return AddSeasonStatus.FAILED

    def patch_team(
        self,
        identity: VerifiedIdentity,
        authorization: str | None,
        *,
        league: StoredLeague,
    ) -> bool:
        """Attach the caller's team to an already stored season."""
        body: dict[str, Any] = {
            "teamId": league.team_id,
            "sport": league.sport,
            "seasonYear": league.season_year,
            "teamName": league.team_name,
            "leagueName": league.league_name,
        }
        try:
            resp = self.http.request(
                "PATCH",
                f"{self.base_url}/leagues/{league.league_id}/team",
                headers=self._headers(identity, authorization),
                json={k: v for k, v in body.items() if v is not None},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("patch team for %s/%s failed: %s", league.league_id, league.season_year, type(e).__name__)
            return False
        return 200 <= resp.status_code < 300
