from __future__ import annotations

import logging
from typing import Mapping

from flask import Blueprint, request

from fg_common.errors import ErrorCode

from ..discovery import DiscoveryRejected, SeasonProber
from ..dispatcher import JsonRpcDispatcher
from ..http import api_error, json_with_headers
from ..seasons import normalize_sport
from ..store_client import StoreError
from ..token_verifier import AuthError

logger = logging.getLogger(__name__)

_ERROR_STATUS = {ErrorCode.AUTH_FAILED: 401, ErrorCode.ESPN_ERROR: 502}


def make_onboarding_blueprint(
    *,
    dispatchers: Mapping[str, JsonRpcDispatcher],
    probers: Mapping[str, SeasonProber],
    default_sport: str,
) -> Blueprint:
    bp = Blueprint("onboarding", __name__)

    def _discover(sport: str | None):
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return api_error("bad_request", "Body must be a JSON object with leagueId")

        requested = sport or body.get("sport")
        if requested is not None and not isinstance(requested, str):
            return api_error("bad_request", "sport must be a string")
        sport = normalize_sport(requested) or default_sport
        prober = probers.get(sport)
        if prober is None:
            return api_error("bad_request", f"Unsupported sport: {sport}")

        raw_league_id = body.get("leagueId")
        if isinstance(raw_league_id, bool) or not isinstance(raw_league_id, (str, int, type(None))):
            return api_error("bad_request", "leagueId must be a string")
        league_id = str(raw_league_id or "").strip()
        if not league_id:
            return api_error("bad_request", "leagueId is required")

        dispatcher = dispatchers[sport]
        identity = dispatcher.authenticate(request.headers)
        if identity is None:
            return api_error(
                ErrorCode.UNAUTHORIZED, "Authentication required", status=401,
                headers={"WWW-Authenticate": dispatcher.www_authenticate(invalid=False)},
            )
        if isinstance(identity, AuthError):
            return api_error(
                ErrorCode.AUTH_FAILED, "Token is invalid or expired", status=401,
                details={"reason": identity.reason.value},
                headers={"WWW-Authenticate": dispatcher.www_authenticate(invalid=True)},
            )

        try:
            result = prober.run(league_id, identity, request.headers.get("Authorization"))
        except DiscoveryRejected as e:
            return json_with_headers(e.to_payload(), status=e.status)
        except StoreError as e:
            logger.error("discovery for league %s failed on store access: %s", league_id, e)
            return api_error("store_unavailable", "League store is unavailable", status=502)

        status = _ERROR_STATUS.get((result.error or {}).get("code"), 200)
        return json_with_headers(result.to_wire(), status=status)

    @bp.post("/onboarding/discover-seasons")
    def discover_seasons():
        return _discover(None)

    @bp.post("/<sport>/onboarding/discover-seasons")
    def sport_discover_seasons(sport: str):
        return _discover(sport)

    return bp
