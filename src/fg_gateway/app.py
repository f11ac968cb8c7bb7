from __future__ import annotations

import logging
from typing import Mapping

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from fg_common.context import bind_request_id, new_request_id, reset_request_id
from fg_config.settings import GatewaySettings, init_runtime

from .discovery import DiscoveryConfig, SeasonProber
from .dispatcher import JsonRpcDispatcher
from .espn_client import EspnClient
from .executor import ToolExecutor
from .http import api_error
from .routes import make_mcp_blueprint, make_metadata_blueprint, make_onboarding_blueprint
from .store_client import LeagueStoreClient
from .token_verifier import KeySetCache, TokenVerifier

logger = logging.getLogger(__name__)


def create_app(
    settings: GatewaySettings | None = None,
    *,
    verifier: TokenVerifier | None = None,
    store: LeagueStoreClient | None = None,
    espn: EspnClient | None = None,
    probers: Mapping[str, SeasonProber] | None = None,
) -> Flask:
    """Flask application factory.

    Collaborators default to real HTTP clients built from `settings`; tests
    pass fakes. The key-set cache lives as long as the app.
    """
    settings = settings or GatewaySettings.from_env()
    app = Flask(__name__)
    app.config["GATEWAY_SETTINGS"] = settings

    verifier = verifier or TokenVerifier(
        cache=KeySetCache(ttl_s=settings.jwks_ttl_s),
        allowed_issuers=settings.allowed_issuers,
        allow_any_issuer=settings.dev_mode,
    )
    store = store or LeagueStoreClient(settings.store_url, timeout_s=settings.store_timeout_s)
    espn = espn or EspnClient(settings.espn_base_url, timeout_s=settings.upstream_timeout_s)

    if settings.dev_mode:
        logger.warning("FG_DEV_MODE is on: X-User-Id is accepted without a token")
    elif not settings.allowed_issuers:
        logger.error("FG_ALLOWED_ISSUERS is empty: every bearer token will be rejected as untrusted")

    dispatchers = {
        sport: JsonRpcDispatcher(
            sport,
            ToolExecutor(sport, store, espn),
            verifier,
            resource_metadata_url=settings.resource_metadata_url(sport),
            server_name=settings.server_name,
            server_version=settings.server_version,
            dev_mode=settings.dev_mode,
        )
        for sport in settings.sports
    }
    if probers is None:
        discovery_config = DiscoveryConfig(
            min_year=settings.discovery_min_year,
            max_consecutive_misses=settings.discovery_max_misses,
            mandatory_years=settings.discovery_mandatory_years,
            probe_delay_s=settings.discovery_probe_delay_s,
            retry_delay_s=settings.discovery_retry_delay_s,
        )
        probers = {sport: SeasonProber(sport, store, espn, config=discovery_config) for sport in settings.sports}

    # --- middleware (request id, preflight, CORS) -----------------------
    @app.before_request
    def ensure_request_id():
        rid = (
            request.headers.get("X-Request-Id")
            or request.headers.get("X-Correlation-Id")
            or new_request_id()
        )
        g.request_id = rid
        g.request_id_token = bind_request_id(rid)
        if request.method == "OPTIONS":
            return app.make_response(("", 204))
        return None

    @app.teardown_request
    def clear_request_id(_exc: BaseException | None) -> None:
        token = g.pop("request_id_token", None)
        if token is not None:
            reset_request_id(token)

    @app.after_request
    def add_cors_headers(resp):
        resp.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        resp.headers.setdefault(
            "Access-Control-Allow-Headers",
            "Authorization, Content-Type, X-Request-Id, X-Correlation-Id, Mcp-Session-Id, Mcp-Protocol-Version",
        )
        rid = g.get("request_id")
        if rid and "X-Request-Id" not in resp.headers:
            resp.headers["X-Request-Id"] = rid
        resp.headers.setdefault("Access-Control-Allow-Origin", request.headers.get("Origin", "*"))
        return resp

    # --- routes --------------------------------------------------------------
    app.register_blueprint(make_metadata_blueprint(settings))

    default = dispatchers.get(settings.default_sport)
    if default is not None:
        app.register_blueprint(make_mcp_blueprint(default, name="mcp"))
    for sport, dispatcher in dispatchers.items():
        app.register_blueprint(make_mcp_blueprint(dispatcher, name=f"mcp_{sport}"), url_prefix=f"/{sport}")

    app.register_blueprint(
        make_onboarding_blueprint(dispatchers=dispatchers, probers=probers, default_sport=settings.default_sport)
    )

    @app.errorhandler(Exception)
    def unhandled(e: Exception):
        if isinstance(e, HTTPException):
            return api_error(e.name.lower().replace(" ", "_"), e.description or e.name, status=e.code or 500)
        logger.exception("unhandled error on %s %s", request.method, request.path)
        return api_error("internal", "Internal server error", status=500)

    return app


def main() -> None:
    init_runtime()
    settings = GatewaySettings.from_env()
    if not settings.allowed_issuers and not settings.dev_mode:
        raise SystemExit("FG_ALLOWED_ISSUERS must list the trusted token issuers (or set FG_DEV_MODE=1)")
    app = create_app(settings)
    logger.info("starting gateway on http://%s:%s (sports: %s)", settings.host, settings.port, ", ".join(settings.sports))
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
