from __future__ import annotations

from flask import Blueprint, request

from fg_common.telemetry import telemetry_recent
from fg_config.settings import GatewaySettings

from ..http import api_error, json_with_headers
from ..tools import SECURITY_SCHEMES


def make_metadata_blueprint(settings: GatewaySettings) -> Blueprint:
    bp = Blueprint("metadata", __name__)
    scopes = SECURITY_SCHEMES[0]["scopes"]

    def _resource_metadata(sport: str | None) -> dict:
        base = settings.public_base_url.rstrip("/")
        return {
            "resource": f"{base}/{sport}/mcp" if sport else f"{base}/mcp",
            "authorization_servers": settings.authorization_servers,
            "bearer_methods_supported": ["header"],
            "scopes_supported": scopes,
        }

    @bp.get("/.well-known/oauth-protected-resource")
    def protected_resource():
        return json_with_headers(_resource_metadata(None))

    @bp.get("/<sport>/.well-known/oauth-protected-resource")
    def sport_protected_resource(sport: str):
        if sport not in settings.sports:
            return api_error("not_found", f"Unknown sport: {sport}", status=404)
        return json_with_headers(_resource_metadata(sport))

    @bp.get("/health")
    def health():
        return json_with_headers(
            {
                "status": "ok",
                "service": settings.server_name,
                "version": settings.server_version,
                "sports": list(settings.sports),
            }
        )

    @bp.get("/telemetry/recent")
    def recent_telemetry():
        # redacted, but still operator data: only served in dev mode
        if not settings.dev_mode:
            return api_error("not_found", "Not found", status=404)
        return json_with_headers(telemetry_recent(request.args.get("n", 50)))

    return bp
