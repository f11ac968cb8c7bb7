from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import g, jsonify, make_response, request

from .dispatcher import RpcResponse

EXPOSE_HEADERS = "WWW-Authenticate, X-Request-Id"


def json_with_headers(
    payload: Any,
    *,
    status: int = 200,
    extra_headers: Optional[Mapping[str, str]] = None,
):
    """Return JSON with request-id and CORS headers; `None` payload gives an empty body."""
    if payload is None:
        resp = make_response("", status)
    else:
        resp = jsonify(payload)
        resp.status_code = status

    rid = getattr(g, "request_id", None)
    if rid is not None:
        resp.headers["X-Request-Id"] = rid

    resp.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
    resp.headers["Vary"] = "Origin"
    resp.headers["Access-Control-Expose-Headers"] = EXPOSE_HEADERS

    for k, v in (extra_headers or {}).items():
        resp.headers[k] = v
    if status == 200:
        resp.headers.setdefault("Cache-Control", "no-store")
    return resp


def rpc_response(out: RpcResponse):
    return json_with_headers(out.body, status=out.status, extra_headers=out.headers)


def api_error(
    code: str,
    message: str,
    *,
    status: int = 400,
    details: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
):
    """Return a consistent error envelope via json_with_headers()."""
    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = dict(details)
    return json_with_headers(payload, status=status, extra_headers=headers)
