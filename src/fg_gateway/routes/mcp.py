from __future__ import annotations

from flask import Blueprint, request

from ..dispatcher import JsonRpcDispatcher
from ..http import json_with_headers, rpc_response


def make_mcp_blueprint(dispatcher: JsonRpcDispatcher, *, name: str) -> Blueprint:
    """JSON-RPC endpoint plus the legacy REST adapter for one sport family."""
    bp = Blueprint(name, __name__)

    @bp.get("/mcp")
    def mcp_descriptor():
        return json_with_headers(dispatcher.describe())

    @bp.post("/mcp")
    def mcp_rpc():
        return rpc_response(dispatcher.handle(request.get_data(), request.headers))

    @bp.get("/mcp/tools/list")
    def legacy_tools_list():
        return rpc_response(dispatcher.legacy_list())

    @bp.post("/mcp/tools/call")
    def legacy_tools_call():
        return rpc_response(dispatcher.legacy_call(request.get_data(), request.headers))

    return bp
