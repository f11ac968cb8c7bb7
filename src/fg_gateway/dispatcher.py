"""JSON-RPC 2.0 tool-calling endpoint and the legacy REST adapter.

`initialize`, `tools/list` and `ping` are public. `tools/call` requires a
verified bearer token: a missing token gets the initial 401 challenge
(`error="unauthorized"`), a rejected one the `invalid_token` challenge. Both
carry the protected-resource metadata URL so clients can start OAuth.
Every other outcome is a well-formed JSON-RPC response with HTTP 200.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from mcp import types
from pydantic import ValidationError

from fg_common.errors import ErrorCode, typed_error
from fg_common.tooling import InstrumentConfig, instrument_tool_call, mask_subject

from .executor import ToolExecutor, render_content
from .models import ToolCallRequest, ToolCallResult, VerifiedIdentity
from .token_verifier import AuthError, TokenVerifier
from .tools import list_tools_payload

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
AUTH_REQUIRED = -32001
WWW_AUTHENTICATE_META_KEY = "mcp/www_authenticate"
DEV_IDENTITY_ISSUER = "dev-mode"


@dataclass(frozen=True)
class RpcResponse:
    status: int
    body: dict | None
    headers: dict[str, str] = field(default_factory=dict)


class _ProtocolError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _error(request_id: Any, code: int, message: str, *, data: Any = None, meta: dict | None = None) -> dict:
    err: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    body: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": err}
    if meta:
        body["_meta"] = meta
    return body


def _result(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def _describe(e: ValidationError) -> str:
    first = e.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ())) or "params"
    return f"{where}: {first.get('msg', 'invalid')}"


def call_tool_result(result: ToolCallResult) -> dict:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=render_content(result.content))],
        isError=result.is_error,
    ).model_dump(by_alias=True, exclude_none=True)


class JsonRpcDispatcher:
    def __init__(
        self,
        sport: str,
        executor: ToolExecutor,
        verifier: TokenVerifier,
        *,
        resource_metadata_url: str,
        server_name: str = "fantasy-league-gateway",
        server_version: str = "0.1.0",
        dev_mode: bool = False,
    ) -> None:
        self.sport = sport
        self.executor = executor
        self.verifier = verifier
        self.resource_metadata_url = resource_metadata_url
        self.server_name = server_name
        self.server_version = server_version
        self.dev_mode = dev_mode
        self._execute: Callable[..., ToolCallResult] = instrument_tool_call(
            InstrumentConfig(kind="tool", sport=sport)
        )(executor.execute)

    # --- descriptor / handshake ---------------------------------------------

    def describe(self) -> dict:
        return {
            "name": f"{self.server_name}-{self.sport}",
            "version": self.server_version,
            "description": f"ESPN Fantasy {self.sport.capitalize()} tools over JSON-RPC",
            "protocol": "jsonrpc-2.0",
            "capabilities": {"tools": {}},
            "resourceMetadata": self.resource_metadata_url,
        }

    def _initialize(self, params: dict) -> dict:
        requested = params.get("protocolVersion")
        return types.InitializeResult(
            protocolVersion=requested if isinstance(requested, str) and requested else types.LATEST_PROTOCOL_VERSION,
            capabilities=types.ServerCapabilities(tools=types.ToolsCapability()),
            serverInfo=types.Implementation(name=f"{self.server_name}-{self.sport}", version=self.server_version),
        ).model_dump(by_alias=True, exclude_none=True)

    # --- authentication -----------------------------------------------------

    def authenticate(self, headers: Mapping[str, str]) -> VerifiedIdentity | AuthError | None:
        """None means no credentials were presented at all."""
        authorization = headers.get("Authorization")
        if authorization:
            return self.verifier.verify(authorization)
        if self.dev_mode:
            user_id = (headers.get("X-User-Id") or "").strip()
            if user_id:
                logger.warning("dev mode: accepting X-User-Id for user=%s", mask_subject(user_id))
                return VerifiedIdentity(subject_id=user_id, issuer=DEV_IDENTITY_ISSUER)
        return None

    def www_authenticate(self, *, invalid: bool) -> str:
        header = f'Bearer resource_metadata="{self.resource_metadata_url}"'
        return header + ', error="invalid_token"' if invalid else header

    def _challenge(self, request_id: Any, *, invalid: bool, reason: str | None = None) -> RpcResponse:
        header = self.www_authenticate(invalid=invalid)
        if invalid:
            meta_value = (
                f'Bearer resource_metadata="{self.resource_metadata_url}", '
                'error="invalid_token", error_description="Token is invalid or expired"'
            )
            message = "Authentication failed: token is invalid or expired"
        else:
            meta_value = (
                f'Bearer resource_metadata="{self.resource_metadata_url}", '
                'error="unauthorized", error_description="Authentication required"'
            )
            message = "Authentication required. Please authorize to access your fantasy leagues."

        data: dict[str, Any] = {"resource_metadata": self.resource_metadata_url}
        if reason:
            data["reason"] = reason
        body = _error(
            request_id,
            AUTH_REQUIRED,
            message,
            data=data,
            meta={WWW_AUTHENTICATE_META_KEY: [meta_value]},
        )
        return RpcResponse(401, body, {"WWW-Authenticate": header})

    # --- JSON-RPC -----------------------------------------------------------

    def handle(self, raw_body: bytes | str, headers: Mapping[str, str]) -> RpcResponse:
        try:
            payload = json.loads(raw_body or b"")
        except ValueError:
            return RpcResponse(200, _error(None, types.PARSE_ERROR, "Parse error"))

        if not isinstance(payload, dict):
            return RpcResponse(200, _error(None, types.INVALID_REQUEST, "Invalid Request"))

        request_id = payload.get("id")
        method = payload.get("method")
        if not isinstance(method, str):
            return RpcResponse(200, _error(request_id, types.INVALID_REQUEST, "Invalid Request: method must be a string"))
        if payload.get("jsonrpc") != JSONRPC_VERSION:
            return RpcResponse(200, _error(request_id, types.INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'"))

        if method.startswith("notifications/") and "id" not in payload:
            return RpcResponse(202, None)

        params = payload.get("params")
        if params is None:
            params = {}

        try:
            if method == "initialize":
                return RpcResponse(200, _result(request_id, self._initialize(params if isinstance(params, dict) else {})))
            if method == "tools/list":
                return RpcResponse(200, _result(request_id, {"tools": list_tools_payload(self.sport)}))
            if method == "ping":
                return RpcResponse(200, _result(request_id, {}))
            if method == "tools/call":
                return self._tools_call(request_id, params, headers)
        except _ProtocolError as e:
            return RpcResponse(200, _error(request_id, e.code, e.message))

        return RpcResponse(200, _error(request_id, types.METHOD_NOT_FOUND, f"Method not found: {method}"))

    def _tools_call(self, request_id: Any, params: Any, headers: Mapping[str, str]) -> RpcResponse:
        # authentication is decided before params are looked at
        identity = self.authenticate(headers)
        if identity is None:
            return self._challenge(request_id, invalid=False)
        if isinstance(identity, AuthError):
            logger.info("token rejected: %s", identity.reason.value)
            return self._challenge(request_id, invalid=True, reason=identity.reason.value)

        try:
            call = ToolCallRequest.model_validate(params)
        except ValidationError as e:
            raise _ProtocolError(types.INVALID_PARAMS, f"Invalid params: {_describe(e)}") from e

        result = self.run_tool(call.tool_name, call.arguments, identity, headers.get("Authorization"))
        if result.auth_error:
            return self._challenge(request_id, invalid=True, reason="session_rejected")
        return RpcResponse(200, _result(request_id, call_tool_result(result)))

    def run_tool(
        self,
        name: str,
        arguments: dict,
        identity: VerifiedIdentity,
        authorization: str | None,
    ) -> ToolCallResult:
        """Execute through the instrumented executor; faults become error results."""
        try:
            return self._execute(name, arguments, identity, authorization)
        except Exception as e:
            logger.exception("tool %s raised", name)
            return ToolCallResult(content=f"Tool execution failed: {e}", is_error=True, error_code="internal")

    # --- legacy REST adapter ------------------------------------------------

    def legacy_list(self) -> RpcResponse:
        return RpcResponse(200, {"tools": list_tools_payload(self.sport)})

    def legacy_call(self, raw_body: bytes | str, headers: Mapping[str, str]) -> RpcResponse:
        identity = self.authenticate(headers)
        if identity is None:
            return RpcResponse(
                401,
                typed_error(ErrorCode.UNAUTHORIZED, "Authentication required"),
                {"WWW-Authenticate": self.www_authenticate(invalid=False)},
            )
        if isinstance(identity, AuthError):
            return RpcResponse(
                401,
                typed_error(ErrorCode.AUTH_FAILED, "Token is invalid or expired", details={"reason": identity.reason.value}),
                {"WWW-Authenticate": self.www_authenticate(invalid=True)},
            )

        try:
            body = json.loads(raw_body or b"")
        except ValueError:
            return RpcResponse(400, typed_error("bad_request", "Body must be JSON"))
        try:
            call = ToolCallRequest.model_validate(body)
        except ValidationError as e:
            return RpcResponse(400, typed_error("bad_request", f"Body must be {{tool, arguments}}: {_describe(e)}"))

        result = self.run_tool(call.tool_name, call.arguments, identity, headers.get("Authorization"))
        if result.auth_error:
            return RpcResponse(
                401,
                typed_error(ErrorCode.AUTH_FAILED, "Token is invalid or expired"),
                {"WWW-Authenticate": self.www_authenticate(invalid=True)},
            )
        return RpcResponse(200, {"content": result.content, "isError": result.is_error})
