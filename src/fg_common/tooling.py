from __future__ import annotations

import functools
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from fg_common.context import get_request_id
from fg_common.telemetry import TELEMETRY_FILE, log_event

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared helpers for tool-call instrumentation
# ---------------------------------------------------------------------------


_REDACTION_KEYS = {"authorization", "token", "access_token", "swid", "s2", "espn_s2", "cookie"}


def sanitize_args_for_log(args: dict | None) -> dict:
    """Remove obvious secrets from args (telemetry layer also redacts)."""
    out: dict[str, Any] = {}
    for k, v in (args or {}).items():
        out[str(k)] = "***redacted***" if str(k).lower() in _REDACTION_KEYS else v
    return out


def mask_subject(subject_id: str | None) -> str:
    """Shorten a subject id for log lines: first 8 chars plus an ellipsis."""
    if not subject_id:
        return "anonymous"
    return subject_id[:8] + "..."


@dataclass(frozen=True)
class InstrumentConfig:
    kind: str
    sport: str
    telemetry_file: str = TELEMETRY_FILE


def instrument_tool_call(cfg: InstrumentConfig):
    """Decorator for `execute(tool_name, arguments, identity, ...)`-shaped callables.

    Emits start/success/error log lines with a masked subject and one telemetry
    record per call. Exceptions are logged and re-raised; the caller decides how
    to surface them.
    """

    def decorator(fn: Callable[..., Any]):
        fn_sig = inspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any):
            bound = fn_sig.bind_partial(*args, **kwargs)
            tool_name = str(bound.arguments.get("tool_name", "unknown"))
            identity = bound.arguments.get("identity")
            subject = mask_subject(getattr(identity, "subject_id", None))
            corr_id = get_request_id()

            args_for_log: dict[str, Any] = {
                "args": sanitize_args_for_log(bound.arguments.get("arguments")),
                "subject": subject,
            }
            logger.info("tool call start tool=%s sport=%s user=%s", tool_name, cfg.sport, subject)

            t0 = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                ms = int((time.perf_counter() - t0) * 1000)
                logger.error(
                    "tool call error tool=%s sport=%s user=%s ms=%s: %s",
                    tool_name, cfg.sport, subject, ms, e,
                )
                args_for_log["error"] = {"code": "internal", "message": str(e)}
                log_event(cfg.kind, tool_name, args_for_log, ok=False, ms=ms, sport=cfg.sport,
                          corr_id=corr_id, telemetry_file=cfg.telemetry_file)
                raise

            ms = int((time.perf_counter() - t0) * 1000)
            ok = not getattr(result, "is_error", False) and not getattr(result, "auth_error", False)
            if ok:
                logger.info("tool call ok tool=%s sport=%s user=%s ms=%s", tool_name, cfg.sport, subject, ms)
            else:
                code = getattr(result, "error_code", None) or ("auth" if getattr(result, "auth_error", False) else None)
                args_for_log["error"] = {"code": code}
                logger.warning(
                    "tool call failed tool=%s sport=%s user=%s ms=%s code=%s",
                    tool_name, cfg.sport, subject, ms, code,
                )

            log_event(cfg.kind, tool_name, args_for_log, ok=ok, ms=ms, sport=cfg.sport,
                      corr_id=corr_id, telemetry_file=cfg.telemetry_file)
            return result

        wrapper.__signature__ = fn_sig  # type: ignore[attr-defined]
        return wrapper

    return decorator
