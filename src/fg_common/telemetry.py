from __future__ import annotations

import datetime as _dt
import json
import logging
from pathlib import Path
from typing import Any

from fg_common.context import get_request_id
from fg_common.errors import REDACT_TOKEN
from fg_config.settings import env_flag, telemetry_dir

logger = logging.getLogger(__name__)

TELEMETRY_FILE = "gateway-telemetry.jsonl"

_SECRET_KEYS = {
    "authorization",
    "access_token",
    "token",
    "swid",
    "s2",
    "espn_s2",
    "cookie",
    "primary_secret",
    "secondary_secret",
}

_PII_KEYS = {
    "subject",
    "subject_id",
    "user_id",
    "email",
    "owner_email",
}


def _redact_secrets(obj: Any) -> Any:
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.strip().lower() in _SECRET_KEYS:
                if isinstance(v, str) and v.strip().lower().startswith("bearer "):
                    out[k] = "Bearer " + REDACT_TOKEN
                else:
                    out[k] = REDACT_TOKEN
            else:
                out[k] = _redact_secrets(v)
        return out
    if isinstance(obj, list):
        return [_redact_secrets(x) for x in obj]
    return obj


def _redact_pii(obj: Any) -> Any:
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.strip().lower() in _PII_KEYS:
                out[k] = REDACT_TOKEN
            else:
                out[k] = _redact_pii(v)
        return out
    if isinstance(obj, list):
        return [_redact_pii(x) for x in obj]
    return obj


def redact(obj: Any) -> Any:
    return _redact_pii(_redact_secrets(obj))


def _telemetry_path(telemetry_file: str) -> Path:
    return telemetry_dir() / telemetry_file


def log_event(
    kind: str,
    name: str,
    args: dict | None = None,
    ok: bool = True,
    ms: int = 0,
    *,
    sport: str | None = None,
    corr_id: str | None = None,
    telemetry_file: str = TELEMETRY_FILE,
) -> None:
    """
    Append one JSONL telemetry record for a tool call or discovery run.

    Disabled with FG_DISABLE_TELEMETRY=1. The target directory is resolved on
    every call so tests can point FG_TELEMETRY_DIR at a tmp dir.
    """
    if env_flag("FG_DISABLE_TELEMETRY"):
        return

    rid = get_request_id()
    rec = {
        "ts": _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z"),
        "kind": kind,
        "name": name,
        "sport": sport,
        "request_id": rid,
        "corr_id": corr_id or rid,
        "args": {} if args is None else dict(args),
        "ok": bool(ok),
        "ms": int(ms),
    }

    p = _telemetry_path(telemetry_file)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8") as f:
            f.write(json.dumps(redact(rec), ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        # telemetry must never break a tool call
        logger.warning("telemetry write to %s failed: %s", p, e)


def telemetry_recent(n: int = 50, telemetry_file: str = TELEMETRY_FILE) -> dict:
    """
    Return last N telemetry records (bounded) with secrets + PII redacted.
    """
    p = _telemetry_path(telemetry_file)
    if not p.exists():
        return {"records": []}

    try:
        n_int = int(n)
    except (TypeError, ValueError):
        n_int = 50
    n_int = max(1, min(n_int, 200))

    lines = p.read_text(encoding="utf-8").splitlines()[-n_int:]

    out = []
    for line in lines:
        try:
            rec = json.loads(line)
        except json.JSONDecodeError:
            continue
        # redact again on read, older files may predate a key
        out.append(redact(rec))

    return {"records": out}
