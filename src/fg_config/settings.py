from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Oldest season ESPN serves; stored leagues and discovery walks share this floor.
MIN_SEASON_YEAR = 2000


def _find_repo_root(start: Path) -> Optional[Path]:
    """
    Walk upward until we find pyproject.toml or .git.
    """
    start = start.resolve()
    for p in (start, *start.parents):
        if (p / "pyproject.toml").exists() or (p / ".git").exists():
            return p
    return None


@lru_cache(maxsize=1)
def repo_root() -> Path:
    """Best-effort repository root discovery.

    Order of precedence:
      1) FG_REPO_ROOT (explicit override)
      2) walk upward from current working directory
      3) walk upward from this module file's directory
    """
    explicit = os.getenv("FG_REPO_ROOT")
    if explicit:
        p = Path(explicit).expanduser().resolve()
        if not p.is_dir():
            raise RuntimeError(f"FG_REPO_ROOT does not exist or is not a directory: {p}")
        return p

    root = _find_repo_root(Path.cwd())
    if root:
        return root

    here_dir = Path(__file__).resolve().parent
    root = _find_repo_root(here_dir)
    if root:
        return root

    # repo/src/fg_config/settings.py
    return here_dir.parents[1]


@lru_cache(maxsize=1)
def load_env_once() -> Optional[Path]:
    """
    Load dotenv exactly once. Precedence:
      1) FG_ENV_FILE (explicit path)
      2) repo-root/.env
      3) repo-root/config/.env
    """
    explicit = os.getenv("FG_ENV_FILE")
    candidates = []

    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.append(repo_root() / ".env")
    candidates.append(repo_root() / "config" / ".env")

    for p in candidates:
        p = p.resolve()
        if p.is_file():
            # Do NOT override already-set environment variables
            load_dotenv(dotenv_path=str(p), override=False)
            return p

    return None


def telemetry_dir() -> Path:
    """
    Default telemetry dir. Override with FG_TELEMETRY_DIR.
    """
    p = os.getenv("FG_TELEMETRY_DIR")
    if p:
        return Path(p).expanduser().resolve()
    return (repo_root() / "artifacts" / "telemetry").resolve()


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def env_list(name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class GatewaySettings:
    """Runtime configuration for the gateway, read from FG_* environment variables."""

    store_url: str = "http://localhost:8786"
    espn_base_url: str = "https://lm-api-reads.fantasy.espn.com/apis/v3"
    public_base_url: str = "http://localhost:8787"
    authorization_server: str = ""
    sports: tuple[str, ...] = ("baseball", "football")
    dev_mode: bool = False
    allowed_issuers: tuple[str, ...] = ()
    jwks_ttl_s: float = 300.0
    store_timeout_s: float = 5.0
    upstream_timeout_s: float = 7.0
    discovery_min_year: int = MIN_SEASON_YEAR
    discovery_max_misses: int = 2
    discovery_mandatory_years: int = 2
    discovery_probe_delay_s: float = 0.2
    discovery_retry_delay_s: float = 1.0
    server_name: str = "fantasy-league-gateway"
    server_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8787

    @property
    def default_sport(self) -> str:
        return self.sports[0] if self.sports else "baseball"

    @property
    def authorization_servers(self) -> list[str]:
        return [self.authorization_server or self.public_base_url.rstrip("/")]

    def resource_metadata_url(self, sport: str | None = None) -> str:
        base = self.public_base_url.rstrip("/")
        if sport:
            return f"{base}/{sport}/.well-known/oauth-protected-resource"
        return f"{base}/.well-known/oauth-protected-resource"

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        d = cls()
        return cls(
            store_url=os.getenv("FG_STORE_URL", d.store_url),
            espn_base_url=os.getenv("FG_ESPN_BASE_URL", d.espn_base_url),
            public_base_url=os.getenv("FG_PUBLIC_BASE_URL", d.public_base_url),
            authorization_server=os.getenv("FG_AUTHORIZATION_SERVER", d.authorization_server),
            sports=tuple(s.lower() for s in env_list("FG_SPORTS", d.sports)),
            dev_mode=env_flag("FG_DEV_MODE", d.dev_mode),
            allowed_issuers=env_list("FG_ALLOWED_ISSUERS", d.allowed_issuers),
            jwks_ttl_s=env_float("FG_JWKS_TTL_S", d.jwks_ttl_s),
            store_timeout_s=env_float("FG_STORE_TIMEOUT_S", d.store_timeout_s),
            upstream_timeout_s=env_float("FG_UPSTREAM_TIMEOUT_S", d.upstream_timeout_s),
            discovery_min_year=max(MIN_SEASON_YEAR, env_int("FG_DISCOVERY_MIN_YEAR", d.discovery_min_year)),
            discovery_max_misses=env_int("FG_DISCOVERY_MAX_MISSES", d.discovery_max_misses),
            discovery_mandatory_years=env_int("FG_DISCOVERY_MANDATORY_YEARS", d.discovery_mandatory_years),
            discovery_probe_delay_s=env_float("FG_DISCOVERY_PROBE_DELAY_S", d.discovery_probe_delay_s),
            discovery_retry_delay_s=env_float("FG_DISCOVERY_RETRY_DELAY_S", d.discovery_retry_delay_s),
            host=os.getenv("FG_HOST", d.host),
            port=env_int("FG_PORT", d.port),
        )


def configure_logging() -> None:
    """
    Configure logging explicitly. No import-time side effects.
    Idempotent: if logging is already configured, do nothing.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = os.getenv("FG_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = os.getenv(
        "FG_LOG_FORMAT",
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logging.basicConfig(level=level, format=fmt)


def init_runtime(*, configure_logs: bool = True, load_env: bool = True) -> None:
    """
    Call this from entrypoints only (servers, scripts).
    """
    if load_env:
        load_env_once()
    if configure_logs:
        configure_logging()
