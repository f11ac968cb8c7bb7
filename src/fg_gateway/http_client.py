"""
Shared HTTP client for the store, key-set and upstream fetchers.

Centralizes timeouts, retries and failure logging on top of `requests`.
Non-2xx responses are returned to the caller unless `raise_for_status=True`;
the store and upstream clients classify status codes themselves.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fg_config.settings import env_float, env_int

logger = logging.getLogger(__name__)


DEFAULT_CONNECT_TIMEOUT_S = env_float("FG_HTTP_CONNECT_TIMEOUT", 3.05)
DEFAULT_READ_TIMEOUT_S = env_float("FG_HTTP_READ_TIMEOUT", 10.0)
DEFAULT_TIMEOUT = (DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_READ_TIMEOUT_S)

DEFAULT_RETRIES = env_int("FG_HTTP_RETRIES", 2)
DEFAULT_BACKOFF = env_float("FG_HTTP_BACKOFF", 0.3)

# Retries are only applied to idempotent methods.
DEFAULT_RETRY_STATUS = (500, 502, 503, 504)

Params = Mapping[str, Any] | Sequence[tuple[str, Any]]


@dataclass(frozen=True)
class HttpClientConfig:
    timeout: tuple[float, float] | float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    backoff: float = DEFAULT_BACKOFF
    retry_statuses: tuple[int, ...] = DEFAULT_RETRY_STATUS
    user_agent: str = os.getenv("FG_HTTP_USER_AGENT", "fantasy-league-gateway/0.1")


class HttpClient:
    """A small wrapper around `requests.Session` with sane defaults."""

    def __init__(self, *, config: HttpClientConfig | None = None, session: requests.Session | None = None) -> None:
        self.config = config or HttpClientConfig()
        self.session = session or requests.Session()
        self._configure_session(self.session, self.config)

    @staticmethod
    def _configure_session(session: requests.Session, config: HttpClientConfig) -> None:
        session.headers.setdefault("User-Agent", config.user_agent)

        if config.retries <= 0:
            return

        retry = Retry(
            total=config.retries,
            connect=config.retries,
            read=config.retries,
            status=config.retries,
            backoff_factor=config.backoff,
            status_forcelist=config.retry_statuses,
            allowed_methods=frozenset(["HEAD", "GET", "OPTIONS"]),
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params | None = None,
        json: Any | None = None,
        timeout: tuple[float, float] | float | None = None,
        raise_for_status: bool = False,
        **kwargs: Any,
    ) -> Response:
        """Perform an HTTP request; transport errors are logged and re-raised."""
        t0 = time.perf_counter()
        try:
            resp = self.session.request(
                method=method,
                url=url,
                headers=dict(headers) if headers else None,
                # a list of pairs keeps repeated keys such as `view`
                params=params or None,
                json=json,
                timeout=timeout or self.config.timeout,
                **kwargs,
            )
            if raise_for_status:
                resp.raise_for_status()
            return resp
        except requests.RequestException as e:
            ms = int((time.perf_counter() - t0) * 1000)
            status = getattr(getattr(e, "response", None), "status_code", None)
            logger.warning(
                "HTTP %s %s failed (status=%s, ms=%s): %s",
                method.upper(),
                url,
                status,
                ms,
                type(e).__name__,
            )
            raise

    def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params | None = None,
        timeout: tuple[float, float] | float | None = None,
        **kwargs: Any,
    ) -> Response:
        return self.request("GET", url, headers=headers, params=params, timeout=timeout, **kwargs)

    def get_json(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: tuple[float, float] | float | None = None,
    ) -> Any:
        """GET and decode JSON; raises for non-2xx or an undecodable body."""
        resp = self.request("GET", url, headers=headers, timeout=timeout, raise_for_status=True)
        return resp.json()
