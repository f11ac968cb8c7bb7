"""Bearer-token verification against the issuer's published key set.

Tokens are RS256 JWTs. The verifier reads the unverified issuer, fetches
`<issuer>/.well-known/jwks.json` (cached per issuer), then verifies the
signature with the key named by the header `kid`. Every failure is reported
as an `AuthError` value; nothing here raises for a bad token.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

import jwt
import requests

from .http_client import HttpClient, HttpClientConfig
from .models import VerifiedIdentity

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = frozenset({"RS256"})
JWKS_PATH = "/.well-known/jwks.json"
DEFAULT_KEY_SET_TTL_S = 300.0


class AuthErrorReason(str, enum.Enum):
    MALFORMED = "malformed"
    UNSUPPORTED_ALG = "unsupported_alg"
    MISSING_KID = "missing_kid"
    UNTRUSTED_ISSUER = "untrusted_issuer"
    JWKS_UNAVAILABLE = "jwks_unavailable"
    KEY_NOT_FOUND = "key_not_found"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AuthError:
    reason: AuthErrorReason
    message: str


# --- key set cache ---------------------------------------------------------


@dataclass(frozen=True)
class CachedKeySet:
    keys: Mapping[str, dict]
    fetched_at: float

    def is_fresh(self, now: float, ttl_s: float) -> bool:
        return (now - self.fetched_at) < ttl_s


@dataclass
class KeySetCache:
    """issuer -> (keys by kid, fetched_at). One entry per issuer, last writer wins."""

    ttl_s: float = DEFAULT_KEY_SET_TTL_S
    _entries: dict[str, CachedKeySet] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self, issuer: str, now: float) -> Mapping[str, dict] | None:
        entry = self._entries.get(issuer)
        if entry is None or not entry.is_fresh(now, self.ttl_s):
            return None
        return entry.keys

    def put(self, issuer: str, keys: Mapping[str, dict], now: float) -> None:
        with self._lock:
            self._entries[issuer] = CachedKeySet(keys=dict(keys), fetched_at=now)

    def __len__(self) -> int:
        return len(self._entries)


def jwks_url(issuer: str) -> str:
    return issuer.rstrip("/") + JWKS_PATH


def _index_keys(payload: object) -> dict[str, dict]:
    if not isinstance(payload, dict) or not isinstance(payload.get("keys"), list):
        raise ValueError("key set document has no 'keys' list")
    return {k["kid"]: k for k in payload["keys"] if isinstance(k, dict) and isinstance(k.get("kid"), str)}


def extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class TokenVerifier:
    def __init__(
        self,
        *,
        cache: KeySetCache | None = None,
        http: HttpClient | None = None,
        allowed_issuers: Iterable[str] = (),
        allow_any_issuer: bool = False,
        clock: Callable[[], float] = time.time,
        fetch_timeout_s: float = 5.0,
    ) -> None:
        self.cache = cache if cache is not None else KeySetCache()
        self.http = http or HttpClient(config=HttpClientConfig(retries=1))
        self.allowed_issuers = frozenset(i.rstrip("/") for i in allowed_issuers)
        self.allow_any_issuer = allow_any_issuer
        self.clock = clock
        self.fetch_timeout_s = fetch_timeout_s

    def verify(self, authorization: str | None) -> VerifiedIdentity | AuthError:
        token = extract_bearer(authorization)
        if token is None or token.count(".") != 2:
            return AuthError(AuthErrorReason.MALFORMED, "Expected 'Bearer <token>' with a compact JWT")

        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            return AuthError(AuthErrorReason.MALFORMED, f"Token could not be decoded: {e}")

        alg = header.get("alg")
        if alg not in SUPPORTED_ALGORITHMS:
            return AuthError(AuthErrorReason.UNSUPPORTED_ALG, f"Unsupported algorithm: {alg}")

        issuer = claims.get("iss")
        if not isinstance(issuer, str) or not issuer.startswith(("http://", "https://")):
            return AuthError(AuthErrorReason.MALFORMED, "Token has no issuer URL")

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            return AuthError(AuthErrorReason.MISSING_KID, "Token header has no key id")

        if not self.is_trusted(issuer):
            return AuthError(AuthErrorReason.UNTRUSTED_ISSUER, f"Issuer not trusted: {issuer}")

        try:
            keys = self.signing_keys(issuer)
        except (requests.RequestException, ValueError) as e:
            logger.warning("key set fetch failed for issuer=%s: %s", issuer, e)
            return AuthError(AuthErrorReason.JWKS_UNAVAILABLE, "Signing keys could not be fetched")

        jwk = keys.get(kid)
        if jwk is None:
            return AuthError(AuthErrorReason.KEY_NOT_FOUND, f"No signing key with kid={kid}")

        try:
            public_key = jwt.PyJWK(jwk, algorithm=alg).key
            jwt.decode(
                token,
                key=public_key,
                algorithms=[alg],
                # expiry is checked below against the injectable clock
                options={
                    "verify_signature": True,
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "verify_aud": False,
                    "verify_iss": False,
                },
            )
        except jwt.PyJWTError as e:
            return AuthError(AuthErrorReason.BAD_SIGNATURE, f"Signature verification failed: {e}")

        exp = claims.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)) or isinstance(exp, bool):
                return AuthError(AuthErrorReason.MALFORMED, "Token 'exp' is not numeric")
            if self.clock() >= exp:
                return AuthError(AuthErrorReason.EXPIRED, "Token has expired")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return AuthError(AuthErrorReason.MALFORMED, "Token has no subject")

        return VerifiedIdentity(subject_id=subject, issuer=issuer, expires_at=int(exp) if exp is not None else None)

    def is_trusted(self, issuer: str) -> bool:
        """Listed issuers only; an empty list trusts nobody unless `allow_any_issuer`."""
        if not self.allowed_issuers:
            return self.allow_any_issuer
        return issuer.rstrip("/") in self.allowed_issuers

    def signing_keys(self, issuer: str) -> Mapping[str, dict]:
        """Keys by kid for `issuer`, served from cache while fresh."""
        now = self.clock()
        cached = self.cache.get(issuer, now)
        if cached is not None:
            return cached

        url = jwks_url(issuer)
        keys = _index_keys(self.http.get_json(url, timeout=self.fetch_timeout_s))
        self.cache.put(issuer, keys, now)
        logger.info("fetched %d signing keys from %s", len(keys), url)
        return keys
