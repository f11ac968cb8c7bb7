"""RSA keys, key sets and signed tokens for verifier and dispatcher tests."""

from __future__ import annotations

import json
import time
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

ISSUER = "https://auth.example.test"
SUBJECT = "user_2abcdefghijk"


def new_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwk(private_key, kid: str) -> dict:
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return jwk


def mint_token(
    private_key,
    *,
    kid: str | None = "k1",
    iss: str | None = ISSUER,
    sub: str | None = SUBJECT,
    exp: float | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    claims: dict[str, Any] = {"iat": int(time.time())}
    if iss is not None:
        claims["iss"] = iss
    if sub is not None:
        claims["sub"] = sub
    claims["exp"] = int(exp if exp is not None else time.time() + 3600)
    claims.update(extra_claims or {})
    headers = {"kid": kid} if kid is not None else {}
    return jwt.encode(claims, private_key, algorithm="RS256", headers=headers)


class FakeJwksHttp:
    """Serves one key set document per URL and records every fetch."""

    def __init__(self, documents: dict[str, Any]):
        self.documents = documents
        self.calls: list[str] = []

    def get_json(self, url: str, *, headers=None, timeout=None):
        self.calls.append(url)
        doc = self.documents.get(url)
        if isinstance(doc, Exception):
            raise doc
        if doc is None:
            raise ValueError(f"no key set at {url}")
        return doc
