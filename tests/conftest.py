from __future__ import annotations

import pytest

from fg_config.settings import GatewaySettings
from fg_gateway.app import create_app
from fg_gateway.token_verifier import TokenVerifier, jwks_url
from tests.helpers.fakes import FakeEspn, FakeStore
from tests.helpers.tokens import ISSUER, FakeJwksHttp, mint_token, new_rsa_key, public_jwk

PUBLIC_BASE = "https://gw.example.test"


@pytest.fixture(autouse=True)
def _isolated_telemetry(tmp_path, monkeypatch):
    """Keep telemetry out of the working tree."""
    monkeypatch.setenv("FG_TELEMETRY_DIR", str(tmp_path / "telemetry"))
    monkeypatch.delenv("FG_DISABLE_TELEMETRY", raising=False)


@pytest.fixture(scope="session")
def signing_key():
    return new_rsa_key()


@pytest.fixture
def jwks_http(signing_key):
    return FakeJwksHttp({jwks_url(ISSUER): {"keys": [public_jwk(signing_key, "k1")]}})


@pytest.fixture
def verifier(jwks_http):
    return TokenVerifier(http=jwks_http, allowed_issuers=[ISSUER])


@pytest.fixture
def bearer(signing_key):
    return {"Authorization": f"Bearer {mint_token(signing_key)}"}


@pytest.fixture
def make_client(verifier):
    """Build a Flask test client around fake store/upstream collaborators."""

    def _make(store=None, espn=None, **overrides):
        settings = GatewaySettings(public_base_url=PUBLIC_BASE, **overrides)
        app = create_app(settings, verifier=verifier, store=store or FakeStore(), espn=espn or FakeEspn())
        app.config["TESTING"] = True
        return app.test_client()

    return _make
