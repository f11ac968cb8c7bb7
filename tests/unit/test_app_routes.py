from __future__ import annotations

import datetime as _dt

import pytest

from fg_config.settings import GatewaySettings
from fg_gateway import app as app_module
from fg_gateway.app import create_app
from fg_gateway.store_client import AddSeasonStatus, StoreError
from tests.helpers.fakes import AUTH_FAILED, FakeEspn, FakeStore, espn_league, league, ok
from tests.helpers.tokens import mint_token


def test_protected_resource_metadata(make_client):
    body = make_client().get("/.well-known/oauth-protected-resource").get_json()
    assert body == {
        "resource": "https://gw.example.test/mcp",
        "authorization_servers": ["https://gw.example.test"],
        "bearer_methods_supported": ["header"],
        "scopes_supported": ["mcp:read"],
    }


def test_sport_protected_resource_metadata(make_client):
    client = make_client(authorization_server="https://auth.example.test")
    body = client.get("/football/.well-known/oauth-protected-resource").get_json()
    assert body["resource"] == "https://gw.example.test/football/mcp"
    assert body["authorization_servers"] == ["https://auth.example.test"]


def test_unknown_sport_metadata_is_404(make_client):
    resp = make_client().get("/curling/.well-known/oauth-protected-resource")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "not_found"


def test_health(make_client):
    body = make_client().get("/health").get_json()
    assert body["status"] == "ok"
    assert body["sports"] == ["baseball", "football"]


# --- onboarding discovery ----------------------------------------------------


def _espn_current_year_only():
    year = _dt.date.today().year
    return year, FakeEspn({year: ok(espn_league(555, n_teams=4, season=year))})


@pytest.fixture
def fast_discovery(monkeypatch):
    monkeypatch.setattr("fg_gateway.discovery.time.sleep", lambda _s: None)


def test_discover_seasons_requires_auth(make_client):
    resp = make_client().post("/onboarding/discover-seasons", json={"sport": "baseball", "leagueId": "555"})
    assert resp.status_code == 401


def test_discover_seasons_challenge_names_resource_metadata(make_client):
    resp = make_client().post("/football/onboarding/discover-seasons", json={"leagueId": "555"})

    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == (
        'Bearer resource_metadata="https://gw.example.test/football/.well-known/oauth-protected-resource"'
    )


def test_discover_seasons_rejected_token_gets_invalid_token_challenge(make_client):
    resp = make_client().post(
        "/onboarding/discover-seasons", json={"leagueId": "555"}, headers={"Authorization": "Bearer nope"}
    )

    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "AUTH_FAILED"
    assert 'error="invalid_token"' in resp.headers["WWW-Authenticate"]
    assert "resource_metadata=" in resp.headers["WWW-Authenticate"]


@pytest.mark.parametrize("body", [{"leagueId": "1", "sport": 5}, {"leagueId": "1", "sport": ["mlb"]}, {"leagueId": {"id": 1}}])
def test_discover_seasons_rejects_wrongly_typed_fields(make_client, bearer, body):
    resp = make_client().post("/onboarding/discover-seasons", json=body, headers=bearer)

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "bad_request"


def test_discover_seasons_requires_league_id(make_client, bearer):
    resp = make_client().post("/onboarding/discover-seasons", json={"sport": "baseball"}, headers=bearer)
    assert resp.status_code == 400


def test_discover_seasons_rejects_unknown_sport(make_client, bearer):
    resp = make_client().post("/onboarding/discover-seasons", json={"sport": "curling", "leagueId": "1"}, headers=bearer)
    assert resp.status_code == 400


def test_discover_seasons_missing_team(make_client, bearer, fast_discovery):
    store = FakeStore([league("baseball", "555", 2025, team_id=None)])
    resp = make_client(store=store).post(
        "/onboarding/discover-seasons", json={"sport": "baseball", "leagueId": "555"}, headers=bearer
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "TEAM_ID_MISSING"


def test_discover_seasons_missing_credentials(make_client, bearer, fast_discovery):
    store = FakeStore([league("baseball", "555", 2025)], credentials=None)
    resp = make_client(store=store).post(
        "/onboarding/discover-seasons", json={"sport": "baseball", "leagueId": "555"}, headers=bearer
    )
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "CREDENTIALS_MISSING"


def test_discover_seasons_happy_path(make_client, bearer, fast_discovery):
    year, espn = _espn_current_year_only()
    store = FakeStore([league("baseball", "555", 2010)], add_statuses={year: AddSeasonStatus.CREATED})
    client = make_client(store=store, espn=espn, discovery_probe_delay_s=0.0)

    resp = client.post("/onboarding/discover-seasons", json={"sport": "mlb", "leagueId": "555"}, headers=bearer)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["leagueId"] == "555"
    assert body["sport"] == "baseball"
    assert [s["seasonYear"] for s in body["discovered"]] == [year]
    assert body["discovered"][0]["teamName"] == "City3 Club3"
    assert body["rateLimited"] is False
    assert "error" not in body


def test_discover_seasons_sport_path(make_client, bearer, fast_discovery):
    year, espn = _espn_current_year_only()
    store = FakeStore([league("football", "555", 2010)])
    client = make_client(store=store, espn=espn)

    resp = client.post("/football/onboarding/discover-seasons", json={"leagueId": "555"}, headers=bearer)

    assert resp.status_code == 200
    assert resp.get_json()["sport"] == "football"
    assert espn.calls[0]["sport"] == "football"


def test_discover_seasons_upstream_auth_failure_is_401(make_client, bearer, fast_discovery):
    store = FakeStore([league("baseball", "555", None)])
    client = make_client(store=store, espn=FakeEspn(default=AUTH_FAILED))

    resp = client.post("/onboarding/discover-seasons", json={"leagueId": "555"}, headers=bearer)

    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "AUTH_FAILED"


def test_discover_seasons_store_outage_is_502(make_client, bearer, fast_discovery):
    store = FakeStore([league("baseball", "555", 2025)], credentials_error=StoreError("boom", status=500))
    resp = make_client(store=store).post("/onboarding/discover-seasons", json={"leagueId": "555"}, headers=bearer)

    assert resp.status_code == 502
    assert resp.get_json()["error"]["code"] == "store_unavailable"


def test_unexpected_route_error_is_internal_500(make_client, bearer, fast_discovery):
    store = FakeStore([league("baseball", "555", 2025)], credentials_error=RuntimeError("kaboom"))
    resp = make_client(store=store).post("/onboarding/discover-seasons", json={"leagueId": "555"}, headers=bearer)

    assert resp.status_code == 500
    assert resp.get_json()["error"]["code"] == "internal"


def test_unknown_route_is_json_404(make_client):
    resp = make_client().get("/nope")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "not_found"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("FG_SPORTS", "Football, hockey")
    monkeypatch.setenv("FG_DEV_MODE", "yes")
    monkeypatch.setenv("FG_JWKS_TTL_S", "not-a-number")
    monkeypatch.setenv("FG_ALLOWED_ISSUERS", "https://a.test, https://b.test")

    s = GatewaySettings.from_env()

    assert s.sports == ("football", "hockey")
    assert s.default_sport == "football"
    assert s.dev_mode is True
    assert s.jwks_ttl_s == 300.0
    assert s.allowed_issuers == ("https://a.test", "https://b.test")


@pytest.mark.parametrize("raw, expected", [("1995", 2000), ("2015", 2015), ("soon", 2000)])
def test_discovery_floor_never_below_storable_seasons(monkeypatch, raw, expected):
    monkeypatch.setenv("FG_DISCOVERY_MIN_YEAR", raw)

    assert GatewaySettings.from_env().discovery_min_year == expected


def test_default_app_verifier_fails_closed(monkeypatch, caplog, signing_key):
    monkeypatch.delenv("FG_ALLOWED_ISSUERS", raising=False)
    monkeypatch.delenv("FG_DEV_MODE", raising=False)
    with caplog.at_level("ERROR", logger="fg_gateway.app"):
        app = create_app(GatewaySettings(), store=FakeStore(), espn=FakeEspn())

    assert "FG_ALLOWED_ISSUERS is empty" in caplog.text
    resp = app.test_client().post(
        "/mcp",
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "get_user_session"}},
        headers={"Authorization": f"Bearer {mint_token(signing_key)}"},
    )
    assert resp.status_code == 401
    assert resp.get_json()["error"]["data"]["reason"] == "untrusted_issuer"


def test_main_refuses_to_start_without_issuers(monkeypatch):
    monkeypatch.setattr(app_module, "init_runtime", lambda: None)
    monkeypatch.delenv("FG_ALLOWED_ISSUERS", raising=False)
    monkeypatch.delenv("FG_DEV_MODE", raising=False)

    with pytest.raises(SystemExit):
        app_module.main()
