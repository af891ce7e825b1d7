from datetime import datetime, timedelta, timezone

import pytest
import requests
from typer.testing import CliRunner

from fitbridge.cli import main
from fitbridge.config import Settings
from fitbridge.domain.token import OAuthToken
from fitbridge.infrastructure import token_endpoint
from fitbridge.infrastructure.oauth_flow import AuthorizationFlowRunner
from fitbridge.infrastructure.token_storage import JsonFileCredentialStore
from tests.http_stubs import DummyResponse, PostRecorder

runner = CliRunner()

STORED = OAuthToken(
    access_token="stored-access-token",
    refresh_token="R1",
    expiry=datetime.now(timezone.utc) + timedelta(hours=2),
)


@pytest.fixture(autouse=True)
def cli_settings(monkeypatch, credentials_path):
    settings = Settings(
        FITBIT_CLIENT_ID="fb-id",
        FITBIT_CLIENT_SECRET="fb-secret",
        STRAVA_CLIENT_ID="st-id",
        STRAVA_CLIENT_SECRET="st-secret",
        CREDENTIALS_FILE=credentials_path,
    )
    monkeypatch.setattr(main, "settings", settings)
    return settings


def _store_token(path, provider="fitbit", token=STORED):
    JsonFileCredentialStore.load(path).set(provider, token)


def test_status_without_credentials(credentials_path):
    result = runner.invoke(main.app, ["status"])

    assert result.exit_code == 0
    assert "No credentials stored" in result.stdout


def test_status_lists_stored_providers(credentials_path):
    _store_token(credentials_path, "fitbit")
    _store_token(credentials_path, "strava", OAuthToken(access_token="s"))

    result = runner.invoke(main.app, ["status"])

    assert result.exit_code == 0
    assert "fitbit" in result.stdout
    assert "strava" in result.stdout
    assert "no expiry" in result.stdout


def test_malformed_credentials_file_explains_next_step(credentials_path):
    credentials_path.write_text("{broken", encoding="utf-8")

    result = runner.invoke(main.app, ["status"])

    assert result.exit_code == 1
    assert "re-run to authenticate" in result.stdout


def test_login_with_stored_token_does_not_start_flow(monkeypatch, credentials_path):
    _store_token(credentials_path)

    def _unexpected(self, config):
        raise AssertionError("flow should not run")

    monkeypatch.setattr(AuthorizationFlowRunner, "run", _unexpected)

    result = runner.invoke(main.app, ["login", "fitbit"])

    assert result.exit_code == 0
    assert "[OK] fitbit is authorized" in result.stdout


def test_login_runs_flow_and_saves_token(monkeypatch, credentials_path):
    monkeypatch.setattr(AuthorizationFlowRunner, "run", lambda self, config: STORED)

    result = runner.invoke(main.app, ["login", "strava"])

    assert result.exit_code == 0
    assert JsonFileCredentialStore.load(credentials_path).get("strava") == STORED


def test_login_unknown_provider_fails(credentials_path):
    result = runner.invoke(main.app, ["login", "garmin"])

    assert result.exit_code == 1
    assert "Unknown provider 'garmin'" in result.stdout


def test_refresh_saves_new_token(monkeypatch, credentials_path):
    _store_token(credentials_path)
    monkeypatch.setattr(
        token_endpoint.requests,
        "post",
        PostRecorder(DummyResponse(200, {"access_token": "refreshed-access-token", "expires_in": 3600})),
    )

    result = runner.invoke(main.app, ["refresh", "fitbit"])

    assert result.exit_code == 0
    assert "[OK] fitbit tokens refreshed." in result.stdout
    saved = JsonFileCredentialStore.load(credentials_path).get("fitbit")
    assert saved.access_token == "refreshed-access-token"
    assert saved.refresh_token == "R1"


def test_refresh_without_stored_token_fails(credentials_path):
    result = runner.invoke(main.app, ["refresh", "fitbit"])

    assert result.exit_code == 1
    assert "fitbridge login fitbit" in result.stdout


def test_verify_calls_profile_endpoint_with_bearer_token(monkeypatch, credentials_path):
    _store_token(credentials_path)
    seen = []

    def _fake_send(self, request, **kwargs):
        seen.append((request.url, request.headers.get("Authorization")))
        response = requests.Response()
        response.status_code = 200
        response.request = request
        response.url = request.url
        return response

    monkeypatch.setattr(requests.Session, "send", _fake_send)

    result = runner.invoke(main.app, ["verify", "fitbit"])

    assert result.exit_code == 0, result.stdout
    assert seen == [("https://api.fitbit.com/1/user/-/profile.json", "Bearer stored-access-token")]


def test_verify_without_stored_token_does_not_start_flow(monkeypatch, credentials_path):
    def _unexpected(self, config):
        raise AssertionError("flow should not run")

    monkeypatch.setattr(AuthorizationFlowRunner, "run", _unexpected)

    result = runner.invoke(main.app, ["verify", "strava"])

    assert result.exit_code == 1
    assert "fitbridge login strava" in result.stdout
