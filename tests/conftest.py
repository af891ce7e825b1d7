import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


_DEFAULT_ENV = {
    "FITBIT_CLIENT_ID": "fitbit-client-id",
    "FITBIT_CLIENT_SECRET": "fitbit-client-secret",
    "STRAVA_CLIENT_ID": "strava-client-id",
    "STRAVA_CLIENT_SECRET": "strava-client-secret",
    "FITBRIDGE_LOG_TO_CONSOLE": "false",
    "FITBRIDGE_LOG_DIR": tempfile.mkdtemp(prefix="fitbridge-test-logs-"),
}

for _key, _value in _DEFAULT_ENV.items():
    os.environ.setdefault(_key, _value)


from fitbridge.domain.providers import AUTH_STYLE_PARAMS, ProviderConfig  # noqa: E402


@pytest.fixture
def stub_provider() -> ProviderConfig:
    """A provider whose redirect follows whatever port the listener binds."""
    return ProviderConfig(
        name="stub",
        client_id="stub-client",
        client_secret="stub-secret",
        authorize_url="https://auth.example.test/authorize",
        token_url="https://auth.example.test/token",
        redirect_uri="",
        scopes=("heartrate", "activity"),
        auth_style=AUTH_STYLE_PARAMS,
        profile_url="https://api.example.test/me",
    )


@pytest.fixture
def credentials_path(tmp_path) -> Path:
    return tmp_path / "credentials.json"
