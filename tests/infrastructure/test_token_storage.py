import json
import os
import threading
from datetime import datetime, timezone

import pytest

from fitbridge.application.exceptions import CredentialDecodeError, StoreWriteError
from fitbridge.domain.token import OAuthToken
from fitbridge.infrastructure import token_storage
from fitbridge.infrastructure.token_storage import JsonFileCredentialStore


def _token(suffix: str = "1") -> OAuthToken:
    return OAuthToken(
        access_token=f"access-{suffix}",
        refresh_token=f"refresh-{suffix}",
        expiry=datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


def test_load_returns_empty_store_when_file_missing(credentials_path):
    store = JsonFileCredentialStore.load(credentials_path)

    assert store.get("fitbit") is None
    assert store.providers() == []
    assert not credentials_path.exists()


def test_set_then_get_round_trips_in_process_and_after_reload(credentials_path):
    store = JsonFileCredentialStore.load(credentials_path)
    token = _token()

    store.set("fitbit", token)

    assert store.get("fitbit") == token
    assert JsonFileCredentialStore.load(credentials_path).get("fitbit") == token


def test_persisted_document_is_a_full_snapshot(credentials_path):
    store = JsonFileCredentialStore.load(credentials_path)
    store.set("fitbit", _token("f"))
    store.set("strava", _token("s"))

    document = json.loads(credentials_path.read_text(encoding="utf-8"))

    assert set(document) == {"tokens"}
    assert set(document["tokens"]) == {"fitbit", "strava"}
    assert document["tokens"]["strava"] == {
        "access_token": "access-s",
        "token_type": "Bearer",
        "refresh_token": "refresh-s",
        "expiry": "2030-01-01T12:00:00Z",
    }


def test_existing_document_is_readable(credentials_path):
    credentials_path.write_text(
        '{"tokens":{"fitbit":{"access_token":"A","refresh_token":"R","token_type":"Bearer"}}}',
        encoding="utf-8",
    )

    store = JsonFileCredentialStore.load(credentials_path)

    assert store.get("fitbit") == OAuthToken(access_token="A", refresh_token="R", token_type="Bearer")
    assert store.get("strava") is None


def test_provider_ids_are_case_sensitive(credentials_path):
    store = JsonFileCredentialStore.load(credentials_path)
    store.set("fitbit", _token())

    assert store.get("Fitbit") is None


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"tokens": []}',
        '{"tokens": {"fitbit": {"refresh_token": "R"}}}',
        '{"tokens": {"fitbit": {"access_token": "A", "expiry": 1e20}}}',
        '{"tokens": {"fitbit": {"access_token": "A", "expiry": "not-a-date"}}}',
    ],
)
def test_malformed_document_raises_decode_error(credentials_path, content):
    credentials_path.write_text(content, encoding="utf-8")

    with pytest.raises(CredentialDecodeError):
        JsonFileCredentialStore.load(credentials_path)


@pytest.mark.skipif(os.name == "nt", reason="POSIX file permissions only")
def test_set_restricts_permissions_to_owner(credentials_path):
    store = JsonFileCredentialStore.load(credentials_path)

    store.set("fitbit", _token())

    mode = credentials_path.stat().st_mode & 0o777
    assert mode == 0o600


def test_set_creates_missing_parent_directories(tmp_path):
    path = tmp_path / "nested" / "dir" / "credentials.json"
    store = JsonFileCredentialStore.load(path)

    store.set("fitbit", _token())

    assert path.exists()


def test_write_failure_raises_and_keeps_in_memory_update(credentials_path, monkeypatch):
    store = JsonFileCredentialStore.load(credentials_path)
    store.set("fitbit", _token("old"))

    def _fail(*_args, **_kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(token_storage.os, "replace", _fail)

    with pytest.raises(StoreWriteError):
        store.set("fitbit", _token("new"))

    assert store.get("fitbit") == _token("new")
    monkeypatch.undo()
    assert JsonFileCredentialStore.load(credentials_path).get("fitbit") == _token("old")
    leftovers = [p.name for p in credentials_path.parent.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


def test_concurrent_sets_for_distinct_providers_are_all_persisted(credentials_path):
    store = JsonFileCredentialStore.load(credentials_path)
    providers = [f"provider-{i}" for i in range(16)]
    barrier = threading.Barrier(len(providers))

    def _worker(name: str) -> None:
        barrier.wait()
        store.set(name, _token(name))

    threads = [threading.Thread(target=_worker, args=(name,)) for name in providers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    reloaded = JsonFileCredentialStore.load(credentials_path)
    assert reloaded.providers() == sorted(providers)
    for name in providers:
        assert reloaded.get(name) == _token(name)
