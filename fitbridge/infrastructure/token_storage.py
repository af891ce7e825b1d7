"""Infrastructure implementation of the provider-keyed credential store."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

from fitbridge.application.exceptions import CredentialDecodeError, StoreReadError, StoreWriteError
from fitbridge.domain.token import OAuthToken
from fitbridge.domain.token_storage import CredentialStore
from fitbridge.infrastructure.log_utils import log_message

TOKENS_FIELD = "tokens"


class JsonFileCredentialStore(CredentialStore):
    """Persist every provider's token in a single JSON document on disk.

    The document is always a complete snapshot: each ``set`` rewrites the whole
    file while holding the same lock ``get`` uses, so a write is visible to the
    next reader in this process as soon as ``set`` returns.
    """

    def __init__(self, path: Path | str, tokens: Optional[Dict[str, OAuthToken]] = None) -> None:
        self._path = Path(path)
        self._tokens: Dict[str, OAuthToken] = dict(tokens or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path | str) -> "JsonFileCredentialStore":
        """Read the persisted document. A missing file yields an empty store."""
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log_message(f"No credential file at {path}; starting with an empty store.", "INFO")
            return cls(path)
        except OSError as exc:
            raise StoreReadError(f"Could not read credentials from {path}: {exc}") from exc

        return cls(path, _decode_document(raw, path))

    @property
    def path(self) -> Path:
        return self._path

    def get(self, provider: str) -> Optional[OAuthToken]:
        with self._lock:
            return self._tokens.get(provider)

    def set(self, provider: str, token: OAuthToken) -> None:
        with self._lock:
            self._tokens[provider] = token
            self._write_snapshot()
        log_message(f"Saved {provider} token to {self._path}.", "DEBUG")

    def providers(self) -> List[str]:
        with self._lock:
            return sorted(self._tokens)

    def _write_snapshot(self) -> None:
        """Atomically replace the document with the current mapping. Caller holds the lock."""
        document = {TOKENS_FIELD: {name: token.to_dict() for name, token in self._tokens.items()}}
        directory = self._path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=directory)
            # mkstemp already creates the file owner read/write only
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
            os.chmod(self._path, 0o600)
        except OSError as exc:
            raise StoreWriteError(f"Could not write credentials to {self._path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass


def _decode_document(raw: str, path: Path) -> Dict[str, OAuthToken]:
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CredentialDecodeError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(document, dict):
        raise CredentialDecodeError(f"{path} must contain a JSON object")

    entries = document.get(TOKENS_FIELD)
    if entries is None:
        return {}
    if not isinstance(entries, dict):
        raise CredentialDecodeError(f"'{TOKENS_FIELD}' in {path} must be an object")

    tokens: Dict[str, OAuthToken] = {}
    for provider, record in entries.items():
        if record is None:
            continue
        try:
            tokens[provider] = OAuthToken.from_dict(record)
        except (TypeError, ValueError) as exc:
            raise CredentialDecodeError(f"Invalid token for '{provider}' in {path}: {exc}") from exc
    return tokens


__all__ = ["JsonFileCredentialStore", "TOKENS_FIELD"]
