"""Domain-level protocol for persisting OAuth tokens per provider."""

from __future__ import annotations

from typing import Optional, Protocol

from fitbridge.domain.token import OAuthToken


class CredentialStore(Protocol):
    """Abstraction for a provider-keyed token store."""

    def get(self, provider: str) -> Optional[OAuthToken]:
        """Return the stored token for ``provider`` or ``None``."""

    def set(self, provider: str, token: OAuthToken) -> None:
        """Store ``token`` for ``provider`` and persist it."""


__all__ = ["CredentialStore"]
