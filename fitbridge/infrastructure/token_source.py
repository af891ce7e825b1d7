"""Token sources: refresh on expiry, and write every served token through to the store."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Protocol

import requests

from fitbridge.application.exceptions import ReauthRequiredError, StoreWriteError, TokenRefreshError
from fitbridge.domain.providers import ProviderConfig
from fitbridge.domain.token import OAuthToken
from fitbridge.domain.token_storage import CredentialStore
from fitbridge.infrastructure.log_utils import log_message
from fitbridge.infrastructure.token_endpoint import describe_error, error_code, parse_json, post_token_request

REAUTH_ERROR_CODES = {"invalid_grant", "invalid_token", "expired_token", "unauthorized_client"}


class TokenSource(Protocol):
    def token(self) -> OAuthToken:
        """Return a token usable for the next request."""


class RefreshingTokenSource:
    """Serve the current token, refreshing it through the provider once it nears expiry."""

    def __init__(
        self,
        config: ProviderConfig,
        token: OAuthToken,
        *,
        request_timeout: float = 30.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.config = config
        self._token = token
        self._request_timeout = request_timeout
        self._clock = clock
        self._lock = threading.Lock()

    def token(self) -> OAuthToken:
        with self._lock:
            if self._token.is_valid(now=self._clock()):
                return self._token
            log_message(f"{self.config.name} access token expired or near expiry, refreshing.", "INFO")
            self._token = self._refresh()
            return self._token

    def refresh(self) -> OAuthToken:
        """Refresh regardless of the current token's expiry."""
        with self._lock:
            self._token = self._refresh()
            return self._token

    def _refresh(self) -> OAuthToken:
        refresh_token = self._token.refresh_token
        if not refresh_token:
            raise ReauthRequiredError(
                f"No {self.config.name} refresh token stored; run `fitbridge login {self.config.name}`."
            )

        form = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        try:
            response = post_token_request(self.config, form, timeout=self._request_timeout)
        except requests.exceptions.RequestException as exc:
            log_message(f"{self.config.name} token refresh request failed: {exc}", "ERROR")
            raise TokenRefreshError(f"{self.config.name} token refresh request failed: {exc}") from exc

        payload = parse_json(response, context=f"{self.config.name} token refresh")
        if response.status_code >= 400 or payload is None:
            reason = describe_error(response, payload)
            if self._needs_reauth(response, payload):
                log_message(f"{self.config.name} refresh token rejected: {reason}", "ERROR")
                raise ReauthRequiredError(
                    f"{self.config.name} refresh token is no longer valid ({reason}); "
                    f"run `fitbridge login {self.config.name}`."
                )
            raise TokenRefreshError(f"{self.config.name} token refresh failed: {reason}")

        try:
            refreshed = OAuthToken.from_token_response(payload, now=self._clock())
        except (TypeError, ValueError) as exc:
            raise TokenRefreshError(f"{self.config.name} refresh returned an unusable token: {exc}") from exc

        log_message(f"Successfully refreshed {self.config.name} access token.", "INFO")
        return refreshed.with_fallback_refresh_token(refresh_token)

    @staticmethod
    def _needs_reauth(response: requests.Response, payload) -> bool:
        if error_code(payload) in REAUTH_ERROR_CODES:
            return True
        return response.status_code == 401


class PersistingTokenSource:
    """Write every token the wrapped source serves to the store before returning it.

    Fetch and write happen under one lock, so the store never ends up holding
    a token older than the last one served.
    """

    def __init__(self, source: TokenSource, store: CredentialStore, provider: str) -> None:
        self.source = source
        self.store = store
        self.provider = provider
        self._lock = threading.Lock()

    def token(self) -> OAuthToken:
        with self._lock:
            token = self.source.token()
            try:
                self.store.set(self.provider, token)
            except StoreWriteError as exc:
                # Store failures never fail the caller.
                log_message(f"Failed to persist refreshed token for {self.provider}: {exc}", "WARN")
            return token


__all__ = [
    "TokenSource",
    "RefreshingTokenSource",
    "PersistingTokenSource",
    "REAUTH_ERROR_CODES",
]
