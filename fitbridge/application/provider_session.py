"""Compose store, authorization flow and token sources into per-provider sessions."""

from __future__ import annotations

import requests

from fitbridge.application.exceptions import AuthFlowError, ProviderSessionError, StoreWriteError
from fitbridge.domain.providers import ProviderConfig
from fitbridge.domain.token import OAuthToken
from fitbridge.domain.token_storage import CredentialStore
from fitbridge.infrastructure.log_utils import log_message
from fitbridge.infrastructure.oauth_flow import AuthorizationFlowRunner
from fitbridge.infrastructure.token_source import PersistingTokenSource, RefreshingTokenSource
from fitbridge.infrastructure.transport import authorized_session


class ProviderSessionFactory:
    """Hand out authenticated transports, authorizing providers that have no stored token."""

    def __init__(
        self,
        store: CredentialStore,
        flow_runner: AuthorizationFlowRunner,
        *,
        request_timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.flow_runner = flow_runner
        self.request_timeout = request_timeout

    def ensure_token(self, config: ProviderConfig) -> OAuthToken:
        """Return the stored token, running the authorization flow first if there is none."""
        token = self.store.get(config.name)
        if token is not None:
            return token

        log_message(f"No existing token for {config.name}. Starting authentication flow...", "INFO")
        try:
            token = self.flow_runner.run(config)
        except AuthFlowError as exc:
            log_message(f"Authentication with {config.name} failed: {exc}", "ERROR")
            raise ProviderSessionError(
                config.name,
                f"Could not authenticate with {config.name}: {exc} "
                f"Re-run `fitbridge login {config.name}` to try again.",
            ) from exc

        try:
            self.store.set(config.name, token)
        except StoreWriteError as exc:
            log_message(f"Failed to save new token for {config.name}: {exc}", "ERROR")
            raise ProviderSessionError(
                config.name,
                f"Authorized with {config.name} but could not save the token: {exc} "
                f"Make sure the credentials file is writable, then re-run `fitbridge login {config.name}`.",
            ) from exc
        log_message(f"Stored new {config.name} token.", "INFO")
        return token

    def token_source(self, config: ProviderConfig) -> PersistingTokenSource:
        token = self.ensure_token(config)
        refreshing = RefreshingTokenSource(config, token, request_timeout=self.request_timeout)
        return PersistingTokenSource(refreshing, self.store, config.name)

    def session(self, config: ProviderConfig) -> requests.Session:
        """Authenticated transport for ``config.name``; refreshed tokens are saved as they are used."""
        return authorized_session(self.token_source(config))


__all__ = ["ProviderSessionFactory"]
