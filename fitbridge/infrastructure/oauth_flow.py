"""Authorization-code flow: local listener, browser hand-off, code exchange."""

from __future__ import annotations

import secrets
import webbrowser
from typing import Callable, Optional
from urllib.parse import urlencode, urlsplit

import requests

from fitbridge.application.exceptions import AuthFlowError, TokenExchangeError
from fitbridge.domain.providers import ProviderConfig
from fitbridge.domain.token import OAuthToken
from fitbridge.infrastructure.log_utils import log_message
from fitbridge.infrastructure.oauth_callback import CALLBACK_PATH, CallbackServer
from fitbridge.infrastructure.token_endpoint import describe_error, parse_json, post_token_request


def build_authorize_url(config: ProviderConfig, *, redirect_uri: str, state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "state": state,
        "access_type": "offline",
    }
    if config.scopes:
        params["scope"] = config.scope_param()
    params.update(config.authorize_params)
    separator = "&" if "?" in config.authorize_url else "?"
    return f"{config.authorize_url}{separator}{urlencode(params)}"


def print_authorize_url(provider: str, url: str) -> None:
    print("\n----------------------------------------------------------------")
    print(f"Please authenticate with {provider} by visiting this URL:\n{url}")
    print("----------------------------------------------------------------")


class AuthorizationFlowRunner:
    """Obtain a fresh token for one provider via the authorization-code grant.

    The runner never writes to the credential store; persisting the returned
    token is the caller's job.
    """

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 8080,
        timeout: Optional[float] = 300.0,
        shutdown_grace: float = 1.0,
        request_timeout: float = 30.0,
        open_browser: bool = False,
        presenter: Callable[[str, str], None] = print_authorize_url,
        state_factory: Callable[[], str] = lambda: secrets.token_urlsafe(24),
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.shutdown_grace = shutdown_grace
        self.request_timeout = request_timeout
        self.open_browser = open_browser
        self._presenter = presenter
        self._state_factory = state_factory

    @classmethod
    def from_settings(cls, settings, **overrides) -> "AuthorizationFlowRunner":
        options = dict(
            host=settings.OAUTH_CALLBACK_HOST,
            port=settings.OAUTH_CALLBACK_PORT,
            timeout=settings.OAUTH_CALLBACK_TIMEOUT_SECONDS,
            shutdown_grace=settings.OAUTH_SHUTDOWN_GRACE_SECONDS,
            request_timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        options.update(overrides)
        return cls(**options)

    def run(self, config: ProviderConfig) -> OAuthToken:
        state = self._state_factory()
        server = CallbackServer(
            self.host,
            self.port,
            expected_state=state,
            callback_path=_callback_path(config.redirect_uri),
        )
        server.start()
        try:
            # The registered redirect wins; an ephemeral port only works for a
            # provider configured without one.
            redirect_uri = config.redirect_uri or server.redirect_uri
            url = build_authorize_url(config, redirect_uri=redirect_uri, state=state)
            log_message(f"Waiting for {config.name} authorization on {server.redirect_uri}", "INFO")
            self._present(config.name, url)
            code = server.wait_for_code(self.timeout)
        finally:
            server.schedule_shutdown(self.shutdown_grace)

        log_message(f"Received {config.name} authorization code; exchanging for a token.", "INFO")
        return self.exchange_code(config, code, redirect_uri=redirect_uri)

    def _present(self, provider: str, url: str) -> None:
        self._presenter(provider, url)
        if self.open_browser:
            try:
                webbrowser.open(url)
            except webbrowser.Error as exc:
                log_message(f"Could not open a browser: {exc}", "WARN")

    def exchange_code(self, config: ProviderConfig, code: str, *, redirect_uri: str) -> OAuthToken:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        try:
            response = post_token_request(config, form, timeout=self.request_timeout)
        except requests.exceptions.RequestException as exc:
            raise TokenExchangeError(f"Could not reach the {config.name} token endpoint: {exc}") from exc

        payload = parse_json(response, context=f"{config.name} token exchange")
        if response.status_code >= 400 or payload is None:
            reason = describe_error(response, payload)
            log_message(f"{config.name} rejected the authorization code: {reason}", "ERROR")
            raise TokenExchangeError(f"{config.name} rejected the authorization code: {reason}")

        try:
            return OAuthToken.from_token_response(payload)
        except (TypeError, ValueError) as exc:
            raise TokenExchangeError(f"{config.name} returned an unusable token: {exc}") from exc


def _callback_path(redirect_uri: Optional[str]) -> str:
    if not redirect_uri:
        return CALLBACK_PATH
    path = urlsplit(redirect_uri).path
    if not path:
        raise AuthFlowError(f"Redirect URI {redirect_uri!r} has no callback path")
    return path


__all__ = ["AuthorizationFlowRunner", "build_authorize_url", "print_authorize_url"]
