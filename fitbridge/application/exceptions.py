"""Custom exception hierarchy for fitbridge authentication."""

from __future__ import annotations


class FitbridgeError(Exception):
    """Base exception for credential and authorization failures."""


class ConfigurationError(FitbridgeError):
    """Raised when a provider's OAuth client settings are incomplete."""


class StoreReadError(FitbridgeError):
    """Raised when the credential document cannot be read."""


class CredentialDecodeError(StoreReadError):
    """Raised when the credential document exists but is not valid."""


class StoreWriteError(FitbridgeError):
    """Raised when the credential document cannot be rewritten."""


class AuthFlowError(FitbridgeError):
    """Raised when the authorization-code flow cannot complete."""


class PortInUseError(AuthFlowError):
    """Raised when the local redirect listener cannot bind its port."""


class AuthTimeoutError(AuthFlowError):
    """Raised when no authorization code arrives before the deadline."""


class AuthorizationDeniedError(AuthFlowError):
    """Raised when the provider redirects back with an ``error`` parameter."""


class TokenExchangeError(AuthFlowError):
    """Raised when the token endpoint rejects an authorization code."""


class TokenRefreshError(FitbridgeError):
    """Raised when an access token cannot be refreshed."""


class ReauthRequiredError(TokenRefreshError):
    """Raised when the refresh token is missing, expired or revoked."""


class ProviderSessionError(FitbridgeError):
    """Raised when a provider session cannot be established."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


__all__ = [
    "FitbridgeError",
    "ConfigurationError",
    "StoreReadError",
    "CredentialDecodeError",
    "StoreWriteError",
    "AuthFlowError",
    "PortInUseError",
    "AuthTimeoutError",
    "AuthorizationDeniedError",
    "TokenExchangeError",
    "TokenRefreshError",
    "ReauthRequiredError",
    "ProviderSessionError",
]
