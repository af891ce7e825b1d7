"""OAuth2 client configuration for the supported providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from pydantic import SecretStr

from fitbridge.application.exceptions import ConfigurationError

# How client credentials are presented to the token endpoint.
AUTH_STYLE_HEADER = "header"
AUTH_STYLE_PARAMS = "params"

FITBIT = "fitbit"
STRAVA = "strava"

FITBIT_AUTH_URL = "https://www.fitbit.com/oauth2/authorize"
FITBIT_TOKEN_URL = "https://api.fitbit.com/oauth2/token"
FITBIT_PROFILE_URL = "https://api.fitbit.com/1/user/-/profile.json"

STRAVA_AUTH_URL = "https://www.strava.com/oauth/mobile/authorize"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_PROFILE_URL = "https://www.strava.com/api/v3/athlete"


def _unwrap_secret(value):
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


@dataclass(frozen=True)
class ProviderConfig:
    """Everything needed to authorize against and refresh with one provider."""

    name: str
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    redirect_uri: str
    scopes: Tuple[str, ...] = ()
    scope_separator: str = " "
    auth_style: str = AUTH_STYLE_HEADER
    profile_url: Optional[str] = None
    authorize_params: Mapping[str, str] = field(default_factory=dict)

    def scope_param(self) -> str:
        return self.scope_separator.join(self.scopes)


def fitbit_config(settings) -> ProviderConfig:
    """Fitbit: heart rate and activity logs."""
    return _build(
        settings,
        name=FITBIT,
        client_id=settings.FITBIT_CLIENT_ID,
        client_secret=_unwrap_secret(settings.FITBIT_CLIENT_SECRET),
        authorize_url=FITBIT_AUTH_URL,
        token_url=FITBIT_TOKEN_URL,
        scopes=("heartrate", "activity"),
        auth_style=AUTH_STYLE_HEADER,
        profile_url=FITBIT_PROFILE_URL,
    )


def strava_config(settings) -> ProviderConfig:
    """Strava: activity upload. Strava expects comma separated scopes."""
    return _build(
        settings,
        name=STRAVA,
        client_id=settings.STRAVA_CLIENT_ID,
        client_secret=_unwrap_secret(settings.STRAVA_CLIENT_SECRET),
        authorize_url=STRAVA_AUTH_URL,
        token_url=STRAVA_TOKEN_URL,
        scopes=("activity:write",),
        scope_separator=",",
        auth_style=AUTH_STYLE_PARAMS,
        profile_url=STRAVA_PROFILE_URL,
    )


def _build(settings, *, name: str, client_id: str, client_secret: str, **kwargs) -> ProviderConfig:
    missing = []
    if not client_id:
        missing.append(f"{name.upper()}_CLIENT_ID")
    if not client_secret:
        missing.append(f"{name.upper()}_CLIENT_SECRET")
    if missing:
        raise ConfigurationError(
            f"Missing {name} credentials: set {', '.join(missing)} in the environment or .env"
        )
    return ProviderConfig(
        name=name,
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=settings.redirect_uri,
        **kwargs,
    )


PROVIDER_FACTORIES = {
    FITBIT: fitbit_config,
    STRAVA: strava_config,
}


def provider_config(name: str, settings) -> ProviderConfig:
    """Return the configuration for a named provider."""
    try:
        factory = PROVIDER_FACTORIES[name]
    except KeyError:
        known = ", ".join(sorted(PROVIDER_FACTORIES))
        raise ConfigurationError(f"Unknown provider '{name}'. Known providers: {known}") from None
    return factory(settings)


__all__ = [
    "AUTH_STYLE_HEADER",
    "AUTH_STYLE_PARAMS",
    "FITBIT",
    "STRAVA",
    "ProviderConfig",
    "fitbit_config",
    "strava_config",
    "provider_config",
    "PROVIDER_FACTORIES",
]
