"""
Command-line interface for fitbridge.

Authorizes the Fitbit and Strava integrations, shows what is stored in the
credential file, and checks that a provider's stored credentials still work.
"""

from __future__ import annotations

from datetime import datetime, timezone

import requests
import typer
from rich.console import Console
from rich.table import Table
from typer import Argument, Option
from typing_extensions import Annotated

from fitbridge.application.exceptions import FitbridgeError, ProviderSessionError
from fitbridge.application.provider_session import ProviderSessionFactory
from fitbridge.config import settings
from fitbridge.domain.providers import PROVIDER_FACTORIES, provider_config
from fitbridge.infrastructure import log_utils
from fitbridge.infrastructure.oauth_flow import AuthorizationFlowRunner
from fitbridge.infrastructure.token_source import RefreshingTokenSource
from fitbridge.infrastructure.token_storage import JsonFileCredentialStore

console = Console()

app = typer.Typer(
    name="fitbridge",
    help="Authorize fitbridge against Fitbit and Strava and manage stored credentials.",
    add_completion=False,
)

ProviderArg = Annotated[str, Argument(help=f"Provider name ({', '.join(sorted(PROVIDER_FACTORIES))}).")]


def _load_store() -> JsonFileCredentialStore:
    try:
        return JsonFileCredentialStore.load(settings.CREDENTIALS_FILE)
    except FitbridgeError as exc:
        log_utils.log_message(f"Error loading credential store: {exc}", "ERROR")
        typer.echo(
            f"Could not load {settings.CREDENTIALS_FILE}: {exc}\n"
            "Fix or delete the file, then re-run to authenticate."
        )
        raise typer.Exit(code=1)


def _build_factory(store: JsonFileCredentialStore, *, open_browser: bool = False) -> ProviderSessionFactory:
    runner = AuthorizationFlowRunner.from_settings(settings, open_browser=open_browser)
    return ProviderSessionFactory(store, runner, request_timeout=settings.HTTP_TIMEOUT_SECONDS)


def _format_expiry(expiry: datetime | None) -> str:
    if expiry is None:
        return "no expiry"
    remaining = expiry - datetime.now(timezone.utc)
    stamp = expiry.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    if remaining.total_seconds() <= 0:
        return f"{stamp} (expired)"
    return stamp


@app.command()
def login(
    provider: ProviderArg,
    browser: Annotated[bool, Option("--browser/--no-browser", help="Open the authorize URL in a browser.")] = False,
) -> None:
    """
    Make sure a token is stored for PROVIDER, running the browser sign-in if needed.
    """
    store = _load_store()
    try:
        config = provider_config(provider, settings)
        _build_factory(store, open_browser=browser).ensure_token(config)
    except FitbridgeError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {provider} is authorized. Credentials saved to {store.path}.")


@app.command()
def status() -> None:
    """
    List the providers with stored credentials.
    """
    store = _load_store()
    providers = store.providers()
    if not providers:
        typer.echo(f"No credentials stored in {store.path}. Run `fitbridge login <provider>`.")
        return

    table = Table(title=f"Credentials in {store.path}")
    table.add_column("Provider")
    table.add_column("Access token expiry")
    table.add_column("Refresh token")
    for name in providers:
        token = store.get(name)
        if token is None:
            continue
        table.add_row(name, _format_expiry(token.expiry), "yes" if token.refresh_token else "no")
    console.print(table)


@app.command()
def refresh(provider: ProviderArg) -> None:
    """
    Force a token refresh for PROVIDER and save the new token.
    """
    store = _load_store()
    try:
        config = provider_config(provider, settings)
        token = store.get(provider)
        if token is None:
            typer.echo(f"No {provider} token stored. Run `fitbridge login {provider}` first.")
            raise typer.Exit(code=1)
        source = RefreshingTokenSource(config, token, request_timeout=settings.HTTP_TIMEOUT_SECONDS)
        refreshed = source.refresh()
        store.set(provider, refreshed)
    except FitbridgeError as exc:
        log_utils.log_message(f"Failed to refresh {provider} tokens: {exc}", "ERROR")
        typer.echo(str(exc))
        raise typer.Exit(code=1)

    typer.echo(f"[OK] {provider} tokens refreshed.")
    typer.echo(f"Access token:  {refreshed.access_token[:12]}... (truncated)")
    typer.echo(f"Expires:       {_format_expiry(refreshed.expiry)}")


@app.command()
def verify(provider: ProviderArg) -> None:
    """
    Call PROVIDER's profile endpoint with the stored credentials.
    """
    store = _load_store()
    try:
        config = provider_config(provider, settings)
        if not config.profile_url:
            typer.echo(f"{provider} has no profile endpoint to verify against.")
            raise typer.Exit(code=1)
        if store.get(provider) is None:
            raise ProviderSessionError(provider, f"No {provider} token stored. Run `fitbridge login {provider}` first.")
        session = _build_factory(store).session(config)
        response = session.get(config.profile_url, timeout=settings.HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
    except FitbridgeError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    except requests.exceptions.RequestException as exc:
        log_utils.log_message(f"{provider} verification request failed: {exc}", "ERROR")
        typer.echo(f"{provider} rejected the stored credentials: {exc}")
        raise typer.Exit(code=1)

    typer.echo(f"[OK] {provider} credentials accepted (HTTP {response.status_code}).")


__all__ = ["app"]
