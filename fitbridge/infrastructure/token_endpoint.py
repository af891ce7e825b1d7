"""Requests against a provider's OAuth2 token endpoint."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import requests

from fitbridge.domain.providers import AUTH_STYLE_HEADER, ProviderConfig
from fitbridge.infrastructure.log_utils import log_message


def post_token_request(
    config: ProviderConfig,
    form: Mapping[str, str],
    *,
    timeout: float,
) -> requests.Response:
    """POST ``form`` to the token endpoint with the provider's client authentication.

    Network failures propagate as :class:`requests.RequestException`.
    """
    data = dict(form)
    auth = None
    if config.auth_style == AUTH_STYLE_HEADER:
        auth = (config.client_id, config.client_secret)
    else:
        data["client_id"] = config.client_id
        data["client_secret"] = config.client_secret

    return requests.post(
        config.token_url,
        data=data,
        auth=auth,
        headers={"Accept": "application/json"},
        timeout=timeout,
    )


def parse_json(response: requests.Response, *, context: str) -> Optional[Dict[str, Any]]:
    """Return the JSON object body, or ``None`` when it is missing or not an object."""
    try:
        payload = response.json()
    except ValueError as exc:
        log_message(f"Failed to parse {context} response as JSON: {exc}", "ERROR")
        return None
    return payload if isinstance(payload, dict) else None


def describe_error(response: requests.Response, payload: Optional[Mapping[str, Any]]) -> str:
    """Human-readable reason extracted from an OAuth2 error response."""
    reason_parts = []
    if payload:
        for key in ("error_description", "error", "message"):
            value = payload.get(key)
            if value:
                reason_parts.append(str(value))
        # Fitbit nests failures under "errors"
        errors = payload.get("errors")
        if isinstance(errors, list):
            for item in errors:
                if isinstance(item, dict) and item.get("message"):
                    reason_parts.append(str(item["message"]))
    return " ".join(reason_parts).strip() or f"HTTP {response.status_code}"


def error_code(payload: Optional[Mapping[str, Any]]) -> str:
    """The OAuth2 ``error`` code, including Fitbit's ``errors[].errorType`` form."""
    if not payload:
        return ""
    if payload.get("error"):
        return str(payload["error"]).lower()
    errors = payload.get("errors")
    if isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict) and item.get("errorType"):
                return str(item["errorType"]).lower()
    return ""


__all__ = ["post_token_request", "parse_json", "describe_error", "error_code"]
