"""Authenticated ``requests`` transport handed to REST collaborators."""

from __future__ import annotations

import requests
from requests.auth import AuthBase

from fitbridge.infrastructure.token_source import TokenSource


class BearerAuth(AuthBase):
    """Attach the token source's current credential to each outgoing request."""

    def __init__(self, source: TokenSource) -> None:
        self.source = source

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        request.headers["Authorization"] = self.source.token().authorization_header()
        return request


def authorized_session(source: TokenSource) -> requests.Session:
    session = requests.Session()
    session.auth = BearerAuth(source)
    return session


__all__ = ["BearerAuth", "authorized_session"]
