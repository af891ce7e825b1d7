"""OAuth token value object shared by the store, flow and token sources."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

# Refresh a minute early so a token never expires mid-request.
EXPIRY_LEEWAY = timedelta(seconds=60)


def _parse_expiry(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Expiry timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported expiry value: {value!r}")


def _format_expiry(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class OAuthToken:
    """Access/refresh credential pair plus expiry."""

    access_token: str
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OAuthToken":
        """Build a token from its persisted representation.

        Raises ``ValueError`` when the record is not a usable token.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Token record must be an object, got {type(data).__name__}")
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token record is missing access_token")
        return cls(
            access_token=access_token,
            token_type=str(data.get("token_type") or "Bearer"),
            refresh_token=data.get("refresh_token") or None,
            expiry=_parse_expiry(data.get("expiry")),
        )

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> "OAuthToken":
        """Build a token from a token endpoint JSON body.

        ``expires_in`` (seconds from now) wins over ``expires_at`` (epoch
        seconds, as Strava sends it).
        """
        now = now or datetime.now(timezone.utc)
        expiry: Optional[datetime] = None
        if payload.get("expires_in") not in (None, ""):
            expiry = now + timedelta(seconds=int(payload["expires_in"]))
        elif payload.get("expires_at") not in (None, ""):
            expiry = _parse_expiry(int(payload["expires_at"]))
        token = dict(payload)
        token["expiry"] = expiry
        return cls.from_dict(token)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "refresh_token": self.refresh_token,
            "expiry": _format_expiry(self.expiry) if self.expiry else None,
        }

    def is_valid(self, *, now: Optional[datetime] = None) -> bool:
        """True when the access token can be used without refreshing."""
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now < self.expiry - EXPIRY_LEEWAY

    def authorization_header(self) -> str:
        token_type = self.token_type or "Bearer"
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        return f"{token_type} {self.access_token}"

    def with_fallback_refresh_token(self, refresh_token: Optional[str]) -> "OAuthToken":
        """Keep the previous refresh token when the provider did not rotate it."""
        if self.refresh_token or not refresh_token:
            return self
        return replace(self, refresh_token=refresh_token)


__all__ = ["OAuthToken", "EXPIRY_LEEWAY"]
