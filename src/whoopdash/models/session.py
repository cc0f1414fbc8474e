"""Credential and session models: token bundle, pending login, session row."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, FrozenSet, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenBundle(BaseModel):
    """
    One access/refresh credential pair as issued by the token endpoint.

    Immutable: a refresh produces a new bundle rather than editing this one.
    Datetimes are always timezone-aware (naive values are read as UTC).
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str = ""  # empty when the provider issued none (no `offline` scope)
    issued_at: datetime
    expires_at: datetime
    scopes: FrozenSet[str]

    @field_validator("issued_at", "expires_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_invariants(self) -> "TokenBundle":
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")
        if not self.scopes:
            raise ValueError("token bundle must carry at least one scope")
        return self

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_stale(self, now: datetime, margin: timedelta) -> bool:
        """True once fewer than `margin` remain before expiry."""
        return now >= self.expires_at - margin

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "TokenBundle":
        return cls.model_validate_json(raw)

    @classmethod
    def from_token_response(
        cls,
        payload: Any,
        issued_at: datetime,
        requested_scopes: Iterable[str],
        allowed_scopes: Iterable[str],
        previous_refresh_token: str = "",
    ) -> "TokenBundle":
        """
        Build a bundle from a token-endpoint JSON body.

        Granted scopes come from the response `scope` field when present,
        otherwise from what was requested; either way they are cut down to
        the configured scopes.

        Raises:
            ValueError: if the body lacks a usable access_token/expires_in.
        """
        if not isinstance(payload, dict):
            raise ValueError("token response is not a JSON object")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response has no access_token")

        try:
            expires_in = int(payload["expires_in"])
        except (KeyError, TypeError, ValueError):
            raise ValueError("token response has no usable expires_in")
        if expires_in <= 0:
            raise ValueError("token response expires_in must be positive")

        granted = payload.get("scope")
        if isinstance(granted, str) and granted.strip():
            candidates = granted.replace(",", " ").split()
        else:
            candidates = list(requested_scopes)
        allowed = set(allowed_scopes)

        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=expires_in),
            scopes=frozenset(s for s in candidates if s in allowed),
        )


@dataclass(frozen=True)
class AuthorizationRequest:
    """A login in progress, keyed by its single-use state nonce."""

    state_nonce: str
    requested_scopes: Tuple[str, ...]
    created_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at > ttl


@dataclass(frozen=True)
class Session:
    session_id: str
    token_bundle: Optional[TokenBundle] = None


class SessionRecord(SQLModel, table=True):
    """Persisted session; the bundle is stored as its JSON serialization."""

    __tablename__ = "sessions"

    session_id: str = Field(primary_key=True)
    token_json: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

    def to_session(self) -> Session:
        bundle = TokenBundle.from_json(self.token_json) if self.token_json else None
        return Session(session_id=self.session_id, token_bundle=bundle)
