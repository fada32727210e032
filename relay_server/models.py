"""
Relay records and authorization codes, plus the SQLAlchemy table backing the SQL store.
"""
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    # JSON-encoded value
    value: Mapped[str] = mapped_column(Text, nullable=False)
    # Epoch seconds; rows past this are treated as absent
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


@dataclass(frozen=True)
class RelayRecord:
    """One in-flight authorization attempt, keyed by the state we send to GitHub."""

    relay_key: str
    external_state: str
    redirect_uri: str
    scope: str

    def to_payload(self) -> dict:
        return {
            "externalState": self.external_state,
            "redirectUri": self.redirect_uri,
            "scope": self.scope,
        }

    @classmethod
    def from_payload(cls, relay_key: str, payload) -> "RelayRecord | None":
        if not isinstance(payload, dict):
            return None
        external_state = payload.get("externalState")
        redirect_uri = payload.get("redirectUri")
        if not external_state or not redirect_uri:
            return None
        return cls(
            relay_key=relay_key,
            external_state=str(external_state),
            redirect_uri=str(redirect_uri),
            scope=str(payload.get("scope") or ""),
        )


@dataclass(frozen=True)
class AuthorizationCode:
    """Verified GitHub identity waiting to be redeemed at /token."""

    code: str
    user_id: str
    issued_at: int  # epoch milliseconds

    def to_payload(self) -> dict:
        return {"userId": self.user_id, "issuedAt": self.issued_at}

    @classmethod
    def from_payload(cls, code: str, payload) -> "AuthorizationCode | None":
        if not isinstance(payload, dict):
            return None
        user_id = payload.get("userId")
        if user_id is None or str(user_id) == "":
            return None
        issued_at = payload.get("issuedAt")
        return cls(
            code=code,
            user_id=str(user_id),
            issued_at=int(issued_at) if isinstance(issued_at, (int, float)) else 0,
        )
