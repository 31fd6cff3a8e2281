"""Auth domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from app.schemas.session_record import SessionRecord, SessionSnapshot


class AuthPolicy(str, Enum):
    """What an endpoint does when the request carries no session token."""

    REQUIRED = "required"  # reject immediately
    OPTIONAL = "optional"  # proceed unauthenticated


class SessionMeta(BaseModel):
    token: str
    issued_at: datetime
    expires_at: datetime
    fingerprint: str | None = None


class ResolvedIdentity(BaseModel):
    """Identity handed to business handlers once a token is resolved."""

    owner_id: str
    session: SessionMeta
    snapshot: SessionSnapshot

    @classmethod
    def from_record(cls, record: SessionRecord) -> "ResolvedIdentity":
        return cls(
            owner_id=record.owner_id,
            session=SessionMeta(
                token=record.token,
                issued_at=record.issued_at,
                expires_at=record.expires_at,
                fingerprint=record.fingerprint,
            ),
            snapshot=record.snapshot,
        )


class SnapshotFanout(BaseModel):
    """Outcome of applying one snapshot transform to an owner's sessions."""

    owner_id: str
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    # Token hints (never raw tokens) of records whose write failed
    failed: list[str] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed)
