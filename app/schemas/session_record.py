"""Session cache payload schema.

Session records live in Redis, not MongoDB. Every payload is validated on
read; a payload that fails validation is treated as absent.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SESSION_SCHEMA_VERSION = 1


class ChannelSummary(BaseModel):
    """Channel entry shown to the client: name and type only."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str | None = None
    type: str
    external_id: str


class SessionSnapshot(BaseModel):
    """Denormalized owner data carried by a session."""

    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    channels_count: int = 0
    channels: list[ChannelSummary] = Field(default_factory=list)
    devices_count: int = 0
    # Owner projection version this snapshot was built from
    sync_version: int = 0


class SessionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    schema_version: Literal[1] = SESSION_SCHEMA_VERSION
    token: str
    owner_id: str
    issued_at: datetime
    expires_at: datetime
    fingerprint: str | None = None
    snapshot: SessionSnapshot = Field(default_factory=SessionSnapshot)
