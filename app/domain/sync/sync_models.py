"""Synchronization domain models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from app.schemas.channel import ChannelDescriptor
from app.schemas.owner import DeviceRecord


class MutationKind(str, Enum):
    CHANNEL_ADDED = "ChannelAdded"
    CHANNEL_REMOVED = "ChannelRemoved"
    CHANNEL_UPDATED = "ChannelUpdated"
    DEVICE_ADDED = "DeviceAdded"


class MutationEvent(BaseModel):
    """Emitted by business operations after they commit an owner mutation."""

    owner_id: str
    kind: MutationKind
    # Informational only; synchronization always recomputes from the store
    payload: dict[str, Any] = Field(default_factory=dict)


class OwnerState(BaseModel):
    """Authoritative owner fields the synchronization reads."""

    owner_id: str
    email: str | None = None
    channels: list[ChannelDescriptor] = Field(default_factory=list)
    channels_count: int = 0
    devices: list[DeviceRecord] = Field(default_factory=list)
    devices_count: int = 0
    sync_version: int = 0


class OwnerProjection(BaseModel):
    """Recomputed counters and descriptors written back to the owner."""

    channels: list[ChannelDescriptor]
    channels_count: int
    devices_count: int

    def matches(self, owner: OwnerState) -> bool:
        return (
            owner.channels == self.channels
            and owner.channels_count == self.channels_count
            and owner.devices_count == self.devices_count
        )


class SyncResult(BaseModel):
    """Completion signal of one synchronization run."""

    owner_id: str
    channels_count: int
    devices_count: int
    sync_version: int
    owner_updated: bool = False
    sessions_total: int = 0
    sessions_updated: int = 0
    # Token hints of sessions whose snapshot write failed
    failed_sessions: list[str] = Field(default_factory=list)
    # Set when the session cache could not be reached at all
    fanout_error: str | None = None

    @property
    def partial(self) -> bool:
        """True when the authoritative write succeeded but some fan-out did not."""
        return bool(self.failed_sessions) or self.fanout_error is not None
