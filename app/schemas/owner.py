"""Owner ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator

from .channel import ChannelDescriptor
from .schema_utils import parse_mongo_datetime


class DeviceRecord(BaseModel):
    """A device an owner has signed in from, keyed by its stable fingerprint."""

    fingerprint: str
    device_type: str
    device_name: str
    user_agent: str | None = None
    platform: str | None = None
    screen_resolution: str | None = None
    timezone: str | None = None
    language: str | None = None
    first_seen_at: datetime
    last_used_at: datetime

    @field_validator("first_seen_at", "last_used_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)


class Owner(Document):
    """Account/workspace owning sessions, channels and devices."""

    owner_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    email: Indexed(str, unique=True)  # type: ignore[valid-type]
    full_name: str | None = None

    # Denormalized channel projection, recomputed from BotChannel
    channels: list[ChannelDescriptor] = Field(default_factory=list)
    channels_count: int = 0

    devices: list[DeviceRecord] = Field(default_factory=list)
    devices_count: int = 0

    # Bumped on every projection write; guards against stale concurrent syncs
    sync_version: int = 0

    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    class Settings:
        name = "owner"
