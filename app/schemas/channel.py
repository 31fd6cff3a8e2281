"""Bot channel ODM schema."""

from datetime import datetime
from enum import Enum
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

from .schema_utils import parse_mongo_datetime


class ChannelType(str, Enum):
    TELEGRAM = "Telegram"
    WHATSAPP = "WhatsApp"
    INSTAGRAM = "Instagram"
    FACEBOOK = "Facebook"


class ChannelStatus(str, Enum):
    WORKING = "working"
    NOT_WORKING = "not working"
    LIVE = "live"


class ChannelUsage(BaseModel):
    """Usage counters reported by the bot platform."""

    messages_sent: int = 0
    active_users: int = 0
    errors: int = 0


class ChannelDescriptor(BaseModel):
    """Channel projection embedded in the owner document."""

    channel_type: ChannelType
    external_id: str
    display_name: str | None = None
    usage: ChannelUsage = Field(default_factory=ChannelUsage)


class BotChannel(Document):
    """A bot channel connected by an owner.

    This collection is the source of truth for an owner's channels. The
    `channels` / `channels_count` fields of `Owner` are recomputed from it.
    """

    owner_id: Indexed(str)  # type: ignore[valid-type]
    channel_type: ChannelType
    external_id: str
    display_name: str | None = None
    usage: ChannelUsage = Field(default_factory=ChannelUsage)
    status: ChannelStatus = ChannelStatus.WORKING

    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    def to_descriptor(self) -> ChannelDescriptor:
        return ChannelDescriptor(
            channel_type=self.channel_type,
            external_id=self.external_id,
            display_name=self.display_name,
            usage=self.usage.model_copy(),
        )

    class Settings:
        name = "bot_channel"
        indexes = [
            "owner_id",
            IndexModel([("channel_type", 1), ("external_id", 1)], unique=True),
        ]
