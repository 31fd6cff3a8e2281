"""Beanie ODM schemas for MongoDB collections."""

from .channel import BotChannel, ChannelDescriptor, ChannelStatus, ChannelType, ChannelUsage
from .init import init_beanie_odm
from .owner import DeviceRecord, Owner

__all__ = [
    "BotChannel",
    "ChannelDescriptor",
    "ChannelStatus",
    "ChannelType",
    "ChannelUsage",
    "DeviceRecord",
    "Owner",
    "init_beanie_odm",
]
