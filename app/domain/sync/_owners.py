"""Owner repository: the seam between synchronization and the durable store."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import TypeVar

from beanie.odm.operators.update.general import Set
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from app.domain.utils.timeutils import utc_now
from app.schemas import BotChannel, Owner
from app.schemas.channel import ChannelDescriptor
from app.schemas.owner import DeviceRecord
from app.utils.app_errors import (
    AppError,
    AppErrorCode,
    DataCorruption,
    HttpStatusCode,
    StorageUnavailable,
)

from .sync_models import OwnerProjection, OwnerState

T = TypeVar("T")


def owner_not_found(owner_id: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_OWNER_NOT_FOUND,
        errmesg=f"Owner not found: {owner_id}",
        status_code=HttpStatusCode.NOT_FOUND,
    )


class OwnerRepository(ABC):
    """Access to owners and their authoritative child collections."""

    @abstractmethod
    async def get_owner(self, owner_id: str) -> OwnerState | None:
        """Current owner fields, read fresh."""

    @abstractmethod
    async def load_channels(self, owner_id: str) -> list[ChannelDescriptor]:
        """Channels from the authoritative child collection.

        Ordered by creation time, then channel type, then external id.
        """

    @abstractmethod
    async def save_projection(
        self, owner_id: str, projection: OwnerProjection, expected_version: int
    ) -> bool:
        """Write the projection if the owner is still at `expected_version`.

        Returns False when another writer got there first (or the owner is gone).
        """

    @abstractmethod
    async def add_device(self, owner_id: str, device: DeviceRecord) -> bool:
        """Append `device` unless its fingerprint is known; then only bump last_used_at.

        Returns True when the device is new. Raises AppError E_OWNER_NOT_FOUND.
        """


class BeanieOwnerRepository(OwnerRepository):
    """OwnerRepository over the Beanie `Owner` and `BotChannel` documents."""

    def __init__(self, op_timeout: float = 5.0):
        self._op_timeout = op_timeout

    async def _io(self, op: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._op_timeout)
        except (asyncio.TimeoutError, PyMongoError) as e:
            logger.error("Owner store {} failed: {}: {}", op, type(e).__name__, e)
            raise StorageUnavailable(f"Owner store unavailable during {op}") from e
        except ValidationError as e:
            logger.warning("Owner store {} read an invalid document: {} errors", op, e.error_count())
            raise DataCorruption(f"Corrupted owner data during {op}") from e

    async def get_owner(self, owner_id: str) -> OwnerState | None:
        owner = await self._io("get_owner", self._find_owner(owner_id))
        if owner is None:
            return None
        return OwnerState(
            owner_id=owner.owner_id,
            email=owner.email,
            channels=owner.channels,
            channels_count=owner.channels_count,
            devices=owner.devices,
            devices_count=owner.devices_count,
            sync_version=owner.sync_version,
        )

    async def _find_owner(self, owner_id: str) -> Owner | None:
        return await Owner.find_one(Owner.owner_id == owner_id)

    async def load_channels(self, owner_id: str) -> list[ChannelDescriptor]:
        docs = await self._io("load_channels", self._find_channels(owner_id))
        docs.sort(key=lambda d: (d.created_at, d.channel_type.value, d.external_id))
        return [doc.to_descriptor() for doc in docs]

    async def _find_channels(self, owner_id: str) -> list[BotChannel]:
        return await BotChannel.find(BotChannel.owner_id == owner_id).to_list()

    async def save_projection(
        self, owner_id: str, projection: OwnerProjection, expected_version: int
    ) -> bool:
        result = await self._io(
            "save_projection", self._save_projection(owner_id, projection, expected_version)
        )
        return result.modified_count == 1

    async def _save_projection(self, owner_id: str, projection: OwnerProjection, expected_version: int):
        return await Owner.find_one(
            Owner.owner_id == owner_id,
            Owner.sync_version == expected_version,
        ).update(
            Set(
                {
                    Owner.channels: [c.model_dump(mode="json") for c in projection.channels],
                    Owner.channels_count: projection.channels_count,
                    Owner.devices_count: projection.devices_count,
                    Owner.sync_version: expected_version + 1,
                    Owner.updated_at: utc_now(),
                }
            )
        )

    async def add_device(self, owner_id: str, device: DeviceRecord) -> bool:
        return await self._io("add_device", self._add_device(owner_id, device))

    async def _add_device(self, owner_id: str, device: DeviceRecord) -> bool:
        pushed = await Owner.find_one(
            {"owner_id": owner_id, "devices.fingerprint": {"$ne": device.fingerprint}}
        ).update(
            {
                "$push": {"devices": device.model_dump(mode="python")},
                "$set": {"updated_at": utc_now()},
            }
        )
        if pushed.modified_count == 1:
            return True

        touched = await Owner.find_one(
            {"owner_id": owner_id, "devices.fingerprint": device.fingerprint}
        ).update({"$set": {"devices.$.last_used_at": device.last_used_at}})
        if touched.matched_count == 0:
            raise owner_not_found(owner_id)
        return False
