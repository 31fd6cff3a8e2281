"""Integration tests for the Beanie owner repository."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.domain.auth.devices import DeviceRegistry
from app.domain.auth.fingerprint import DeviceAttributes
from app.domain.sync._owners import BeanieOwnerRepository
from app.domain.sync.sync_domain import SynchronizationService
from app.domain.sync.sync_models import OwnerProjection
from app.schemas import BotChannel, ChannelType, Owner
from app.utils.app_errors import AppError

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def unique_id(prefix: str = "") -> str:
    """Generate a unique ID for test data to avoid collisions."""
    return f"{prefix}{uuid4().hex[:8]}"


async def create_owner(owner_id: str | None = None) -> Owner:
    owner_id = owner_id or unique_id("o_")
    owner = Owner(owner_id=owner_id, email=f"{owner_id}@example.com", created_at=NOW, updated_at=NOW)
    await owner.insert()
    return owner


async def create_channel(owner_id: str, name: str, offset: int, channel_type=ChannelType.TELEGRAM) -> BotChannel:
    created = NOW + timedelta(minutes=offset)
    channel = BotChannel(
        owner_id=owner_id,
        channel_type=channel_type,
        external_id=unique_id("ext_"),
        display_name=name,
        created_at=created,
        updated_at=created,
    )
    await channel.insert()
    return channel


@pytest.mark.usefixtures("clean_beanie_db")
class TestBeanieOwnerRepository:
    """BeanieOwnerRepository against a real MongoDB."""

    @pytest.mark.asyncio
    async def test_get_owner(self):
        owner = await create_owner()

        state = await BeanieOwnerRepository().get_owner(owner.owner_id)

        assert state.owner_id == owner.owner_id
        assert state.sync_version == 0
        assert await BeanieOwnerRepository().get_owner("missing") is None

    @pytest.mark.asyncio
    async def test_load_channels_is_ordered_by_creation(self):
        owner = await create_owner()
        await create_channel(owner.owner_id, "Second", offset=2)
        await create_channel(owner.owner_id, "First", offset=1)

        channels = await BeanieOwnerRepository().load_channels(owner.owner_id)

        assert [c.display_name for c in channels] == ["First", "Second"]

    @pytest.mark.asyncio
    async def test_save_projection_is_version_guarded(self):
        owner = await create_owner()
        await create_channel(owner.owner_id, "BotA", offset=1)
        repo = BeanieOwnerRepository()
        channels = await repo.load_channels(owner.owner_id)
        projection = OwnerProjection(channels=channels, channels_count=1, devices_count=0)

        assert await repo.save_projection(owner.owner_id, projection, expected_version=0) is True
        # A second writer that read version 0 loses
        assert await repo.save_projection(owner.owner_id, projection, expected_version=0) is False

        stored = await Owner.find_one(Owner.owner_id == owner.owner_id)
        assert stored.sync_version == 1
        assert stored.channels_count == 1

    @pytest.mark.asyncio
    async def test_add_device(self):
        owner = await create_owner()
        registry = DeviceRegistry(BeanieOwnerRepository())
        attrs = DeviceAttributes(device_type="mobile", device_name="Pixel")

        _, first_new = await registry.register(owner.owner_id, attrs)
        _, second_new = await registry.register(owner.owner_id, attrs)

        assert (first_new, second_new) == (True, False)
        stored = await Owner.find_one(Owner.owner_id == owner.owner_id)
        assert len(stored.devices) == 1

    @pytest.mark.asyncio
    async def test_add_device_unknown_owner(self):
        registry = DeviceRegistry(BeanieOwnerRepository())

        with pytest.raises(AppError):
            await registry.register("ghost", DeviceAttributes(device_type="mobile", device_name="Pixel"))

    @pytest.mark.asyncio
    async def test_synchronize_end_to_end(self, session_store):
        owner = await create_owner()
        service = SynchronizationService(session_store, BeanieOwnerRepository())
        record = await session_store.create(owner.owner_id, await service.build_snapshot(owner.owner_id))
        await create_channel(owner.owner_id, "BotA", offset=1, channel_type=ChannelType.FACEBOOK)

        result = await service.synchronize(owner.owner_id)
        again = await service.synchronize(owner.owner_id)

        assert result.owner_updated and not again.owner_updated
        snapshot = (await session_store.lookup(record.token)).snapshot
        assert [(c.name, c.type) for c in snapshot.channels] == [("BotA", "Facebook")]
