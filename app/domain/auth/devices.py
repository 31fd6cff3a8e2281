"""Known-device registry for owners."""

from loguru import logger

from app.domain.sync._owners import OwnerRepository
from app.domain.utils.timeutils import utc_now
from app.schemas.owner import DeviceRecord

from .fingerprint import DeviceAttributes, FingerprintMode, generate_fingerprint


class DeviceRegistry:
    """Recognize returning devices by their STABLE fingerprint."""

    def __init__(self, owners: OwnerRepository):
        self._owners = owners

    async def register(self, owner_id: str, attrs: DeviceAttributes) -> tuple[DeviceRecord, bool]:
        """Record that `owner_id` signed in from `attrs`.

        Returns the device record and whether the device was seen for the first time.
        """
        fingerprint = generate_fingerprint(attrs, owner_id, FingerprintMode.STABLE)
        now = utc_now()
        device = DeviceRecord(
            fingerprint=fingerprint,
            device_type=attrs.device_type,
            device_name=attrs.device_name,
            user_agent=attrs.user_agent,
            platform=attrs.platform,
            screen_resolution=attrs.screen_resolution,
            timezone=attrs.timezone,
            language=attrs.language,
            first_seen_at=now,
            last_used_at=now,
        )

        is_new = await self._owners.add_device(owner_id, device)
        if is_new:
            logger.info("New device {} for owner {}", fingerprint[:12], owner_id)
        return device, is_new
