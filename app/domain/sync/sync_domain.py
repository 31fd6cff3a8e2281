"""Owner synchronization service.

Keeps the owner's denormalized channel projection and every live session
snapshot consistent with the authoritative channel collection. Each run
recomputes from current state instead of applying deltas, so runs are
idempotent and converge regardless of the order mutations arrive in.
"""

from loguru import logger

from app.domain.auth.session_store import SessionStore
from app.schemas.channel import ChannelDescriptor
from app.schemas.session_record import ChannelSummary, SessionSnapshot
from app.utils.app_errors import StorageUnavailable

from ._owners import OwnerRepository, owner_not_found
from .sync_models import MutationEvent, OwnerProjection, SyncResult

MAX_SYNC_ATTEMPTS = 5


def summarize_channels(channels: list[ChannelDescriptor]) -> list[ChannelSummary]:
    return [
        ChannelSummary(name=c.display_name, type=c.channel_type.value, external_id=c.external_id)
        for c in channels
    ]


class SynchronizationService:
    """Propagate authoritative owner mutations into the session cache."""

    def __init__(self, session_store: SessionStore, owners: OwnerRepository):
        self._sessions = session_store
        self._owners = owners

    async def handle_event(self, event: MutationEvent) -> SyncResult:
        """Synchronize the owner a committed mutation belongs to.

        Every mutation kind is handled the same way: the payload is not
        applied, the owner is recomputed.
        """
        logger.info("Mutation {} for owner {}", event.kind.value, event.owner_id)
        return await self.synchronize(event.owner_id)

    async def synchronize(self, owner_id: str) -> SyncResult:
        """Recompute the owner's projection, persist it if changed, fan it out.

        Raises AppError E_OWNER_NOT_FOUND for an unknown owner and
        StorageUnavailable when the owner write fails. Session cache failures
        are reported in the result instead.
        """
        for attempt in range(1, MAX_SYNC_ATTEMPTS + 1):
            # Owner first: a projection built from channels read after this
            # version can only be written if nobody wrote in between
            owner = await self._owners.get_owner(owner_id)
            if owner is None:
                raise owner_not_found(owner_id)
            channels = await self._owners.load_channels(owner_id)

            projection = OwnerProjection(
                channels=channels,
                channels_count=len(channels),
                devices_count=len(owner.devices),
            )

            if projection.matches(owner):
                version = owner.sync_version
                owner_updated = False
                break

            try:
                saved = await self._owners.save_projection(owner_id, projection, owner.sync_version)
            except StorageUnavailable:
                logger.error("Failed to persist projection for owner {}", owner_id)
                raise
            if saved:
                version = owner.sync_version + 1
                owner_updated = True
                logger.info(
                    "Updated owner {} projection: channels={} devices={} version={}",
                    owner_id, projection.channels_count, projection.devices_count, version,
                )
                break

            logger.debug("Owner {} changed concurrently, resyncing (attempt {})", owner_id, attempt)
        else:
            raise StorageUnavailable(f"Owner {owner_id} kept changing during synchronization")

        result = SyncResult(
            owner_id=owner_id,
            channels_count=projection.channels_count,
            devices_count=projection.devices_count,
            sync_version=version,
            owner_updated=owner_updated,
        )
        await self._fan_out(result, projection)
        return result

    async def _fan_out(self, result: SyncResult, projection: OwnerProjection) -> None:
        summaries = summarize_channels(projection.channels)
        version = result.sync_version

        def merge(snapshot: SessionSnapshot) -> SessionSnapshot:
            # A newer run already wrote this session
            if snapshot.sync_version > version:
                return snapshot
            return snapshot.model_copy(
                update={
                    "channels_count": projection.channels_count,
                    "channels": summaries,
                    "devices_count": projection.devices_count,
                    "sync_version": version,
                }
            )

        try:
            fanout = await self._sessions.update_snapshot(result.owner_id, merge)
        except StorageUnavailable as e:
            logger.warning("Session fan-out skipped for owner {}: {}", result.owner_id, e.errmesg)
            result.fanout_error = e.errmesg
            return

        result.sessions_total = fanout.total
        result.sessions_updated = fanout.updated
        result.failed_sessions = fanout.failed
        if fanout.partial:
            logger.warning(
                "Partial fan-out for owner {}: {}/{} session writes failed",
                result.owner_id, len(fanout.failed), fanout.total,
            )
        else:
            logger.debug(
                "Fan-out for owner {}: updated={} unchanged={} skipped={}",
                result.owner_id, fanout.updated, fanout.unchanged, fanout.skipped,
            )

    async def build_snapshot(self, owner_id: str) -> SessionSnapshot:
        """Authoritative snapshot for a session about to be issued."""
        owner = await self._owners.get_owner(owner_id)
        if owner is None:
            raise owner_not_found(owner_id)
        channels = await self._owners.load_channels(owner_id)
        return SessionSnapshot(
            email=owner.email,
            channels_count=len(channels),
            channels=summarize_channels(channels),
            devices_count=len(owner.devices),
            sync_version=owner.sync_version,
        )
