"""Service-to-service endpoints, guarded by the internal API key."""

from fastapi import APIRouter, Depends, Response
from loguru import logger

from app.api.v1.dependency import (
    get_device_registry,
    get_session_store,
    get_sync_service,
    set_session_cookie,
)
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.internal import IssueSessionIn, IssueSessionOut, SyncResultOut
from app.domain.auth.devices import DeviceRegistry
from app.domain.auth.session_store import SessionStore, token_hint
from app.domain.sync.sync_domain import SynchronizationService
from app.domain.sync.sync_models import MutationEvent, MutationKind, SyncResult
from app.shared.api.utils import verify_api_key

router = APIRouter(prefix="/internal", dependencies=[Depends(verify_api_key)])


def _sync_out(result: SyncResult) -> SyncResultOut:
    return SyncResultOut(**result.model_dump(), partial=result.partial)


@router.post("/sessions")
async def issue_session(
    body: IssueSessionIn,
    response: Response,
    devices: DeviceRegistry = Depends(get_device_registry),
    sync: SynchronizationService = Depends(get_sync_service),
    store: SessionStore = Depends(get_session_store),
) -> ApiOut[IssueSessionOut]:
    """Issue a session for an owner the auth provider has already verified."""
    device, is_new = await devices.register(body.owner_id, body.device)
    if is_new:
        # Other devices' sessions must see the new device count
        await sync.handle_event(
            MutationEvent(
                owner_id=body.owner_id,
                kind=MutationKind.DEVICE_ADDED,
                payload={"fingerprint": device.fingerprint},
            )
        )

    snapshot = await sync.build_snapshot(body.owner_id)
    record = await store.create(body.owner_id, snapshot, fingerprint=device.fingerprint)
    set_session_cookie(response, record.token, record.expires_at)
    logger.info("Issued session {} for owner {}", token_hint(record.token), body.owner_id)

    return ApiOut[IssueSessionOut](
        results=IssueSessionOut(
            token=record.token,
            owner_id=record.owner_id,
            expires_at=record.expires_at,
            fingerprint=device.fingerprint,
            new_device=is_new,
            snapshot=record.snapshot,
        )
    )


@router.post("/sync/events")
async def ingest_mutation(
    event: MutationEvent,
    sync: SynchronizationService = Depends(get_sync_service),
) -> ApiOut[SyncResultOut]:
    """Synchronize the owner a committed mutation belongs to."""
    result = await sync.handle_event(event)
    return ApiOut[SyncResultOut](results=_sync_out(result))


@router.post("/sync/owners/{owner_id}")
async def resync_owner(
    owner_id: str,
    sync: SynchronizationService = Depends(get_sync_service),
) -> ApiOut[SyncResultOut]:
    """Force a resynchronization, e.g. after a partial fan-out."""
    result = await sync.synchronize(owner_id)
    return ApiOut[SyncResultOut](results=_sync_out(result))
