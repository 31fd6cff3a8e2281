"""Session endpoints for signed-in clients."""

from fastapi import APIRouter, Depends, Response

from app.api.v1.dependency import (
    CurrentIdentity,
    EndingIdentity,
    OptionalIdentity,
    clear_session_cookie,
    get_session_store,
)
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.session import (
    ListSessionsOut,
    LogoutOut,
    SessionCheckOut,
    SessionInfoOut,
    WhoAmIOut,
)
from app.domain.auth.session_store import SessionStore

router = APIRouter(prefix="/session")


@router.get("/check")
async def check_session(identity: CurrentIdentity) -> ApiOut[SessionCheckOut]:
    """Return the signed-in owner and the session snapshot."""
    return ApiOut[SessionCheckOut](
        results=SessionCheckOut(
            owner_id=identity.owner_id,
            session=SessionInfoOut(
                issued_at=identity.session.issued_at,
                expires_at=identity.session.expires_at,
                fingerprint=identity.session.fingerprint,
                current=True,
            ),
            snapshot=identity.snapshot,
        )
    )


@router.get("/whoami")
async def whoami(identity: OptionalIdentity) -> ApiOut[WhoAmIOut]:
    """Report whether the caller is signed in; never rejects a missing token."""
    if identity is None:
        return ApiOut[WhoAmIOut](results=WhoAmIOut(authenticated=False))
    return ApiOut[WhoAmIOut](results=WhoAmIOut(authenticated=True, owner_id=identity.owner_id))


@router.get("/list_sessions")
async def list_sessions(
    identity: CurrentIdentity,
    store: SessionStore = Depends(get_session_store),
) -> ApiOut[ListSessionsOut]:
    """List the owner's live sessions across devices."""
    records = await store.list_sessions(identity.owner_id)
    return ApiOut[ListSessionsOut](
        results=ListSessionsOut(
            sessions=[
                SessionInfoOut(
                    issued_at=r.issued_at,
                    expires_at=r.expires_at,
                    fingerprint=r.fingerprint,
                    current=r.token == identity.session.token,
                )
                for r in records
            ]
        )
    )


@router.post("/logout")
async def logout(
    identity: EndingIdentity,
    response: Response,
    store: SessionStore = Depends(get_session_store),
) -> ApiOut[LogoutOut]:
    """Invalidate the current session."""
    removed = await store.invalidate(identity.session.token)
    clear_session_cookie(response)
    return ApiOut[LogoutOut](results=LogoutOut(sessions_removed=int(removed)))


@router.post("/logout_all")
async def logout_all(
    identity: EndingIdentity,
    response: Response,
    store: SessionStore = Depends(get_session_store),
) -> ApiOut[LogoutOut]:
    """Invalidate every session of the owner on every device."""
    removed = await store.invalidate_all(identity.owner_id)
    clear_session_cookie(response)
    return ApiOut[LogoutOut](results=LogoutOut(sessions_removed=removed))
