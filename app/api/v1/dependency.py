from datetime import datetime, timedelta
from typing import Annotated

from fastapi import Depends, Request, Response
from redis.asyncio import Redis

from app.app_config import get_app_environ_config
from app.domain.auth.auth_models import AuthPolicy, ResolvedIdentity
from app.domain.auth.devices import DeviceRegistry
from app.domain.auth.identity import IdentityResolver, extract_token
from app.domain.auth.session_store import SessionStore
from app.domain.sync._owners import BeanieOwnerRepository, OwnerRepository
from app.domain.sync.sync_domain import SynchronizationService
from app.shared.api.utils import get_redis_major_client

_owner_repository = BeanieOwnerRepository(op_timeout=get_app_environ_config().MONGO_TIMEOUT_SECONDS)


def get_session_store(
    request: Request, redis_client: Redis = Depends(get_redis_major_client)
) -> SessionStore:
    """One store per app, so its concurrency cap spans all requests of the worker."""
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        cfg = get_app_environ_config()
        store = SessionStore(
            redis_client,
            ttl=timedelta(seconds=cfg.SESSION_TTL_SECONDS),
            op_timeout=cfg.SESSION_STORE_TIMEOUT_SECONDS,
            key_prefix=cfg.SESSION_KEY_PREFIX,
            max_concurrency=cfg.SESSION_STORE_MAX_CONCURRENCY,
        )
        request.app.state.session_store = store
    return store


def get_owner_repository() -> OwnerRepository:
    return _owner_repository


def get_identity_resolver(
    store: SessionStore = Depends(get_session_store),
    owners: OwnerRepository = Depends(get_owner_repository),
) -> IdentityResolver:
    return IdentityResolver(store, owners)


def get_sync_service(
    store: SessionStore = Depends(get_session_store),
    owners: OwnerRepository = Depends(get_owner_repository),
) -> SynchronizationService:
    return SynchronizationService(store, owners)


def get_device_registry(owners: OwnerRepository = Depends(get_owner_repository)) -> DeviceRegistry:
    return DeviceRegistry(owners)


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    """HTTP-only, SameSite=Strict cookie expiring with the session."""
    cfg = get_app_environ_config()
    response.set_cookie(
        key=cfg.SESSION_COOKIE_NAME,
        value=token,
        expires=expires_at,
        httponly=True,
        secure=cfg.SESSION_COOKIE_SECURE,
        samesite="strict",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    cfg = get_app_environ_config()
    response.delete_cookie(
        key=cfg.SESSION_COOKIE_NAME,
        httponly=True,
        secure=cfg.SESSION_COOKIE_SECURE,
        samesite="strict",
        path="/",
    )


def request_token(request: Request) -> str | None:
    cfg = get_app_environ_config()
    return extract_token(
        request.cookies.get(cfg.SESSION_COOKIE_NAME),
        request.headers.get("authorization"),
    )


def identity_dependency(policy: AuthPolicy, *, rolling_cookie: bool = True):
    """Build a dependency resolving the request's session under `policy`.

    With `rolling_cookie` the cookie is re-issued on success so its expiry
    follows the rolling TTL. Endpoints that end the session turn it off.
    """

    async def resolve_identity(
        request: Request,
        response: Response,
        resolver: IdentityResolver = Depends(get_identity_resolver),
    ) -> ResolvedIdentity | None:
        identity = await resolver.resolve(request_token(request), policy)
        if identity is not None and rolling_cookie:
            set_session_cookie(response, identity.session.token, identity.session.expires_at)
        return identity

    return resolve_identity


require_identity = identity_dependency(AuthPolicy.REQUIRED)
optional_identity = identity_dependency(AuthPolicy.OPTIONAL)
ending_identity = identity_dependency(AuthPolicy.REQUIRED, rolling_cookie=False)

CurrentIdentity = Annotated[ResolvedIdentity, Depends(require_identity)]
# Logout endpoints: the response carries only the cookie deletion
EndingIdentity = Annotated[ResolvedIdentity, Depends(ending_identity)]
OptionalIdentity = Annotated[ResolvedIdentity | None, Depends(optional_identity)]
