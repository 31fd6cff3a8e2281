"""Identity resolution for inbound requests.

Transport-facing failures are coarse on purpose: a missing, expired or
unknown token, or one whose owner no longer exists, is E_UNAUTHORIZED (401)
and a backing-store outage is E_STORAGE_UNAVAILABLE (503) with a generic
message.
"""

from loguru import logger

from app.domain.sync._owners import OwnerRepository
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode, StorageUnavailable

from .auth_models import AuthPolicy, ResolvedIdentity
from .session_store import SessionStore, token_hint

BEARER_SCHEME = "bearer"


def extract_token(cookie_value: str | None, authorization: str | None) -> str | None:
    """Session token from the session cookie, else the Authorization header.

    The header may carry the raw token or `Bearer <token>`.
    """
    if cookie_value and cookie_value.strip():
        return cookie_value.strip()
    if not authorization:
        return None

    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == BEARER_SCHEME:
        value = rest.strip()
    return value or None


def _unauthorized(message: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_UNAUTHORIZED,
        errmesg=message,
        status_code=HttpStatusCode.UNAUTHORIZED,
    )


def _unavailable() -> AppError:
    return AppError(
        errcode=AppErrorCode.E_STORAGE_UNAVAILABLE,
        errmesg="Service temporarily unavailable, please retry",
        status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
    )


class IdentityResolver:
    """Resolve session tokens to owner identities and keep sessions rolling.

    A session only resolves while its owner exists. Tokens whose owner has
    been deleted are invalidated on first use.
    """

    def __init__(self, session_store: SessionStore, owners: OwnerRepository):
        self._store = session_store
        self._owners = owners

    async def resolve(self, token: str | None, policy: AuthPolicy) -> ResolvedIdentity | None:
        """Resolve `token` under the endpoint's `policy`.

        Returns None only for a missing token under AuthPolicy.OPTIONAL. An
        invalid token is rejected under both policies.
        """
        if not token:
            if policy is AuthPolicy.OPTIONAL:
                return None
            raise _unauthorized("Session token required")

        try:
            record = await self._store.lookup(token)
        except StorageUnavailable as e:
            logger.warning("Identity lookup unavailable token={}: {}", token_hint(token), e.errmesg)
            raise _unavailable() from e

        if record is None:
            raise _unauthorized("Invalid or expired session token")

        await self._require_owner(record.owner_id, token)

        try:
            refreshed = await self._store.refresh(token)
        except StorageUnavailable as e:
            # The lookup already proved the session; keep the old expiry
            logger.warning("Session refresh failed token={}: {}", token_hint(token), e.errmesg)
            return ResolvedIdentity.from_record(record)

        if refreshed is None:
            # Invalidated or expired between lookup and refresh
            raise _unauthorized("Invalid or expired session token")
        return ResolvedIdentity.from_record(refreshed)

    async def _require_owner(self, owner_id: str, token: str) -> None:
        try:
            owner = await self._owners.get_owner(owner_id)
        except StorageUnavailable as e:
            logger.warning("Identity owner check unavailable owner={}: {}", owner_id, e.errmesg)
            raise _unavailable() from e

        if owner is not None:
            return

        logger.warning("Session of deleted owner={} token={}, invalidating", owner_id, token_hint(token))
        try:
            await self._store.invalidate(token)
        except StorageUnavailable as e:
            # Rejected either way; the record expires with its TTL
            logger.warning("Failed to invalidate orphaned session token={}: {}", token_hint(token), e.errmesg)
        raise _unauthorized("Invalid or expired session token")
