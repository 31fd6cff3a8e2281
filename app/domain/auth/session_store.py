"""Redis-backed session store.

Layout (all keys prefixed with `key_prefix`):

    {prefix}:session:{token}            JSON SessionRecord, TTL = expires_at - now
    {prefix}:owner_sessions:{owner_id}  SET of tokens, pruned lazily

Token -> owner resolution is a single GET on the session key; the owner set is
the secondary index used for fan-out and multi-device logout. Nothing is
cached in process memory: Redis is the only source of truth so several
service instances can share it.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, TypeVar

import mmh3
from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from app.domain.utils.idgen import new_session_token
from app.domain.utils.timeutils import utc_now
from app.schemas.session_record import SessionRecord, SessionSnapshot
from app.utils.app_errors import StorageUnavailable, TokenConflict

from .auth_models import SnapshotFanout

T = TypeVar("T")

DEFAULT_SESSION_TTL = timedelta(days=7)
DEFAULT_OP_TIMEOUT = 2.0
DEFAULT_MAX_CONCURRENCY = 32
MAX_TOKEN_ATTEMPTS = 5
MAX_WATCH_RETRIES = 5

# Smallest step by which a refresh pushes expiry forward
MIN_EXTENSION = timedelta(microseconds=1)

SnapshotMutator = Callable[[SessionSnapshot], SessionSnapshot]

_UPDATED = "updated"
_UNCHANGED = "unchanged"
_SKIPPED = "skipped"


def token_hint(token: str) -> str:
    """Short non-reversible identifier for logging a token."""
    return format(mmh3.hash128(token), "032x")[:12]


class SessionStore:
    """Create, resolve, refresh and invalidate session records."""

    def __init__(
        self,
        redis_client: Redis,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        op_timeout: float = DEFAULT_OP_TIMEOUT,
        key_prefix: str = "stringel",
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = new_session_token,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        if ttl <= timedelta(0):
            raise ValueError("session ttl must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._redis = redis_client
        self._ttl = ttl
        self._op_timeout = op_timeout
        self._prefix = key_prefix
        self._clock = clock
        self._token_factory = token_factory
        # Each in-flight operation holds at most one pooled connection
        self._slots = asyncio.Semaphore(max_concurrency)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    # ==================== KEYS / HELPERS ====================

    def _session_key(self, token: str) -> str:
        return f"{self._prefix}:session:{token}"

    def _owner_key(self, owner_id: str) -> str:
        return f"{self._prefix}:owner_sessions:{owner_id}"

    @staticmethod
    def _ms_between(start: datetime, end: datetime) -> int:
        return max(1, int((end - start) / timedelta(milliseconds=1)))

    async def _io(self, op: str, awaitable: Awaitable[T]) -> T:
        """Run one backing-store interaction under the operation timeout.

        At most `max_concurrency` interactions run at once; the rest queue here
        instead of checking more connections out of the pool.
        """
        async with self._slots:
            try:
                return await asyncio.wait_for(awaitable, timeout=self._op_timeout)
            except (asyncio.TimeoutError, RedisError, OSError) as e:
                logger.warning("Session store {} failed: {}: {}", op, type(e).__name__, e)
                raise StorageUnavailable(f"Session store unavailable during {op}") from e

    def _parse(self, token: str, raw: Any) -> SessionRecord | None:
        if raw is None:
            return None
        try:
            record = SessionRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Corrupted session payload token={} errors={}", token_hint(token), e.error_count()
            )
            return None
        if record.token != token:
            logger.warning("Session payload token mismatch token={}", token_hint(token))
            return None
        return record

    # ==================== CREATE ====================

    async def create(
        self,
        owner_id: str,
        snapshot: SessionSnapshot | None = None,
        *,
        fingerprint: str | None = None,
    ) -> SessionRecord:
        """Issue a new session for `owner_id`. The token is `record.token`.

        The record is written first and indexed second. If indexing fails,
        times out or is cancelled, the record is deleted again so no session
        outlives its creation without being reachable from the owner index.

        Raises StorageUnavailable on backend outage or timeout.
        """
        if not owner_id:
            raise ValueError("owner_id is required")
        snapshot = snapshot or SessionSnapshot()

        now = self._clock()
        expires_at = now + self._ttl
        ttl_ms = self._ms_between(now, expires_at)

        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            record = SessionRecord(
                token=self._token_factory(),
                owner_id=owner_id,
                issued_at=now,
                expires_at=expires_at,
                fingerprint=fingerprint,
                snapshot=snapshot,
            )
            try:
                stored = await self._io(
                    "create",
                    self._redis.set(
                        self._session_key(record.token), record.model_dump_json(), nx=True, px=ttl_ms
                    ),
                )
            except (StorageUnavailable, asyncio.CancelledError):
                # The SET may have landed before the failure surfaced
                await asyncio.shield(self._drop_unindexed(record.token))
                raise
            if stored:
                break
            logger.debug("Session token collision on attempt {}, regenerating", attempt)
        else:
            raise TokenConflict()

        try:
            await self._io("create", self._index(owner_id, record.token, ttl_ms))
        except (StorageUnavailable, asyncio.CancelledError):
            # Unindexed sessions would miss fan-out; drop it
            await asyncio.shield(self._drop_unindexed(record.token))
            raise

        logger.info("Created session owner={} token={}", owner_id, token_hint(record.token))
        return record

    async def _index(self, owner_id: str, token: str, ttl_ms: int) -> None:
        owner_key = self._owner_key(owner_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.sadd(owner_key, token)
            pipe.pexpire(owner_key, ttl_ms)
            await pipe.execute()

    async def _drop_unindexed(self, token: str) -> None:
        try:
            await self._io("create", self._redis.delete(self._session_key(token)))
        except StorageUnavailable as e:
            logger.warning("Failed to drop unindexed session token={}: {}", token_hint(token), e)

    # ==================== LOOKUP / REFRESH ====================

    async def lookup(self, token: str | None) -> SessionRecord | None:
        """Resolve a token to its live record.

        Returns None for missing, expired or unparsable records.
        Raises StorageUnavailable on backend outage or timeout.
        """
        if not token:
            return None
        raw = await self._io("lookup", self._redis.get(self._session_key(token)))
        record = self._parse(token, raw)
        if record is None or record.expires_at <= self._clock():
            return None
        return record

    async def refresh(self, token: str | None) -> SessionRecord | None:
        """Slide the expiry window forward; never shortens a session.

        Returns the refreshed record, or None when the session is gone.
        """
        if not token:
            return None
        return await self._io("refresh", self._refresh(token))

    async def _refresh(self, token: str) -> SessionRecord | None:
        key = self._session_key(token)
        async with self._redis.pipeline(transaction=True) as pipe:
            for _ in range(MAX_WATCH_RETRIES):
                try:
                    await pipe.watch(key)
                    record = self._parse(token, await pipe.get(key))
                    now = self._clock()
                    if record is None or record.expires_at <= now:
                        return None

                    expires_at = max(now + self._ttl, record.expires_at + MIN_EXTENSION)
                    refreshed = record.model_copy(update={"expires_at": expires_at})
                    ttl_ms = self._ms_between(now, expires_at)

                    pipe.multi()
                    pipe.set(key, refreshed.model_dump_json(), px=ttl_ms)
                    pipe.pexpire(self._owner_key(record.owner_id), ttl_ms)
                    await pipe.execute()
                    return refreshed
                except WatchError:
                    logger.debug("Session changed during refresh, retrying token={}", token_hint(token))

        raise StorageUnavailable("Session refresh kept conflicting, retry later")

    # ==================== INVALIDATE ====================

    async def invalidate(self, token: str | None) -> bool:
        """Remove a session. Idempotent; returns whether a record was deleted."""
        if not token:
            return False
        return await self._io("invalidate", self._invalidate(token))

    async def _invalidate(self, token: str) -> bool:
        key = self._session_key(token)
        record = self._parse(token, await self._redis.get(key))

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            if record is not None:
                pipe.srem(self._owner_key(record.owner_id), token)
            results = await pipe.execute()

        deleted = bool(results[0])
        if deleted:
            logger.info("Invalidated session token={}", token_hint(token))
        return deleted

    async def invalidate_all(self, owner_id: str) -> int:
        """Remove every session of an owner (multi-device logout)."""
        return await self._io("invalidate_all", self._invalidate_all(owner_id))

    async def _invalidate_all(self, owner_id: str) -> int:
        owner_key = self._owner_key(owner_id)
        tokens = list(await self._redis.smembers(owner_key))
        if not tokens:
            return 0

        async with self._redis.pipeline(transaction=True) as pipe:
            for token in tokens:
                pipe.delete(self._session_key(token))
            # SREM rather than DEL keeps sessions created concurrently
            pipe.srem(owner_key, *tokens)
            results = await pipe.execute()

        deleted = sum(int(x) for x in results[:-1])
        logger.info("Invalidated {} sessions for owner {}", deleted, owner_id)
        return deleted

    # ==================== OWNER INDEX ====================

    async def list_sessions(self, owner_id: str) -> list[SessionRecord]:
        """Live sessions of an owner, ordered by issue time."""
        return await self._io("list_sessions", self._list_sessions(owner_id))

    async def _list_sessions(self, owner_id: str) -> list[SessionRecord]:
        owner_key = self._owner_key(owner_id)
        tokens = sorted(await self._redis.smembers(owner_key))
        if not tokens:
            return []

        async with self._redis.pipeline(transaction=False) as pipe:
            for token in tokens:
                pipe.get(self._session_key(token))
            raws = await pipe.execute()

        now = self._clock()
        live: list[SessionRecord] = []
        stale: list[str] = []
        for token, raw in zip(tokens, raws):
            if raw is None:
                stale.append(token)
                continue
            record = self._parse(token, raw)
            if record is None:
                continue
            if record.owner_id != owner_id:
                logger.warning(
                    "Owner index mismatch owner={} token={} record_owner={}",
                    owner_id, token_hint(token), record.owner_id,
                )
                stale.append(token)
                continue
            if record.expires_at > now:
                live.append(record)

        if stale:
            await self._redis.srem(owner_key, *stale)
            logger.debug("Pruned {} stale tokens from owner index {}", len(stale), owner_id)

        live.sort(key=lambda r: r.issued_at)
        return live

    # ==================== SNAPSHOT FAN-OUT ====================

    async def update_snapshot(self, owner_id: str, mutator: SnapshotMutator) -> SnapshotFanout:
        """Apply `mutator` to the snapshot of every live session of `owner_id`.

        Per-record failures are logged and reported in the result without
        aborting the other records. Raises StorageUnavailable only when the
        owner index itself cannot be read.
        """
        tokens = sorted(await self._io("update_snapshot", self._redis.smembers(self._owner_key(owner_id))))
        fanout = SnapshotFanout(owner_id=owner_id, total=len(tokens))
        if not tokens:
            return fanout

        # Fan-out width is capped by the _io slots
        results = await asyncio.gather(
            *(self._io("update_snapshot", self._update_one(owner_id, t, mutator)) for t in tokens),
            return_exceptions=True,
        )

        for token, result in zip(tokens, results):
            if isinstance(result, BaseException):
                fanout.failed.append(token_hint(token))
                logger.warning(
                    "Snapshot update failed owner={} token={}: {}: {}",
                    owner_id, token_hint(token), type(result).__name__, result,
                )
            elif result == _UPDATED:
                fanout.updated += 1
            elif result == _UNCHANGED:
                fanout.unchanged += 1
            else:
                fanout.skipped += 1

        return fanout

    async def _update_one(self, owner_id: str, token: str, mutator: SnapshotMutator) -> str:
        key = self._session_key(token)
        async with self._redis.pipeline(transaction=True) as pipe:
            for _ in range(MAX_WATCH_RETRIES):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        break

                    record = self._parse(token, raw)
                    if record is None or record.expires_at <= self._clock():
                        return _SKIPPED
                    if record.owner_id != owner_id:
                        logger.warning(
                            "Skipping session of another owner index={} token={}",
                            owner_id, token_hint(token),
                        )
                        return _SKIPPED

                    snapshot = mutator(record.snapshot.model_copy(deep=True))
                    if snapshot == record.snapshot:
                        return _UNCHANGED

                    updated = record.model_copy(update={"snapshot": snapshot})
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json(), keepttl=True)
                    await pipe.execute()
                    return _UPDATED
                except WatchError:
                    logger.debug("Session changed during snapshot update, retrying token={}", token_hint(token))
            else:
                raise StorageUnavailable("Snapshot update kept conflicting, retry later")

        # Evicted since the index was read; pruned once the WATCH connection is released
        await self._redis.srem(self._owner_key(owner_id), token)
        return _SKIPPED
