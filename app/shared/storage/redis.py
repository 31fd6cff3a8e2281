"""
Simple Redis client manager that creates and tracks clients.
"""

import threading
from typing import Dict

from loguru import logger
from redis.asyncio import BlockingConnectionPool, Redis

from ..config import config
from ._urls import hide_password_in_connection_string

DEFAULT_MAX_CONNECTIONS = 64
DEFAULT_POOL_TIMEOUT_SECONDS = 2.0


class RedisManager:
    """
    Simple Redis client manager.

    Features:
    - Creates and tracks labelled Redis cache clients
    - Loads connection strings from REDIS_URL_<LABEL> configuration keys
    - Bounded, blocking connection pools (REDIS_MAX_CONNECTIONS, REDIS_POOL_TIMEOUT_SECONDS)
    - Thread-safe singleton pattern

    Only standalone servers are supported: the session store pipelines span
    the session key and the owner index, which are not hash-tagged.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return

        self._cache_clients: Dict[str, Redis] = {}
        self._connection_strings: Dict[str, str] = {}
        self._lock = threading.Lock()

        self._load_connection_strings()

        self._initialized = True

    @staticmethod
    def _get_label_from_env_var(env_var: str) -> str | None:
        if env_var.startswith("REDIS_URL_"):
            return env_var[10:].lower()
        return None

    def _load_connection_strings(self):
        for key, value in config.items():
            label = self._get_label_from_env_var(key)
            if label is None or not value:
                continue
            if label in self._connection_strings:
                logger.warning(
                    "Redis connection string for label '{}' already exists, '{}' will override it",
                    label, key,
                )
            self._connection_strings[label] = value
            logger.info(
                "Loaded Redis connection string for label '{}': {}",
                label, hide_password_in_connection_string(value),
            )

        if "default" not in self._connection_strings:
            default_url = config.get_redis_url("default")
            self._connection_strings["default"] = default_url
            logger.info(
                "Using default Redis connection string: {}",
                hide_password_in_connection_string(default_url),
            )

        logger.info(
            "Loaded {} Redis connection strings: {}",
            len(self._connection_strings), list(self._connection_strings.keys()),
        )

    @staticmethod
    def _pool_settings() -> tuple[int, float]:
        """Pool size and checkout wait; the wait defaults to the session store op timeout."""
        max_connections = int(config.get("REDIS_MAX_CONNECTIONS") or DEFAULT_MAX_CONNECTIONS)
        pool_timeout = float(
            config.get("REDIS_POOL_TIMEOUT_SECONDS")
            or config.get("SESSION_STORE_TIMEOUT_SECONDS")
            or DEFAULT_POOL_TIMEOUT_SECONDS
        )
        return max_connections, pool_timeout

    @staticmethod
    def build_client(url: str, *, max_connections: int, pool_timeout: float) -> Redis:
        """
        Build a client over a BlockingConnectionPool.

        Callers past `max_connections` wait up to `pool_timeout` seconds for a
        free connection, then get a redis ConnectionError instead of an
        unbounded pool growing past the server's client limit.
        """
        pool = BlockingConnectionPool.from_url(
            url,
            decode_responses=True,
            max_connections=max_connections,
            timeout=pool_timeout,
        )
        return Redis(connection_pool=pool)

    def get_cache_client(self, label: str | None = None) -> Redis:
        """
        Get Redis cache client by label.

        Raises:
            ValueError: If label not found
        """
        label = label or "default"

        with self._lock:
            if label not in self._cache_clients:
                if label not in self._connection_strings:
                    raise ValueError(f"No Redis connection string found for label '{label}'")

                max_connections, pool_timeout = self._pool_settings()
                logger.info(
                    "Open Redis cache client for label '{}' (max_connections: {}, pool_timeout: {}s)",
                    label, max_connections, pool_timeout,
                )
                self._cache_clients[label] = self.build_client(
                    self._connection_strings[label],
                    max_connections=max_connections,
                    pool_timeout=pool_timeout,
                )

            return self._cache_clients[label]

    async def close_cache_client(self, label: str):
        with self._lock:
            client = self._cache_clients.pop(label, None)
        if client is None:
            return
        try:
            await client.aclose()
            logger.info("Closed Redis cache client for label '{}'", label)
        except Exception as e:
            logger.error("Error closing Redis cache client for label '{}': {}", label, e)

    async def close_all(self):
        with self._lock:
            labels = list(self._cache_clients.keys())

        # Close clients without holding the lock
        for label in labels:
            await self.close_cache_client(label)


_redis_manager = None


def get_redis_manager() -> RedisManager:
    global _redis_manager
    if _redis_manager is None:
        _redis_manager = RedisManager()
    return _redis_manager

