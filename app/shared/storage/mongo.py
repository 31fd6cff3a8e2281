"""
Simple MongoDB client manager that creates and tracks clients.
"""

import threading
from typing import Dict

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient

from ..config import config
from ._urls import hide_password_in_connection_string


class MongoManager:
    """
    Simple MongoDB client manager.

    Features:
    - Creates and tracks labelled MongoDB clients
    - Loads connection strings from MONGO_URL_<LABEL> configuration keys
    - Bounded server selection, connect and socket timeouts
    - Thread-safe singleton pattern
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

        self._clients: Dict[str, AsyncIOMotorClient] = {}
        self._connection_strings: Dict[str, str] = {}
        self._max_pool_size = config.get_mongo_max_pool_size()
        self._server_selection_timeout = int(config.get("MONGO_SERVER_SELECTION_TIMEOUT", "5000"))
        self._connect_timeout = int(config.get("MONGO_CONNECT_TIMEOUT", "5000"))
        self._socket_timeout = int(config.get("MONGO_SOCKET_TIMEOUT", "10000"))
        self._lock = threading.Lock()

        self._load_connection_strings()

        self._initialized = True

    def _load_connection_strings(self):
        for key, value in config.items():
            if not key.startswith("MONGO_URL_") or not value:
                continue
            label = key[10:].lower()
            self._connection_strings[label] = value
            logger.info(
                "Loaded MongoDB connection string for label '{}': {}",
                label, hide_password_in_connection_string(value),
            )

        if "default" not in self._connection_strings:
            self._connection_strings["default"] = config.get_mongo_url("default")

        logger.info(
            "Using default MongoDB connection string: {}",
            hide_password_in_connection_string(self._connection_strings["default"]),
        )

    def get_client(self, label: str | None = None) -> AsyncIOMotorClient:
        """
        Get MongoDB client by label.

        Raises:
            ValueError: If label not found
        """
        label = label or "default"

        with self._lock:
            if label not in self._clients:
                if label not in self._connection_strings:
                    raise ValueError(f"No MongoDB connection string found for label '{label}'")

                logger.info("Open MongoDB client for label '{}'", label)
                self._clients[label] = AsyncIOMotorClient(
                    self._connection_strings[label],
                    serverSelectionTimeoutMS=self._server_selection_timeout,
                    connectTimeoutMS=self._connect_timeout,
                    socketTimeoutMS=self._socket_timeout,
                    maxPoolSize=self._max_pool_size,
                )

            return self._clients[label]

    def close_all(self):
        with self._lock:
            clients = list(self._clients.items())
            self._clients.clear()

        for label, client in clients:
            client.close()
            logger.info("Closed MongoDB client for label '{}'", label)


_mongo_manager = None


def get_mongo_manager() -> MongoManager:
    """Get the global MongoDB manager instance."""
    global _mongo_manager
    if _mongo_manager is None:
        _mongo_manager = MongoManager()
    return _mongo_manager


def get_mongo_client(label: str | None = None) -> AsyncIOMotorClient:
    """Get MongoDB client by label."""
    return get_mongo_manager().get_client(label)
