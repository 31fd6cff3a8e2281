from pydantic import BaseModel

from app.shared.config import config


def _as_bool(value: str | None, default: str) -> bool:
    return (value or default).strip().lower() == "true"


class AppEnvironConfig(BaseModel):
    DEBUG: bool = _as_bool(config.get("DEBUG"), "false")

    # Session cache
    SESSION_TTL_SECONDS: int = int((config.get("SESSION_TTL_SECONDS") or "").strip() or 604800)
    SESSION_STORE_TIMEOUT_SECONDS: float = float(
        (config.get("SESSION_STORE_TIMEOUT_SECONDS") or "").strip() or 2.0
    )
    SESSION_KEY_PREFIX: str = (config.get("SESSION_KEY_PREFIX") or "").strip() or "stringel"
    SESSION_STORE_MAX_CONCURRENCY: int = int(
        (config.get("SESSION_STORE_MAX_CONCURRENCY") or "").strip() or 32
    )

    # Session cookie handed to the transport layer
    SESSION_COOKIE_NAME: str = (config.get("SESSION_COOKIE_NAME") or "").strip() or "sessionToken"
    SESSION_COOKIE_SECURE: bool = _as_bool(config.get("SESSION_COOKIE_SECURE"), "true")

    # Backing store labels (see EnvironConfig.get_redis_url / get_mongo_url)
    REDIS_MAJOR_LABEL: str = (config.get("REDIS_MAJOR_LABEL") or "").strip() or "default"
    MONGO_LABEL: str = (config.get("MONGO_LABEL") or "").strip() or "default"
    MONGO_DATABASE: str = (config.get("MONGO_DATABASE") or "").strip() or "stringel"
    MONGO_TIMEOUT_SECONDS: float = float((config.get("MONGO_TIMEOUT_SECONDS") or "").strip() or 5.0)

    # Shared secret for internal collaborator endpoints
    INTERNAL_API_KEY: str | None = (config.get("INTERNAL_API_KEY") or "").strip() or None

    # API server
    API_HOST: str = (config.get("API_HOST") or "").strip() or "0.0.0.0"
    API_PORT: int = int((config.get("API_PORT") or "").strip() or 8000)
    API_WORKERS: int = int((config.get("API_WORKERS") or "").strip() or 1)

    # Observability
    LOGFIRE_ENABLE: bool = _as_bool(config.get("LOGFIRE_ENABLE"), "false")
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
