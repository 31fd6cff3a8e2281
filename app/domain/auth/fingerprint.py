"""Device fingerprint derivation.

A fingerprint is a SHA-256 digest over the JSON array of device attributes
and salts, so no attribute value can shift a field boundary. Two salting
modes exist and callers must pick one explicitly:

- STABLE: salted only by the owner id. The same device used by the same owner
  always yields the same fingerprint, which is what device recognition needs.
- RANDOM: additionally mixes a fresh nonce, so no two calls agree. Only
  suitable for one-shot anti-replay tokens; never compare these across logins.
"""

import hashlib
import hmac
from enum import Enum

import orjson
from pydantic import BaseModel, field_validator

from app.domain.utils.idgen import new_fingerprint_nonce


class FingerprintMode(str, Enum):
    STABLE = "stable"
    RANDOM = "random"


class DeviceAttributes(BaseModel):
    """Client-reported device attributes."""

    device_type: str
    device_name: str
    user_agent: str | None = None
    platform: str | None = None
    screen_resolution: str | None = None
    timezone: str | None = None
    language: str | None = None

    @field_validator("device_type", "device_name")
    @classmethod
    def _require_non_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    def hash_parts(self) -> tuple[str | None, ...]:
        return (
            self.device_type,
            self.device_name,
            self.user_agent,
            self.platform,
            self.screen_resolution,
            self.timezone,
            self.language,
        )


def generate_fingerprint(
    attrs: DeviceAttributes,
    owner_id: str,
    mode: FingerprintMode = FingerprintMode.STABLE,
    nonce: str | None = None,
) -> str:
    """Return the 64 hex char fingerprint of `attrs` for `owner_id`.

    In RANDOM mode a nonce is generated unless one is passed in.
    """
    if not owner_id:
        raise ValueError("owner_id is required to salt a fingerprint")

    parts = [*attrs.hash_parts(), owner_id]
    if mode is FingerprintMode.RANDOM:
        parts.append(nonce or new_fingerprint_nonce())
    elif nonce is not None:
        raise ValueError("nonce is only meaningful in RANDOM mode")

    return hashlib.sha256(orjson.dumps(parts)).hexdigest()


def is_same_device(fingerprint: str, attrs: DeviceAttributes, owner_id: str) -> bool:
    """Whether `attrs` reproduces a STABLE `fingerprint` for `owner_id`."""
    expected = generate_fingerprint(attrs, owner_id, FingerprintMode.STABLE)
    return hmac.compare_digest(expected, fingerprint)
