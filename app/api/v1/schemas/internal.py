from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from app.domain.auth.fingerprint import DeviceAttributes
from app.schemas.session_record import SessionSnapshot

from .serializers import serialize_utc_datetime


class IssueSessionIn(BaseModel):
    owner_id: str = Field(..., min_length=1, description="Owner already authenticated upstream")
    device: DeviceAttributes


class IssueSessionOut(BaseModel):
    token: str
    owner_id: str
    expires_at: datetime
    fingerprint: str
    new_device: bool
    snapshot: SessionSnapshot

    @field_serializer("expires_at")
    def _serialize_dt(self, dt: datetime) -> str:
        return serialize_utc_datetime(dt)


class SyncResultOut(BaseModel):
    owner_id: str
    channels_count: int
    devices_count: int
    sync_version: int
    owner_updated: bool
    sessions_total: int
    sessions_updated: int
    failed_sessions: list[str]
    fanout_error: str | None = None
    partial: bool
