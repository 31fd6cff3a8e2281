from datetime import datetime

from pydantic import BaseModel, field_serializer

from app.schemas.session_record import SessionSnapshot

from .serializers import serialize_utc_datetime


class SessionInfoOut(BaseModel):
    issued_at: datetime
    expires_at: datetime
    fingerprint: str | None = None
    current: bool = False

    @field_serializer("issued_at", "expires_at")
    def _serialize_dt(self, dt: datetime) -> str:
        return serialize_utc_datetime(dt)


class SessionCheckOut(BaseModel):
    owner_id: str
    session: SessionInfoOut
    snapshot: SessionSnapshot


class WhoAmIOut(BaseModel):
    authenticated: bool
    owner_id: str | None = None


class LogoutOut(BaseModel):
    sessions_removed: int


class ListSessionsOut(BaseModel):
    sessions: list[SessionInfoOut]
