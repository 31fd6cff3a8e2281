"""Application error types.

`AppError` is the single exception type rendered by the API layer. The
session/sync core raises the subclasses below so callers can tell the
retryable storage failures apart from the rest.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"
    E_BAD_API_KEY = "E_BAD_API_KEY"

    # Authentication
    E_UNAUTHORIZED = "E_UNAUTHORIZED"
    E_STORAGE_UNAVAILABLE = "E_STORAGE_UNAVAILABLE"

    # Sessions and owners
    E_TOKEN_CONFLICT = "E_TOKEN_CONFLICT"
    E_OWNER_NOT_FOUND = "E_OWNER_NOT_FOUND"


class AppError(Exception):
    """Error carrying an API error code, a user-facing message and an HTTP status."""

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.INTERNAL_SERVER_ERROR,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        frame = inspect.currentframe()
        caller = frame.f_back if frame else None
        # Skip subclass __init__ frames so the raise site is recorded
        while caller is not None and caller.f_code.co_name == "__init__":
            caller = caller.f_back
        if caller is not None:
            self.caller_info = f"{caller.f_globals.get('__name__')}:{caller.f_code.co_name}:{caller.f_lineno}"
        else:
            self.caller_info = "unknown"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(errcode={self.errcode!r}, errmesg={self.errmesg!r})"


class StorageUnavailable(AppError):
    """Backing store outage or timeout. Retryable."""

    def __init__(self, errmesg: str = "Storage temporarily unavailable"):
        super().__init__(
            errcode=AppErrorCode.E_STORAGE_UNAVAILABLE,
            errmesg=errmesg,
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )


class TokenConflict(AppError):
    """Token generation kept colliding with existing sessions."""

    def __init__(self, errmesg: str = "Could not allocate a unique session token"):
        super().__init__(
            errcode=AppErrorCode.E_TOKEN_CONFLICT,
            errmesg=errmesg,
            status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
        )


class DataCorruption(AppError):
    """A stored payload failed schema validation."""

    def __init__(self, errmesg: str = "Stored payload is corrupted"):
        super().__init__(
            errcode=AppErrorCode.E_INTERNAL_ERROR,
            errmesg=errmesg,
            status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
        )
