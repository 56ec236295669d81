"""Application error type raised by domain and API code."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    E_INVALID_PARAMS = "E_INVALID_PARAMS"
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_PARTICIPANT_NOT_FOUND = "E_PARTICIPANT_NOT_FOUND"
    E_UNAUTHORIZED = "E_UNAUTHORIZED"
    E_INVALID_STATE = "E_INVALID_STATE"

    E_PERSISTENCE_IO = "E_PERSISTENCE_IO"
    E_SCAN_FAILED = "E_SCAN_FAILED"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500


class AppError(Exception):
    """Error carrying an API error code, message and HTTP status.

    The call site that raised the error is captured so the exception handler
    can log where it came from without a full traceback.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str,
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else errcode
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = _caller_info()

    def __repr__(self) -> str:
        return f"AppError(errcode={self.errcode!r}, errmesg={self.errmesg!r}, status_code={self.status_code})"


def _caller_info() -> str:
    frame = inspect.currentframe()
    try:
        # _caller_info -> AppError.__init__ -> raise site
        caller = frame.f_back.f_back if frame and frame.f_back else None
        if caller is None:
            return "unknown"
        module = inspect.getmodule(caller)
        module_name = module.__name__ if module else caller.f_code.co_filename
        return f"{module_name}:{caller.f_code.co_name}:{caller.f_lineno}"
    finally:
        del frame
