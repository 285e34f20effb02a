# imagetransform/errors.py
from typing import Optional

from .model import ErrorKind, TransformRequest


class TransformRejected(Exception):
    """Submit refused before anything was dispatched to the backend."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, request: Optional[TransformRequest] = None):
        super().__init__(message)
        self.message = message
        self.request = request


class InvalidInput(TransformRejected):
    kind = ErrorKind.INVALID_INPUT


class NeedsVipSession(TransformRejected):
    """VIP service selected without a session token; acquire one and resubmit."""

    kind = ErrorKind.NEEDS_VIP_SESSION


class BackendFailure(Exception):
    """Raised by backends; only ever observed by callers as a Failed state."""

    kind: ErrorKind = ErrorKind.BACKEND_FAILURE

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
