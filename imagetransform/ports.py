# imagetransform/ports.py
from typing import AsyncIterator, Optional, Protocol

from .model import TransformEvent, TransformRequest


class TransformBackend(Protocol):
    def dispatch(self, request: TransformRequest, request_id: str) -> AsyncIterator[TransformEvent]:
        """
        Start the transformation and stream its events.

        The stream ends after a ResultEvent or ErrorEvent. Callers cancel by
        dropping interest in the stream (closing it or cancelling the task
        that iterates it).
        """
        ...


class VipSessionProvider(Protocol):
    def current_token(self) -> Optional[str]:
        ...


class StaticVipSession:
    """Holds a VIP session token obtained out of band."""

    def __init__(self, token: Optional[str] = None):
        self.token = token

    def current_token(self) -> Optional[str]:
        return self.token
