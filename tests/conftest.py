import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from imagetransform.coordinator import CoordinatorHooks, TransformRequestCoordinator
from imagetransform.model import TransformEvent, TransformRequest


class ScriptedBackend:
    """
    In-memory TransformBackend.

    Each dispatched request gets its own queue. Tests either queue a script
    up front (consumed by the next dispatch) or push events by request id.
    ``None`` in a queue ends the stream.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[TransformRequest, str]] = []
        self.closed: List[str] = []
        self._queues: Dict[str, asyncio.Queue] = {}
        self._scripts: List[List[Optional[TransformEvent]]] = []

    def script(self, *events: Optional[TransformEvent]) -> None:
        self._scripts.append(list(events))

    def push(self, request_id: str, *events: Optional[TransformEvent]) -> None:
        queue = self._queues.setdefault(request_id, asyncio.Queue())
        for event in events:
            queue.put_nowait(event)

    def dispatch(self, request: TransformRequest, request_id: str):
        self.calls.append((request, request_id))
        if self._scripts:
            self.push(request_id, *self._scripts.pop(0))
        queue = self._queues.setdefault(request_id, asyncio.Queue())
        return self._stream(request_id, queue)

    async def _stream(self, request_id: str, queue: asyncio.Queue):
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self.closed.append(request_id)


async def settle(rounds: int = 10) -> None:
    """Let pending tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def states() -> list:
    return []


@pytest.fixture
def coordinator(backend, states) -> TransformRequestCoordinator:
    return TransformRequestCoordinator(
        backend,
        hooks=CoordinatorHooks(on_state_change=states.append),
    )


def make_request(**overrides) -> TransformRequest:
    fields = {
        "original_image_ref": "A",
        "prompt": "make it night",
        "service": "magic-morph",
    }
    fields.update(overrides)
    return TransformRequest(**fields)
