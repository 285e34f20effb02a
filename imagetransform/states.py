# imagetransform/states.py
from dataclasses import dataclass
from typing import Optional, Union

from .model import TransformError, TransformProgress, TransformResult


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Validating:
    request_id: str


@dataclass(frozen=True)
class InFlight:
    request_id: str
    progress: Optional[TransformProgress] = None


@dataclass(frozen=True)
class Succeeded:
    request_id: str
    result: TransformResult


@dataclass(frozen=True)
class Failed:
    request_id: str
    error: TransformError


CoordinatorState = Union[Idle, Validating, InFlight, Succeeded, Failed]

IDLE = Idle()


@dataclass(frozen=True)
class TransformSnapshot:
    """
    Flat read model for presentation layers.

    Same fields a page reads from its transform hook: whether a job is
    running, the progress percent and message, the result and the error text.
    """

    state: CoordinatorState
    is_processing: bool = False
    progress: Optional[float] = None
    processing_message: str = ""
    result: Optional[TransformResult] = None
    error: Optional[str] = None

    @classmethod
    def of(cls, state: CoordinatorState) -> "TransformSnapshot":
        if isinstance(state, Validating):
            return cls(state=state, is_processing=True)
        if isinstance(state, InFlight):
            progress = state.progress
            return cls(
                state=state,
                is_processing=True,
                progress=progress.percent if progress else None,
                processing_message=progress.message if progress else "",
            )
        if isinstance(state, Succeeded):
            return cls(state=state, result=state.result)
        if isinstance(state, Failed):
            return cls(state=state, error=state.error.message)
        return cls(state=state)
