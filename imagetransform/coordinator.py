# imagetransform/coordinator.py

import asyncio
import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .errors import BackendFailure, InvalidInput, NeedsVipSession
from .model import (
    ErrorEvent,
    ErrorKind,
    ProgressEvent,
    ResultEvent,
    TransformError,
    TransformEvent,
    TransformProgress,
    TransformRequest,
    TransformResult,
)
from .ports import TransformBackend, VipSessionProvider
from .states import (
    IDLE,
    CoordinatorState,
    Failed,
    Idle,
    InFlight,
    Succeeded,
    TransformSnapshot,
    Validating,
)
from .utils import gen_request_id, short_id

logger = logging.getLogger(__name__)

STREAM_ENDED_MESSAGE = "Transformation backend ended without a result"


def _noop(*_: object, **__: object) -> None:
    """Default no-op callback used for hooks."""


@dataclass
class CoordinatorHooks:
    """Optional callbacks fired by the coordinator."""

    on_state_change: Callable[[CoordinatorState], None] = _noop
    on_vip_required: Callable[[TransformRequest], None] = _noop

    def __post_init__(self) -> None:
        self.on_state_change = self.on_state_change or _noop
        self.on_vip_required = self.on_vip_required or _noop


class TransformRequestCoordinator:
    """
    Owns the lifecycle of one image transformation request at a time.

    Every dispatched request gets a fresh id. Backend events are applied only
    while their id is the current one, so a request that was reset or
    superseded by a newer submit can never overwrite the newer state.
    """

    def __init__(
        self,
        backend: TransformBackend,
        vip_sessions: Optional[VipSessionProvider] = None,
        hooks: Optional[CoordinatorHooks] = None,
    ):
        self.backend = backend
        self.vip_sessions = vip_sessions
        self.hooks = hooks or CoordinatorHooks()
        self._lock = threading.Lock()
        self._state: CoordinatorState = IDLE
        self._request_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def request_id(self) -> Optional[str]:
        return self._request_id

    @property
    def is_busy(self) -> bool:
        return isinstance(self._state, (Validating, InFlight))

    def is_current(self, request_id: str) -> bool:
        return request_id == self._request_id

    def snapshot(self) -> TransformSnapshot:
        return TransformSnapshot.of(self._state)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def submit(self, request: TransformRequest) -> CoordinatorState:
        """
        Validate and dispatch a request, then wait until it stops being tracked.

        Raises InvalidInput or NeedsVipSession before anything is dispatched;
        in that case the coordinator state is left as it was. Returns the
        coordinator state once the request resolves, is reset, or is
        superseded by a newer submit.
        """
        request, request_id, superseded = self._begin(request)
        self._stop_consumer(superseded)

        logger.info(
            "Dispatching transform %s service=%s quality=%s prompt=%s",
            short_id(request_id),
            request.service.value,
            request.quality.value,
            request.prompt[:50],
        )
        self._publish(self._state)

        with self._lock:
            dispatching = self._request_id == request_id
            if dispatching and isinstance(self._state, Validating):
                self._state = InFlight(request_id)
            current = self._state
        if not dispatching:
            # reset or resubmitted from a state hook; nothing to dispatch
            return self._state
        self._publish(current)

        with self._lock:
            if self._request_id != request_id:
                return self._state
            task = asyncio.ensure_future(self._consume(request, request_id))
            self._task = task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            self._abandon(request_id)
            raise
        return self._state

    def reset(self) -> None:
        """Return to Idle from any state, dropping whatever is in flight."""
        with self._lock:
            task, self._task = self._task, None
            previous_id, self._request_id = self._request_id, None
            changed = not isinstance(self._state, Idle)
            self._state = IDLE

        self._stop_consumer(task)
        if changed:
            logger.info("Reset transform coordinator (dropped %s)", short_id(previous_id))
            self._publish(IDLE)

    def handle_event(self, request_id: str, event: TransformEvent) -> bool:
        """
        Apply one backend event pushed for ``request_id``.

        Returns False and drops the event when the request is no longer the
        current one or has already resolved. A terminal event stops the
        request's stream consumer, whichever thread it arrives on.
        """
        if isinstance(event, ProgressEvent) and not math.isfinite(event.percent):
            logger.warning("Ignoring progress %s for %s", event.percent, short_id(request_id))
            return False

        consumer: Optional[asyncio.Task] = None
        with self._lock:
            applicable = self._accepts_events(request_id)
            if applicable:
                new_state = self._apply(self._state, request_id, event)
                self._state = new_state
                if isinstance(new_state, (Succeeded, Failed)):
                    consumer = self._task

        if not applicable:
            logger.debug(
                "Dropping %s event for %s (%s)",
                event.type,
                short_id(request_id),
                ErrorKind.SUPERSEDED.value,
            )
            return False

        if isinstance(new_state, Succeeded):
            logger.info("Transform %s succeeded", short_id(request_id))
        elif isinstance(new_state, Failed):
            logger.warning("Transform %s failed: %s", short_id(request_id), new_state.error.message)
        else:
            logger.debug("Transform %s progress %s", short_id(request_id), new_state.progress)
        self._stop_consumer(consumer)
        self._publish(new_state)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accepts_events(self, request_id: str) -> bool:
        return request_id == self._request_id and isinstance(self._state, (Validating, InFlight))

    def _begin(
        self, request: TransformRequest
    ) -> Tuple[TransformRequest, str, Optional[asyncio.Task]]:
        request_id = gen_request_id()
        rejection: Optional[Exception] = None
        with self._lock:
            previous = self._state
            self._state = Validating(request_id)
            try:
                request = self._validate(request)
            except (InvalidInput, NeedsVipSession) as exc:
                self._state = previous
                rejection = exc
            else:
                superseded, self._task = self._task, None
                previous_id, self._request_id = self._request_id, request_id

        # hooks run outside the lock so they may call back into the coordinator
        if isinstance(rejection, NeedsVipSession):
            logger.info("VIP session required for %s", request.service.value)
            self.hooks.on_vip_required(request)
            raise rejection
        if rejection is not None:
            logger.debug("Rejected transform request: %s", rejection)
            raise rejection

        if previous_id is not None and isinstance(previous, (Validating, InFlight)):
            logger.info("Transform %s superseded by %s", short_id(previous_id), short_id(request_id))
        return request, request_id, superseded

    def _validate(self, request: TransformRequest) -> TransformRequest:
        if not (request.original_image_ref or "").strip():
            raise InvalidInput("An image is required", request)
        if not request.prompt.strip():
            raise InvalidInput("Prompt must not be empty", request)

        if request.vip and not request.has_vip_session:
            token = self.vip_sessions.current_token() if self.vip_sessions else None
            if not (token and token.strip()):
                raise NeedsVipSession("VIP service requires an active session", request)
            request = request.model_copy(update={"vip_session": token})
        return request

    def _apply(
        self, state: CoordinatorState, request_id: str, event: TransformEvent
    ) -> CoordinatorState:
        if isinstance(event, ProgressEvent):
            percent = min(max(float(event.percent), 0.0), 100.0)
            previous = state.progress if isinstance(state, InFlight) else None
            if previous is not None and percent < previous.percent:
                percent = previous.percent
            return InFlight(request_id, TransformProgress(percent=percent, message=event.message))
        if isinstance(event, ResultEvent):
            return Succeeded(
                request_id, TransformResult(transformed_image_ref=event.transformed_image_ref)
            )
        return Failed(
            request_id, TransformError(message=event.message, kind=ErrorKind.BACKEND_FAILURE)
        )

    async def _consume(self, request: TransformRequest, request_id: str) -> None:
        stream = self.backend.dispatch(request, request_id)
        try:
            async for event in stream:
                self.handle_event(request_id, event)
                if not self._accepts_events(request_id):
                    break
            else:
                self.handle_event(request_id, ErrorEvent(message=STREAM_ENDED_MESSAGE))
        except asyncio.CancelledError:
            logger.debug("Stopped listening to transform %s", short_id(request_id))
            raise
        except BackendFailure as exc:
            logger.warning("Backend failure for %s: %s", short_id(request_id), exc.message)
            self.handle_event(request_id, ErrorEvent(message=exc.message))
        except Exception as exc:
            logger.exception("Transform %s raised", short_id(request_id))
            self.handle_event(request_id, ErrorEvent(message=str(exc) or exc.__class__.__name__))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    @staticmethod
    def _stop_consumer(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        loop = task.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not loop:
            loop.call_soon_threadsafe(task.cancel)
        elif task is not asyncio.current_task():
            task.cancel()

    def _abandon(self, request_id: str) -> None:
        with self._lock:
            current = request_id == self._request_id
        if current:
            self.reset()

    def _publish(self, state: CoordinatorState) -> None:
        self.hooks.on_state_change(state)
