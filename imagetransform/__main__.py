import argparse
import asyncio
import logging
from typing import Optional, Sequence

from .coordinator import CoordinatorHooks, TransformRequestCoordinator
from .errors import TransformRejected
from .model import QualityTier, ServiceKind, TransformRequest
from .ports import StaticVipSession, TransformBackend
from .states import CoordinatorState, Failed, InFlight, Succeeded
from .transform_client import HttpTransformBackend
from .utils import configure_logging

logger = logging.getLogger(__name__)


def _report(state: CoordinatorState) -> None:
    if isinstance(state, InFlight) and state.progress is not None:
        logger.info("%3.0f%% %s", state.progress.percent, state.progress.message)


def main(argv: Optional[Sequence[str]] = None, backend: Optional[TransformBackend] = None) -> int:
    p = argparse.ArgumentParser(description="Submit one image transformation and wait for the result.")
    p.add_argument("image", help="URL or handle of the source image")
    p.add_argument("prompt")
    p.add_argument("--service", default=ServiceKind.MAGIC_MORPH.value, choices=[s.value for s in ServiceKind])
    p.add_argument("--quality", default=QualityTier.STANDARD.value, choices=[q.value for q in QualityTier])
    p.add_argument("--selection", default=None, help="Opaque selection region descriptor")
    p.add_argument("--vip-session", default=None)
    p.add_argument("--base-url", default=None, help="Transform service URL (defaults to TRANSFORM_API_URL)")
    p.add_argument("--log-level", default=None)

    args = p.parse_args(argv)
    configure_logging(args.log_level)

    coordinator = TransformRequestCoordinator(
        backend or HttpTransformBackend(base_url=args.base_url),
        vip_sessions=StaticVipSession(args.vip_session),
        hooks=CoordinatorHooks(on_state_change=_report),
    )
    request = TransformRequest(
        original_image_ref=args.image,
        prompt=args.prompt,
        service=args.service,
        selection=args.selection,
        quality=args.quality,
    )

    try:
        final = asyncio.run(coordinator.submit(request))
    except TransformRejected as exc:
        logger.error("Not submitted: %s", exc.message)
        return 2

    if isinstance(final, Succeeded):
        print(final.result.transformed_image_ref)
        return 0
    if isinstance(final, Failed):
        logger.error("Transformation failed: %s", final.error.message)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
