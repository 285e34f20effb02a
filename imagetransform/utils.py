import logging
import uuid
from typing import Optional, Union

from config.settings import settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LOG_DATEFMT = "%H:%M:%S"


def gen_request_id() -> str:
    return str(uuid.uuid4())


def _coerce_level(value: Union[int, str, None], fallback: int) -> int:
    if value is None:
        return fallback
    if isinstance(value, int):
        return value
    text = value.strip()
    if not text:
        return fallback
    if text.isdigit():
        return int(text)
    candidate = getattr(logging, text.upper(), None)
    if isinstance(candidate, int):
        return candidate
    return fallback


def configure_logging(level: Union[int, str, None] = None) -> int:
    """
    Configure the root logger with a compact format.

    The level comes from the argument, else from LOG_LEVEL in settings.
    Returns the effective level.
    """
    effective = _coerce_level(level, _coerce_level(settings.LOG_LEVEL, logging.INFO))

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=effective, format=_LOG_FORMAT, datefmt=_LOG_DATEFMT)
    root.setLevel(effective)
    return effective


def short_id(request_id: Optional[str]) -> str:
    return (request_id or "-")[:8]
