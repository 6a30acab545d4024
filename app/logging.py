# app/logging.py
import logging
import os
import re
from typing import Any, Dict, Optional

from app.services.outcome import Failure, FailureKind

CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")  # client paths may carry newlines/NULs


def configure_logging(level: Optional[str] = None):
    logging.basicConfig(
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def sanitize_str(s: str) -> str:
    return CONTROL_RE.sub(lambda m: "\\x%02x" % ord(m.group()), s)


def safe_args(args: Dict[str, Any]) -> Dict[str, Any]:
    safe = dict(args)
    for k, v in list(safe.items()):
        if isinstance(v, str):
            safe[k] = sanitize_str(v)
        elif v is not None and not isinstance(v, (int, float, bool)):
            safe[k] = sanitize_str(str(v))
    return safe


def log_operation(logger: logging.Logger, name: str, args: Dict[str, Any]):
    logger.info("OK: %s %s", name, safe_args(args))


def log_failure(logger: logging.Logger, name: str, failure: Failure, args: Dict[str, Any]):
    """
    Internal failures are logged with their cause; the others are the
    caller's problem and only logged at debug level.
    """
    if failure.kind is FailureKind.INTERNAL:
        logger.error(
            "%s failed: %s %s (%r)", name, failure.message, safe_args(args), failure.cause
        )
    else:
        logger.debug("%s rejected: %s %s", name, failure.kind.value, safe_args(args))
