"""Logging module."""
import copy
import logging
import sys
from enum import Enum

from loguru import logger


class InterceptHandler(logging.Handler):
    def emit(self, record):
        # Get corresponding Loguru level if it exists.
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message.
        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


class AuditLogType(str, Enum):
    audit = "audit"
    checkout_start = "checkout.start"
    payment_submit = "payment.submit"
    payment_succeeded = "payment.succeeded"
    payment_canceled = "payment.canceled"
    payment_failed = "payment.failed"
    payment_manual_review = "payment.manual_review"


def setup_logging(debug: bool = False):
    """Set up the logger.

    Routes the standard library's logging (used by httpx) through loguru.
    """
    level = logging.DEBUG if debug else logging.INFO

    logger.remove()
    logger.add(sys.stderr, level=level)

    audit_log.remove()
    audit_log.add(
        sys.stderr,
        level=level,
        format="{time} | AUDIT | {extra[type]} | {extra[session]} | {message}",
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


audit_log = copy.deepcopy(logger, memo={id(sys.stderr): sys.stderr}).bind(name="audit")
"""Separate logger for checkout business events."""

audit_log.remove()

audit_log.configure(
    extra=dict(
        type=AuditLogType.audit,
        session=None,
    )
)
