"""Error reporting to Sentry for the points engine"""
import logging
from typing import Any, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from vitalpoints import __version__
from vitalpoints.config import ENABLE_SENTRY, SENTRY_DSN, SENTRY_ENVIRONMENT, SENTRY_TRACES_SAMPLE_RATE
from vitalpoints.exceptions import AuthenticationError, ConcurrencyContentionError, ValidationError

logger = logging.getLogger(__name__)

# Expected outcomes of bad input or busy accounts; the caller already got a
# 4xx/503 and these carry no signal for on-call.
IGNORED_ERRORS = (ValidationError, AuthenticationError, ConcurrencyContentionError)

# Tag set on errors that are in IGNORED_ERRORS but still point at a bug in
# our own code, e.g. a feature module passing bad input to a hook
CALLER_BUG_TAG = "caller_bug"


def _drop_expected_errors(event: dict, hint: dict) -> Optional[dict]:
    if (event.get("tags") or {}).get(CALLER_BUG_TAG) == "true":
        return event
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], IGNORED_ERRORS):
        return None
    return event


def init_sentry() -> bool:
    """
    Start the Sentry SDK when ENABLE_SENTRY and SENTRY_DSN are both set

    Returns:
        True if reporting is active
    """
    if not ENABLE_SENTRY:
        logger.info("[SENTRY] Reporting disabled")
        return False

    if not SENTRY_DSN:
        logger.warning("[SENTRY] ENABLE_SENTRY is set but SENTRY_DSN is empty; reporting stays off")
        return False

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        release=f"vitalpoints@{__version__}",
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        before_send=_drop_expected_errors,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
    )

    logger.info(
        f"[SENTRY] Reporting to {SENTRY_ENVIRONMENT} "
        f"(release={__version__}, traces={SENTRY_TRACES_SAMPLE_RATE})"
    )
    return True


def capture_exception(exception: Exception, **tags: Any) -> None:
    """
    Report an exception with per-event tags (user_id, hook, operation...)

    Tags go on a throwaway scope so they never leak into later events.
    Pass caller_bug=True to report an otherwise ignored error.
    """
    if not ENABLE_SENTRY:
        return

    with sentry_sdk.new_scope() as scope:
        user_id = tags.pop("user_id", None)
        if tags.pop(CALLER_BUG_TAG, False):
            scope.set_tag(CALLER_BUG_TAG, "true")
        if user_id is not None:
            scope.set_user({"id": str(user_id)})
        for key, value in tags.items():
            scope.set_tag(key, str(value))
        sentry_sdk.capture_exception(exception)
