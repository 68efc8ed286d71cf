"""Sentry integration for error tracking and performance monitoring.

Opt-in: nothing is sent unless COSMOS_TOOL_SENTRY_DSN is set. Without a
DSN the sentry_sdk span and capture calls used elsewhere are no-ops.
"""

import os

import sentry_sdk

from cosmos_tool.__about__ import __version__

SENTRY_DSN_ENV = "COSMOS_TOOL_SENTRY_DSN"


def setup_sentry(environment: str = "local") -> bool:
    """Initialize Sentry when a DSN is configured. Returns True if enabled."""
    dsn = os.environ.get(SENTRY_DSN_ENV)
    if not dsn:
        return False
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.03,
        environment=os.environ.get("COSMOS_TOOL_ENVIRONMENT", environment),
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
