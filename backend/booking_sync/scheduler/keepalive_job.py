"""Runs every KEEPALIVE_INTERVAL_MINUTES: ping the portal so an idle session is not dropped."""
import logging

from booking_sync.services.keepalive import keep_alive
from booking_sync.services.runtime import get_runtime

logger = logging.getLogger(__name__)


def run_keepalive_job() -> None:
    rt = get_runtime()
    try:
        result = keep_alive(rt.sessions, rt.client)
    except Exception as e:
        logger.exception("Keep-alive job failed: %s", e)
        return
    if not result["success"] and result["needs_login"]:
        logger.debug("Keep-alive skipped: %s", result.get("message"))
