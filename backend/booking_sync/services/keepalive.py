"""Keep-alive: a cheap authenticated request so the portal does not drop an idle session."""
import logging

from booking_sync.services.remote.auth import SessionManager
from booking_sync.services.remote.client import RemoteClient

logger = logging.getLogger(__name__)


def keep_alive(sessions: SessionManager, client: RemoteClient) -> dict:
    """
    Load the stored session if needed, fetch list page 1, and on success push expiry forward.
    Returns {"success", "needs_login", "expires_at"?, "message"?}. Never touches the sync lock.
    """
    if not sessions.ensure_valid():
        return {"success": False, "needs_login": True, "message": "no active session"}

    result = client.fetch_list_page(1)
    if result.session_expired:
        logger.info("Keep-alive found the remote session expired")
        return {"success": False, "needs_login": True, "message": "session expired"}
    if not result.ok:
        logger.warning("Keep-alive request failed: %s", result.error)
        return {"success": False, "needs_login": False, "message": result.error}

    expires_at = sessions.extend(record_keepalive=True)
    logger.debug("Keep-alive ok, session expires %s", expires_at.isoformat() if expires_at else None)
    return {
        "success": True,
        "needs_login": False,
        "expires_at": expires_at.isoformat() if expires_at else None,
    }
