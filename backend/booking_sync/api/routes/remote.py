"""
Remote portal: login (2-step or automatic), session status, sync triggers, keep-alive,
read-only booking scrape and attachment download.
"""
import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from booking_sync.core.constants import MSG_ALREADY_SYNCING
from booking_sync.core.errors import STATUS_BAD_GATEWAY, STATUS_CONFLICT, STATUS_UNAUTHORIZED, auth_error_to_http
from booking_sync.scheduler.sync_job import run_sync
from booking_sync.services.keepalive import keep_alive
from booking_sync.services.remote.types import Credentials, FetchResult
from booking_sync.services.runtime import SyncRuntime, get_runtime
from booking_sync.services.sync_gate import SyncTrigger

router = APIRouter()
logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    username: str | None = Field(None, description="Portal id; defaults to REMOTE_USERNAME")
    password: str | None = Field(None, description="Portal password; defaults to REMOTE_PASSWORD")


class ConfirmRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=12)


class SyncRequest(BaseModel):
    force: bool = False
    max_pages: int | None = Field(None, ge=1, le=50)


def _credentials(body: LoginRequest, rt: SyncRuntime) -> Credentials:
    username = (body.username or "").strip()
    password = (body.password or "").strip()
    if username and password:
        return Credentials(username, password)
    configured = rt.configured_credentials()
    if configured is None:
        raise HTTPException(status_code=400, detail="username and password are required")
    return configured


def _fetch_error(result: FetchResult) -> HTTPException:
    if result.session_expired:
        return HTTPException(status_code=STATUS_UNAUTHORIZED, detail={"error": result.error, "needs_login": True})
    return HTTPException(status_code=STATUS_BAD_GATEWAY, detail={"error": result.error})


# --- Login ---


@router.post("/login/request-code")
def request_code(body: LoginRequest, rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    """Step 1: submit credentials; the portal mails a verification code."""
    result = rt.sessions.request_verification_code(_credentials(body, rt))
    if not result.ok:
        raise auth_error_to_http(result.kind, result.error)
    return {"success": True, "verification_email": result.verification_email}


@router.post("/login/confirm")
def confirm_code(body: ConfirmRequest, rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    """Step 2: confirm the mailed code and finish the login."""
    result = rt.sessions.confirm_verification_code(body.code)
    if not result.ok:
        raise auth_error_to_http(result.kind, result.error)
    return {"success": True, "expires_at": result.session.expires_at.isoformat()}


@router.post("/login/auto")
def auto_login(body: LoginRequest, rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    """Request a code, read it from the configured inbox, confirm it. Blocks up to the code timeout."""
    result = rt.sessions.auto_login(_credentials(body, rt))
    if not result.ok:
        raise auth_error_to_http(result.kind, result.error)
    return {"success": True, "expires_at": result.session.expires_at.isoformat()}


@router.get("/login")
def login_status(rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    rt.sessions.ensure_valid()
    return {**rt.sessions.status(), "stored": rt.store.snapshot()}


@router.post("/logout")
def logout(rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    rt.sessions.clear()
    return {"success": True}


# --- Sync ---


@router.post("/sync")
def trigger_sync(body: SyncRequest, rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    """Manual sync. Operating hours apply unless force=true; the interval gate does not."""
    out = run_sync(SyncTrigger.MANUAL, force=body.force, max_pages=body.max_pages, runtime=rt)
    if out.get("needs_login"):
        raise HTTPException(status_code=STATUS_UNAUTHORIZED, detail=out)
    if MSG_ALREADY_SYNCING in (out.get("errors") or []):
        raise HTTPException(status_code=STATUS_CONFLICT, detail=out)
    return out


@router.get("/sync")
def sync_status(rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    last = rt.reconciler.last_result
    stored = rt.store.snapshot()
    return {
        "is_syncing": rt.reconciler.is_syncing(),
        "is_logged_in": rt.sessions.is_valid(),
        "is_operating_hours": rt.gate.is_operating_hours(),
        "last_sync_at": stored["last_sync_at"],
        "last_result": last.to_dict() if last is not None else None,
    }


@router.post("/cron")
def cron_sync(
    authorization: str | None = Header(None),
    rt: SyncRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """External scheduler entry: same gates as the internal tick. Bearer CRON_SECRET when configured."""
    secret = rt.settings.cron_secret
    if secret and authorization != f"Bearer {secret}":
        raise HTTPException(status_code=STATUS_UNAUTHORIZED, detail="unauthorized")
    return run_sync(SyncTrigger.SCHEDULED, runtime=rt)


# --- Keep-alive ---


@router.post("/keepalive")
def keepalive(rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return keep_alive(rt.sessions, rt.client)


@router.get("/keepalive")
def keepalive_status(rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    stored = rt.store.snapshot()
    return {
        "memory": rt.sessions.status(),
        "stored": stored,
        "is_operating_hours": rt.gate.is_operating_hours(),
    }


# --- Read-only scrape ---


@router.get("/bookings")
def list_remote_bookings(
    max_pages: int = Query(1, ge=1, le=50),
    rt: SyncRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """Scrape list pages without touching local storage."""
    if not rt.sessions.ensure_valid():
        raise HTTPException(status_code=STATUS_UNAUTHORIZED, detail={"error": "login required", "needs_login": True})
    scrape = rt.reconciler.scrape(max_pages)
    if scrape.aborted:
        raise HTTPException(
            status_code=STATUS_UNAUTHORIZED if scrape.auth_failed else STATUS_BAD_GATEWAY,
            detail={"errors": scrape.errors, "needs_login": scrape.auth_failed},
        )
    return {
        "total_count": scrape.total_count,
        "pages_fetched": scrape.pages_fetched,
        "bookings": [
            {
                "external_id": r.external_id,
                "facility_name": r.facility_name,
                "rental_date": r.rental_date.isoformat() if r.rental_date else None,
                "time_slots": list(r.time_slots),
                "applicant_name": r.applicant_name,
                "organization": r.organization,
                "participants_count": r.participants_count,
                "status": r.status.value,
            }
            for r in scrape.records
        ],
        "errors": scrape.errors,
    }


@router.get("/bookings/{external_id}")
def remote_booking_detail(external_id: str, rt: SyncRuntime = Depends(get_runtime)) -> dict[str, Any]:
    if not rt.sessions.ensure_valid():
        raise HTTPException(status_code=STATUS_UNAUTHORIZED, detail={"error": "login required", "needs_login": True})
    detail, result = rt.client.fetch_booking_detail(external_id)
    if detail is None:
        raise _fetch_error(result)
    out = asdict(detail)
    out["status"] = detail.status.value
    out["rental_date"] = detail.rental_date.isoformat() if detail.rental_date else None
    out["created_at"] = detail.created_at.isoformat() if detail.created_at else None
    out["time_slots"] = list(detail.time_slots)
    return out


@router.get("/files")
def download_file(url: str = Query(..., min_length=1), rt: SyncRuntime = Depends(get_runtime)) -> Response:
    """Proxy an attachment (e.g. business license) through the authenticated session."""
    if not rt.sessions.ensure_valid():
        raise HTTPException(status_code=STATUS_UNAUTHORIZED, detail={"error": "login required", "needs_login": True})
    result = rt.client.download_file(url)
    if not result.ok:
        raise _fetch_error(result)
    return Response(content=result.content, media_type=result.content_type)
