"""Remote portal client: authenticated page fetches. Returns FetchResult, never raises on HTTP/network failure."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlsplit

import httpx

from booking_sync.core.constants import (
    DETAIL_ID_PARAM,
    DETAIL_PATH,
    LIST_PAGE_PARAM,
    LIST_PATH,
    LOGIN_PAGE_MARKERS,
    LOGIN_PAGE_TITLE_KEYWORDS,
    LOGIN_REDIRECT_MARKERS,
    MSG_SESSION_INVALID,
    USER_AGENT,
)
from booking_sync.services.remote.matching import natural_key
from booking_sync.services.remote.parser import (
    looks_like_login_page,
    parse_detail,
    parse_list,
    parse_total_count,
    parse_total_pages,
)
from booking_sync.services.remote.types import (
    FetchResult,
    RemoteBookingDetail,
    RemoteBookingRecord,
    RemoteStatus,
    ScrapeResult,
)

if TYPE_CHECKING:
    from booking_sync.services.remote.auth import SessionManager

logger = logging.getLogger(__name__)


def is_login_location(location: str) -> bool:
    return any(m in (location or "") for m in LOGIN_REDIRECT_MARKERS)


def blank_record(external_id: str) -> RemoteBookingRecord:
    """Placeholder list record for a detail fetch that did not come from a list scrape."""
    return RemoteBookingRecord(
        external_id=external_id,
        row_number=0,
        facility_name="",
        participants_count=0,
        rental_date=None,
        time_slots=(),
        applicant_name="",
        organization="",
        phone="",
        status=RemoteStatus.PENDING,
        cancel_date=None,
        special_note="",
        created_at=None,
    )


class RemoteClient:
    """List/detail/file fetches over the current session. Every call requires SessionManager.is_valid()."""

    def __init__(
        self,
        sessions: SessionManager,
        base_url: str,
        *,
        timeout: float = 20.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._sessions = sessions
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._sleep = sleep

    def _url(self, path_or_url: str) -> str:
        return urljoin(f"{self._base_url}/", path_or_url)

    def _on_portal(self, url: str) -> bool:
        """Session cookies only ever go to the portal's own scheme and host."""
        target, portal = urlsplit(url), urlsplit(self._base_url)
        return (target.scheme.lower(), target.netloc.lower()) == (portal.scheme.lower(), portal.netloc.lower())

    def _get(self, path_or_url: str, params: dict | None = None) -> httpx.Response | FetchResult:
        url = self._url(path_or_url)
        if not self._on_portal(url):
            logger.warning("Refusing remote GET outside the portal: %s", url)
            return FetchResult.failed(f"url is not on the portal: {urlsplit(url).netloc or url}")
        if not self._sessions.is_valid():
            return FetchResult(session_expired=True, error=MSG_SESSION_INVALID)
        headers = {"User-Agent": USER_AGENT, "Cookie": self._sessions.cookie_jar()}
        try:
            with httpx.Client(timeout=self._timeout, follow_redirects=False, transport=self._transport) as c:
                r = c.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Remote GET %s failed: %s", url, e)
            return FetchResult.failed(str(e) or type(e).__name__)

        if r.is_redirect:
            location = r.headers.get("location", "")
            if is_login_location(location):
                logger.info("Remote redirected %s to login; session expired", url)
                self._sessions.mark_expired()
                return FetchResult.expired()
            return FetchResult.failed(f"unexpected redirect to {location}")
        if not r.is_success:
            return FetchResult.failed(f"Remote error: {r.status_code}")
        self._sessions.absorb_cookies(r)
        return r

    def _get_page(self, path: str, params: dict | None = None) -> FetchResult:
        r = self._get(path, params)
        if isinstance(r, FetchResult):
            return r
        html = r.text
        if looks_like_login_page(html, LOGIN_PAGE_MARKERS, LOGIN_PAGE_TITLE_KEYWORDS):
            logger.info("Remote served the login page for %s; session expired", path)
            self._sessions.mark_expired()
            return FetchResult.expired()
        return FetchResult(html=html, content_type=r.headers.get("content-type"))

    def fetch_list_page(self, page: int) -> FetchResult:
        return self._get_page(LIST_PATH, {LIST_PAGE_PARAM: str(page)})

    def fetch_detail_page(self, external_id: str) -> FetchResult:
        return self._get_page(DETAIL_PATH, {DETAIL_ID_PARAM: external_id})

    def fetch_booking_detail(
        self, external_id: str, base_record: RemoteBookingRecord | None = None
    ) -> tuple[RemoteBookingDetail | None, FetchResult]:
        """Fetch and parse one detail page on top of base_record (or an empty record)."""
        result = self.fetch_detail_page(external_id)
        if not result.ok:
            return None, result
        return parse_detail(result.html, base_record or blank_record(external_id)), result

    def fetch_all_bookings(self, max_pages: int, page_delay: float = 0.0) -> ScrapeResult:
        """
        Walk list pages 1..min(total_pages, max_pages). Page 1 failing ends the scrape;
        a later page failing is recorded and skipped. Same booking twice: the later page wins.
        Storage is never touched.
        """
        scrape = ScrapeResult()
        first = self.fetch_list_page(1)
        if not first.ok:
            scrape.auth_failed = first.session_expired
            scrape.errors.append(MSG_SESSION_INVALID if first.session_expired else f"page 1: {first.error}")
            return scrape

        scrape.total_count = parse_total_count(first.html)
        by_key: dict[tuple, RemoteBookingRecord] = {}
        for record in parse_list(first.html, scrape.stats):
            by_key[natural_key(record)] = record
        scrape.pages_fetched = 1

        total_pages = parse_total_pages(scrape.total_count) or 1
        last_page = min(total_pages, max_pages)
        if total_pages > max_pages:
            logger.info("Remote has %s pages; scraping the first %s", total_pages, max_pages)

        for page in range(2, last_page + 1):
            if page_delay > 0:
                self._sleep(page_delay)
            result = self.fetch_list_page(page)
            if not result.ok:
                scrape.errors.append(f"page {page}: {result.error}")
                logger.warning("List page %s failed: %s", page, result.error)
                if result.session_expired:
                    # later pages would only repeat the same expired-session error
                    break
                continue
            for record in parse_list(result.html, scrape.stats):
                by_key.pop(natural_key(record), None)
                by_key[natural_key(record)] = record
            scrape.pages_fetched += 1

        scrape.records = list(by_key.values())
        logger.info(
            "Scraped %s bookings from %s/%s pages (total %s)",
            len(scrape.records), scrape.pages_fetched, last_page, scrape.total_count,
        )
        return scrape

    def download_file(self, url: str) -> FetchResult:
        """Attachment download (e.g. business license). Relative urls resolve against the portal."""
        r = self._get(url)
        if isinstance(r, FetchResult):
            return r
        content_type = r.headers.get("content-type", "application/octet-stream")
        if content_type.startswith("text/html") and looks_like_login_page(
            r.text, LOGIN_PAGE_MARKERS, LOGIN_PAGE_TITLE_KEYWORDS
        ):
            self._sessions.mark_expired()
            return FetchResult.expired()
        return FetchResult(content=r.content, content_type=content_type)
