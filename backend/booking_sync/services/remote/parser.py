"""
HTML parsers for the remote portal's list and detail pages.

Selectors are the only place that knows the page layout:
- list:   div.search-result-num strong (total), tbody.dataTbody > tr > td (one booking per row)
- detail: div.form-list-name (label) followed by div.form-list-cont (value), plus a few id'd inputs

A list row with too few cells is skipped and counted, never fatal. Unknown status labels
fall back to PENDING and are counted in ParseStats so the caller can surface them.
"""
import logging
import math
import re
from dataclasses import fields
from datetime import date

from bs4 import BeautifulSoup, Tag

from booking_sync.core.constants import (
    DEFAULT_STATUS,
    ITEMS_PER_PAGE,
    MIN_LIST_ROW_CELLS,
    STATUS_CLASS_HINTS,
    STATUS_LABELS,
)
from booking_sync.services.remote.types import (
    ParseStats,
    RemoteBookingDetail,
    RemoteBookingRecord,
    RemoteStatus,
)

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")
_INT_RE = re.compile(r"(\d[\d,]*)")
_DATE_RE = re.compile(r"(\d{4})\s*[.\-/]\s*(\d{1,2})\s*[.\-/]\s*(\d{1,2})")
_HOUR_RANGE_RE = re.compile(r"(\d{1,2}):(\d{2})\s*~\s*(\d{1,2}):(\d{2})")
_HOUR_START_RE = re.compile(r"(\d{1,2}):\d{2}")
_EXTERNAL_ID_RE = re.compile(r"reqstSn=(\d+)")
_EXTERNAL_ID_ONCLICK_RE = re.compile(r"['\"](\d+)['\"]")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def normalise_text(value: str | None) -> str:
    return _WS_RE.sub(" ", value or "").strip()


def _text(node: Tag | None) -> str:
    if node is None:
        return ""
    return normalise_text(node.get_text(" ", strip=True))


def _first_int(value: str | None, default: int = 0) -> int:
    m = _INT_RE.search(value or "")
    if not m:
        return default
    return int(m.group(1).replace(",", ""))


def parse_remote_date(value: str | None) -> date | None:
    """2026.03.03 / 2026-03-03 / 2026/3/3 -> date. None when absent or invalid."""
    m = _DATE_RE.search(value or "")
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def parse_time_slots(values: list[str]) -> tuple[int, ...]:
    """
    Hour-range strings -> ascending unique hour markers.
    "09:00~10:00" -> (9,); "13:00~15:00" -> (13, 14); a bare "14:00" -> (14,).
    """
    hours: set[int] = set()
    for raw in values:
        for m in _HOUR_RANGE_RE.finditer(raw):
            start, end = int(m.group(1)), int(m.group(3))
            if int(m.group(4)) > 0:
                end += 1  # 13:00~14:30 still occupies the 14 o'clock slot
            if end <= start:
                hours.add(start)
            else:
                hours.update(range(start, end))
        if not _HOUR_RANGE_RE.search(raw):
            m = _HOUR_START_RE.search(raw)
            if m:
                hours.add(int(m.group(1)))
    return tuple(sorted(h for h in hours if 0 <= h <= 23))


def translate_status(label: str, css_classes: list[str] | None = None) -> tuple[RemoteStatus, bool]:
    """Return (status, known). Unknown labels use the css hint if any, else PENDING."""
    label = normalise_text(label)
    if label in STATUS_LABELS:
        return RemoteStatus(STATUS_LABELS[label]), True
    for cls in css_classes or []:
        if cls in STATUS_CLASS_HINTS:
            return RemoteStatus(STATUS_CLASS_HINTS[cls]), False
    return RemoteStatus(DEFAULT_STATUS), False


def parse_total_count(html: str) -> int:
    """<div class="search-result-num">총 <strong>385</strong>건</div> -> 385."""
    node = _soup(html).select_one(".search-result-num strong")
    if node is None:
        return 0
    return _first_int(_text(node))


def parse_total_pages(total_count: int, items_per_page: int = ITEMS_PER_PAGE) -> int:
    if total_count <= 0 or items_per_page <= 0:
        return 0
    return math.ceil(total_count / items_per_page)


def _external_id(cell: Tag) -> str:
    for a in cell.find_all("a"):
        href = a.get("href") or ""
        m = _EXTERNAL_ID_RE.search(href)
        if m:
            return m.group(1)
        onclick = a.get("onclick") or ""
        m = _EXTERNAL_ID_RE.search(onclick) or _EXTERNAL_ID_ONCLICK_RE.search(onclick)
        if m:
            return m.group(1)
    return ""


def _status_classes(cell: Tag) -> list[str]:
    classes = list(cell.get("class") or [])
    for child in cell.find_all(True):
        classes.extend(child.get("class") or [])
    return classes


def parse_list(html: str, stats: ParseStats | None = None) -> list[RemoteBookingRecord]:
    """Parse every well-formed row of tbody.dataTbody into a RemoteBookingRecord."""
    stats = stats if stats is not None else ParseStats()
    tbody = _soup(html).select_one("tbody.dataTbody")
    if tbody is None:
        logger.warning("List page has no tbody.dataTbody; nothing parsed")
        return []

    records: list[RemoteBookingRecord] = []
    for row in tbody.find_all("tr", recursive=False):
        stats.rows_seen += 1
        cells = row.find_all("td", recursive=False)
        if len(cells) < MIN_LIST_ROW_CELLS:
            stats.rows_skipped += 1
            logger.debug("Parse skip: list row has %s cells (need %s)", len(cells), MIN_LIST_ROW_CELLS)
            continue

        status_label = _text(cells[8])
        status, known = translate_status(status_label, _status_classes(cells[8]))
        if not known:
            stats.unknown_status_labels.append(status_label)
            logger.warning("Unknown status label %r; using %s", status_label, status.value)

        records.append(
            RemoteBookingRecord(
                external_id=_external_id(cells[5]),
                row_number=_first_int(_text(cells[0])),
                facility_name=_text(cells[1]),
                participants_count=_first_int(_text(cells[2])),
                rental_date=parse_remote_date(_text(cells[3])),
                time_slots=parse_time_slots([s for s in cells[4].stripped_strings if "~" in s or ":" in s]),
                applicant_name=_text(cells[5]),
                organization=_text(cells[6]),
                phone=_text(cells[7]),
                status=status,
                cancel_date=_text(cells[9]) or None,
                special_note=_text(cells[10]),
                created_at=parse_remote_date(_text(cells[11])),
            )
        )
    return records


# --- Detail page ---


def _control_value(container: Tag) -> str:
    """Value shown in a form-list-cont: selected option, then input value, then textarea, then text."""
    option = container.select_one("option[selected]")
    if option is not None:
        return _text(option)
    inp = container.find("input", attrs={"value": True})
    if inp is not None and inp.get("type") not in ("hidden", "checkbox", "radio"):
        return normalise_text(inp.get("value"))
    area = container.find("textarea")
    if area is not None:
        return _text(area)
    return _text(container)


def _field_value(soup: BeautifulSoup, label: str) -> str:
    """Value of the form-list-cont following the form-list-name whose text is (or contains) label."""
    names = soup.select(".form-list-name")
    exact = [n for n in names if _text(n) == label]
    candidates = exact or [n for n in names if label in _text(n)]
    for name in candidates:
        cont = name.find_next_sibling(class_="form-list-cont")
        if cont is None and name.parent is not None:
            cont = name.parent.select_one(".form-list-cont")
        if cont is not None:
            return _control_value(cont)
    return ""


def _next_item_value(soup: BeautifulSoup, label: str) -> str:
    """Questionnaire layout: the question sits in one <li>, its answer in the next <li>'s form-list-cont."""
    hit = soup.find(string=lambda s: s is not None and label in s)
    if hit is None:
        return ""
    li = hit.find_parent("li")
    if li is None:
        return ""
    nxt = li.find_next_sibling("li")
    if nxt is None:
        return ""
    cont = nxt.select_one(".form-list-cont")
    return _text(cont) if cont is not None else _text(nxt)


def _selected_option(soup: BeautifulSoup, select_id: str) -> str:
    return _text(soup.select_one(f"select#{select_id} option[selected]"))


def _input_value(soup: BeautifulSoup, element_id: str) -> str:
    node = soup.find(id=element_id)
    if node is None:
        return ""
    if node.name == "textarea":
        return _text(node)
    return normalise_text(node.get("value")) if node.has_attr("value") else _text(node)


def parse_detail(html: str, base_record: RemoteBookingRecord) -> RemoteBookingDetail:
    """Overlay the detail page's labeled fields on the list record. Missing fields keep list values."""
    soup = _soup(html)
    values = {f.name: getattr(base_record, f.name) for f in fields(RemoteBookingRecord)}

    facility = _field_value(soup, "신청 시설")
    if facility:
        values["facility_name"] = facility
    rental_date = parse_remote_date(_field_value(soup, "예약일"))
    if rental_date:
        values["rental_date"] = rental_date
    slot_text = _field_value(soup, "예약 시간")
    if slot_text:
        slots = parse_time_slots(re.split(r"[,\s]+(?=\d{1,2}:)", slot_text))
        if slots:
            values["time_slots"] = slots
    participants = _field_value(soup, "행사 규모")
    if participants and _INT_RE.search(participants):
        values["participants_count"] = _first_int(participants)
    values["organization"] = _field_value(soup, "소속") or base_record.organization
    values["special_note"] = _field_value(soup, "특이사항") or base_record.special_note

    status_label = _selected_option(soup, "reqstSttusCd")
    if status_label:
        status, known = translate_status(status_label)
        if known:
            values["status"] = status

    discount_text = _field_value(soup, "대관료 할인률") or _field_value(soup, "대관료 할인율")
    if not discount_text:
        discount_text = _text(soup.find(id="dscntRt"))

    fee_text = _input_value(soup, "rentalFee")
    rental_fee = _first_int(fee_text) if _INT_RE.search(fee_text) else None

    license_link = soup.select_one("a.file-down") or soup.select_one("a.file-name")
    no_show = soup.find(id="noshowAt2")

    return RemoteBookingDetail(
        **values,
        application_date=_field_value(soup, "신청일"),
        full_name=_field_value(soup, "신청자명"),
        full_phone=_field_value(soup, "휴대폰"),
        email=_field_value(soup, "이메일"),
        company_phone=_field_value(soup, "전화번호"),
        purpose=_field_value(soup, "사용 목적"),
        user_type=_selected_option(soup, "userReqstTySn"),
        discount_rate=_first_int(discount_text),
        rental_fee=rental_fee,
        bank_account=_field_value(soup, "시설 대관료 입금 계좌"),
        business_license=_text(license_link),
        business_license_url=(license_link.get("href") or "") if license_link is not None else "",
        receipt_type=_field_value(soup, "증빙 발행 유형 선택"),
        business_number=_field_value(soup, "사업자번호"),
        has_no_show=no_show is not None and no_show.has_attr("checked"),
        no_show_memo=_input_value(soup, "noshowMemo"),
        studio_usage_method=_next_item_value(soup, "어떤 방식으로 스튜디오를 사용하실 예정이신가요"),
        file_delivery_method=_next_item_value(soup, "파일 원본은 어떻게 받길 원하십니까"),
        pre_meeting_contact=_next_item_value(soup, "스튜디오 사전 미팅을 원하시면 아래 연락처를 남겨주세요"),
        other_inquiry=_next_item_value(soup, "기타 스튜디오에 문의할 점을 기재해 주세요"),
    )


def looks_like_login_page(html: str, markers: tuple[str, ...], title_keywords: tuple[str, ...]) -> bool:
    """True when a 200 response is actually the login page (session silently dropped)."""
    if any(m in (html or "") for m in markers):
        return True
    title = _text(_soup(html).find("title")).lower()
    return bool(title) and any(k.lower() in title for k in title_keywords)
