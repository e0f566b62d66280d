"""Unit tests for the list/detail page parsers."""

from datetime import date

from booking_sync.services.remote.parser import (
    looks_like_login_page,
    parse_detail,
    parse_list,
    parse_time_slots,
    parse_total_count,
    parse_total_pages,
    translate_status,
)
from booking_sync.services.remote.types import ParseStats, RemoteStatus
from booking_sync.core.constants import LOGIN_PAGE_MARKERS, LOGIN_PAGE_TITLE_KEYWORDS
from portal_fakes import LOGIN_PAGE_HTML, detail_page, list_page, list_row


def test_total_count_and_pages():
    """Total count comes from the search-result-num block; pages round up."""
    html = list_page([], total=385)
    assert parse_total_count(html) == 385
    assert parse_total_pages(385, 10) == 39
    assert parse_total_pages(10, 10) == 1
    assert parse_total_pages(0, 10) == 0


def test_total_count_missing_block_is_zero():
    assert parse_total_count("<html><body>nothing</body></html>") == 0


def test_parse_list_one_record_per_row():
    """N well-formed rows yield exactly N records with their fields."""
    html = list_page(
        [
            list_row(external_id="1001", row_number=2, status="대관확정", times=("10:00~11:00", "11:00~12:00")),
            list_row(external_id="1002", row_number=1, facility="1인 스튜디오 #2", participants="1명"),
        ]
    )
    records = parse_list(html)

    assert len(records) == 2
    first = records[0]
    assert first.external_id == "1001"
    assert first.row_number == 2
    assert first.facility_name == "대형 스튜디오"
    assert first.participants_count == 5
    assert first.rental_date == date(2026, 3, 10)
    assert first.time_slots == (10, 11)
    assert first.applicant_name == "홍*동"
    assert first.organization == "스튜디오랩"
    assert first.status is RemoteStatus.CONFIRMED
    assert first.cancel_date is None
    assert first.created_at == date(2026, 3, 1)
    assert records[1].facility_name == "1인 스튜디오 #2"
    assert records[1].participants_count == 1


def test_parse_list_statuses_are_closed_set():
    html = list_page(
        [
            list_row(external_id="1", status="신청접수"),
            list_row(external_id="2", status="입금대기"),
            list_row(external_id="3", status="대관확정"),
            list_row(external_id="4", status="예약취소", cancel_date="2026.03.02"),
        ]
    )
    statuses = [r.status for r in parse_list(html)]
    assert statuses == [
        RemoteStatus.PENDING,
        RemoteStatus.PAYMENT_WAIT,
        RemoteStatus.CONFIRMED,
        RemoteStatus.CANCELLED,
    ]
    assert all(isinstance(s, RemoteStatus) for s in statuses)


def test_unknown_status_falls_back_and_is_counted():
    """An unknown label becomes PENDING and lands in ParseStats, not an exception."""
    stats = ParseStats()
    records = parse_list(list_page([list_row(status="보류중")]), stats)

    assert records[0].status is RemoteStatus.PENDING
    assert stats.unknown_status_labels == ["보류중"]


def test_unknown_status_uses_css_hint():
    records = parse_list(list_page([list_row(status="확정(변경)", status_class="txt-green")]))
    assert records[0].status is RemoteStatus.CONFIRMED


def test_short_rows_are_skipped_and_counted():
    """Rows with fewer than 12 cells are skipped; the rest still parse."""
    stats = ParseStats()
    html = list_page([list_row(external_id="1"), list_row(external_id="2", cells=11), list_row(external_id="3")])
    records = parse_list(html, stats)

    assert [r.external_id for r in records] == ["1", "3"]
    assert stats.rows_seen == 3
    assert stats.rows_skipped == 1


def test_row_without_link_has_empty_external_id():
    records = parse_list(list_page([list_row(external_id="")]))
    assert records[0].external_id == ""


def test_missing_tbody_yields_no_records():
    assert parse_list("<html><body><table></table></body></html>") == []


def test_time_slots():
    assert parse_time_slots(["09:00~10:00"]) == (9,)
    assert parse_time_slots(["13:00~15:00"]) == (13, 14)
    assert parse_time_slots(["14:00~15:00", "13:00~14:00", "13:00~14:00"]) == (13, 14)
    assert parse_time_slots(["16:00"]) == (16,)
    assert parse_time_slots(["시간 미정"]) == ()


def test_translate_status_known_flag():
    assert translate_status("대관확정") == (RemoteStatus.CONFIRMED, True)
    assert translate_status("  입금대기 ") == (RemoteStatus.PAYMENT_WAIT, True)
    assert translate_status("???") == (RemoteStatus.PENDING, False)
    assert translate_status("???", ["txt-real-read"]) == (RemoteStatus.CANCELLED, False)


def test_parse_detail_overlays_list_record():
    """Detail fields fill in; list fields the detail page also shows are replaced."""
    base = parse_list(list_page([list_row(external_id="1001", status="신청접수")]))[0]
    detail = parse_detail(detail_page(no_show=True), base)

    assert detail.external_id == "1001"
    assert detail.facility_name == "1인 스튜디오 #1"
    assert detail.time_slots == (13, 14)
    assert detail.participants_count == 12
    assert detail.status is RemoteStatus.CONFIRMED
    assert detail.full_name == "홍길동"
    assert detail.full_phone == "010-1234-5678"
    assert detail.email == "hong@example.com"
    assert detail.company_phone == "02-123-4567"
    assert detail.purpose == "제품 촬영"
    assert detail.user_type == "기업"
    assert detail.discount_rate == 20
    assert detail.rental_fee == 150000
    assert detail.business_number == "123-45-67890"
    assert detail.receipt_type == "세금계산서"
    assert detail.business_license == "license.pdf"
    assert detail.business_license_url == "/cmm/fms/FileDown.do?atchFileId=F1"
    assert detail.has_no_show is True
    assert detail.studio_usage_method == "영상 촬영"
    # list-only values survive
    assert detail.applicant_name == "홍*동"
    assert detail.created_at == date(2026, 3, 1)


def test_parse_detail_on_empty_page_keeps_list_values():
    base = parse_list(list_page([list_row(external_id="7")]))[0]
    detail = parse_detail("<html><body></body></html>", base)

    assert detail.rental_date == base.rental_date
    assert detail.time_slots == base.time_slots
    assert detail.status is base.status
    assert detail.rental_fee is None
    assert detail.has_no_show is False


def test_looks_like_login_page():
    assert looks_like_login_page(LOGIN_PAGE_HTML, LOGIN_PAGE_MARKERS, LOGIN_PAGE_TITLE_KEYWORDS)
    assert not looks_like_login_page(list_page([list_row()]), LOGIN_PAGE_MARKERS, LOGIN_PAGE_TITLE_KEYWORDS)
