"""Test doubles for the remote portal: HTML builders, FakePortal (httpx.MockTransport), FakeClock, FakeInbox."""
import json
import threading
from datetime import datetime, timedelta
from urllib.parse import parse_qs

import httpx

from booking_sync.core.constants import (
    CODE_CONFIRM_PATH,
    CREDENTIAL_CHECK_PATH,
    DETAIL_PATH,
    LIST_PATH,
    LOGIN_ACTION_PATH,
    LOGIN_PATH,
)
BASE_URL = "https://portal.test"
USERNAME = "sto-admin"
PASSWORD = "s3cret!"
CODE = "482913"
VERIFICATION_EMAIL = "ops@example.com"
LIVE_COOKIE = "JSESSIONID=live-session"
FINAL_HOP_PATH = "/sto3788/main/index"


# =============================================================================
# HTML builders (shaped like the portal's list and detail pages)
# =============================================================================


def list_row(
    external_id="1001",
    row_number=1,
    facility="대형 스튜디오",
    participants="5명",
    rental_date="2026.03.10",
    times=("10:00~11:00",),
    applicant="홍*동",
    organization="스튜디오랩",
    phone="010-****-1234",
    status="신청접수",
    status_class="",
    cancel_date="",
    note="",
    created="2026.03.01",
    cells=12,
):
    applicant_cell = (
        f'<a href="/sto3788/reserveManage/stdioresvesttus/view?reqstSn={external_id}">{applicant}</a>'
        if external_id
        else applicant
    )
    tds = [
        str(row_number),
        facility,
        participants,
        rental_date,
        "<br/>".join(times),
        applicant_cell,
        organization,
        phone,
        f'<span class="{status_class}">{status}</span>',
        cancel_date,
        note,
        created,
    ]
    return "<tr>" + "".join(f"<td>{td}</td>" for td in tds[:cells]) + "</tr>"


def list_page(rows, total=None):
    total = len(rows) if total is None else total
    return (
        "<html><head><title>스튜디오 대관 현황</title></head><body>"
        f'<div class="search-result-num">총 <strong>{total:,}</strong>건</div>'
        '<table class="tbl"><thead><tr><th>번호</th></tr></thead>'
        f'<tbody class="dataTbody">{"".join(rows)}</tbody></table>'
        "</body></html>"
    )


def _item(label, value):
    return f'<li><div class="form-list-name">{label}</div><div class="form-list-cont">{value}</div></li>'


def detail_page(
    facility="1인 스튜디오 #1",
    rental_date="2026.03.10",
    times="13:00~14:00, 14:00~15:00",
    full_name="홍길동",
    full_phone="010-1234-5678",
    email="hong@example.com",
    status="대관확정",
    fee="150,000",
    no_show=False,
):
    no_show_attr = " checked" if no_show else ""
    return (
        "<html><head><title>대관 상세</title></head><body><ul class=\"form-list\">"
        + _item("신청 시설", facility)
        + _item("예약일", rental_date)
        + _item("예약 시간", times)
        + _item("행사 규모", "12명")
        + _item("신청일", "2026.03.01")
        + _item("신청자명", f'<input type="text" value="{full_name}">')
        + _item("휴대폰", f'<input type="text" value="{full_phone}">')
        + _item("이메일", email)
        + _item("소속", "스튜디오랩")
        + _item("전화번호", "02-123-4567")
        + _item("사용 목적", "<textarea>제품 촬영</textarea>")
        + _item("사업자번호", "123-45-67890")
        + _item("증빙 발행 유형 선택", "세금계산서")
        + _item("대관료 할인률", '<span id="dscntRt">20%</span>')
        + _item("시설 대관료 입금 계좌", "국민 000-000")
        + _item(
            "사업자등록증",
            '<a class="file-down" href="/cmm/fms/FileDown.do?atchFileId=F1">license.pdf</a>',
        )
        + '<li><div class="form-list-name">Q1. 어떤 방식으로 스튜디오를 사용하실 예정이신가요?</div></li>'
        + '<li><div class="form-list-cont">영상 촬영</div></li>'
        + "</ul>"
        + '<select id="reqstSttusCd"><option value="01">신청접수</option>'
        + f'<option value="03" selected>{status}</option></select>'
        + '<select id="userReqstTySn"><option value="1" selected>기업</option></select>'
        + f'<input type="text" id="rentalFee" value="{fee}">'
        + f'<input type="checkbox" id="noshowAt2"{no_show_attr}>'
        + '<input type="text" id="noshowMemo" value="">'
        + "</body></html>"
    )


LOGIN_PAGE_HTML = (
    '<html><head><title>STO 관리자 로그인</title></head><body>'
    '<form id="loginForm" action="/sto3788/loginout/loginAction" method="post">'
    '<input name="empId"><input type="password" name="password"></form></body></html>'
)


# =============================================================================
# Fake portal
# =============================================================================


class FakePortal:
    """In-memory stand-in for the remote portal, served through httpx.MockTransport."""

    def __init__(self):
        self.pages: dict[int, str] = {1: list_page([])}
        self.details: dict[str, str] = {}
        self.files: dict[str, tuple[bytes, str]] = {}
        self.fail_pages: set[int] = set()
        self.session_valid = True
        self.serve_login_page = False
        self.login_bounce = False
        self.extra_redirects = 0
        self.expire_after_page: int | None = None
        self.requests: list[httpx.Request] = []
        self.hold: threading.Event | None = None
        self.entered = threading.Event()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def _form(self, request: httpx.Request) -> dict[str, str]:
        request.read()
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}

    def _authorized(self, request: httpx.Request) -> bool:
        return self.session_valid and LIVE_COOKIE in request.headers.get("cookie", "")

    def _to_login(self) -> httpx.Response:
        return httpx.Response(302, headers={"location": f"{BASE_URL}{LOGIN_PATH}"})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == LOGIN_PATH:
            return httpx.Response(
                200, text=LOGIN_PAGE_HTML, headers={"set-cookie": "JSESSIONID=seed; Path=/"}
            )
        if path == CREDENTIAL_CHECK_PATH:
            form = self._form(request)
            if form.get("empId") == USERNAME and form.get("password") == PASSWORD:
                body = {"result": "success", "email": VERIFICATION_EMAIL}
            else:
                body = {"result": "fail", "message": "아이디 또는 비밀번호가 일치하지 않습니다."}
            return httpx.Response(200, content=json.dumps(body), headers={"content-type": "application/json"})
        if path == CODE_CONFIRM_PATH:
            form = self._form(request)
            ok = form.get("inputCode") == CODE and form.get("email") == VERIFICATION_EMAIL
            body = {"success": ok} if ok else {"success": False, "msg": "인증번호가 일치하지 않습니다."}
            return httpx.Response(200, content=json.dumps(body), headers={"content-type": "application/json"})
        if path == LOGIN_ACTION_PATH:
            if self.login_bounce:
                return self._to_login()
            return httpx.Response(
                302,
                headers=[
                    ("location", "/sto3788/main/hop0" if self.extra_redirects else FINAL_HOP_PATH),
                    ("set-cookie", f"{LIVE_COOKIE}; Path=/; HttpOnly"),
                ],
            )
        if path == "/sto3788/main/hop0":
            return httpx.Response(302, headers={"location": FINAL_HOP_PATH})
        if path == FINAL_HOP_PATH:
            return httpx.Response(
                200,
                text="<html><head><title>STO 관리자</title></head><body>main</body></html>",
                headers={"set-cookie": "AUTHTOKEN=final-hop; Path=/"},
            )

        if not self._authorized(request):
            return self._to_login()
        if self.serve_login_page:
            return httpx.Response(200, text=LOGIN_PAGE_HTML)

        if path == LIST_PATH:
            page = int(request.url.params.get("pageIndex", "1"))
            if self.expire_after_page is not None and page > self.expire_after_page:
                self.session_valid = False
                return self._to_login()
            if self.hold is not None:
                self.entered.set()
                self.hold.wait(5)
            if page in self.fail_pages:
                return httpx.Response(500, text="error")
            return httpx.Response(200, text=self.pages.get(page, list_page([])))
        if path == DETAIL_PATH:
            external_id = request.url.params.get("reqstSn", "")
            if external_id not in self.details:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, text=self.details[external_id])
        if path in self.files:
            content, content_type = self.files[path]
            return httpx.Response(200, content=content, headers={"content-type": content_type})
        return httpx.Response(404, text="not found")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeInbox:
    """Inbox that answers from a script: a code, None (not yet), or an exception to raise."""

    def __init__(self, answers=None):
        self.answers = list(answers or [])
        self.calls = 0

    def find_code(self, since, timeout=None):
        self.calls += 1
        answer = self.answers.pop(0) if self.answers else None
        if isinstance(answer, Exception):
            raise answer
        return answer


def no_sleep(_seconds: float) -> None:
    return None


