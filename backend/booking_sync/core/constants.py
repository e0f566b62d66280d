"""
Centralized constants for the remote portal, scheduler and reconciliation.

Change paths, labels or job IDs here instead of scattering literals across services and routes.
Tunable values (intervals, page caps, timeouts) live in config.Settings.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
SYNC_JOB_ID = "remote_sync"
KEEPALIVE_JOB_ID = "remote_keepalive"

# Remote portal paths (relative to Settings.remote_base_url)
LOGIN_PATH = "/sto3788/loginout/login"
CREDENTIAL_CHECK_PATH = "/sto3788/loginout/loginCheck"
CODE_CONFIRM_PATH = "/sto3788/loginout/emailCertCheck"
LOGIN_ACTION_PATH = "/sto3788/loginout/loginAction"
LIST_PATH = "/sto3788/reserveManage/stdioresvesttus/list"
DETAIL_PATH = "/sto3788/reserveManage/stdioresvesttus/view"

LIST_PAGE_PARAM = "pageIndex"
DETAIL_ID_PARAM = "reqstSn"

# Any redirect whose Location contains one of these is the portal telling us the session is gone
LOGIN_REDIRECT_MARKERS = ("/loginout/login", "/loginout/logout", "login.do")
# Markers in a 200 document that mean we were served the login page instead of content
LOGIN_PAGE_MARKERS = ("loginAction", "id=\"loginForm\"", "name=\"empId\"")
LOGIN_PAGE_TITLE_KEYWORDS = ("로그인", "login")

# The login form answers with at most this many chained redirects before landing
MAX_LOGIN_REDIRECTS = 2

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# List page layout
ITEMS_PER_PAGE = 10
MIN_LIST_ROW_CELLS = 12

# Remote status labels -> internal status (closed set; see services.remote.types.RemoteStatus)
STATUS_LABELS = {
    "신청접수": "PENDING",
    "입금대기": "PAYMENT_WAIT",
    "대관확정": "CONFIRMED",
    "예약취소": "CANCELLED",
}
# Secondary signal when the label is unknown: css class on the status cell
STATUS_CLASS_HINTS = {
    "txt-green": "CONFIRMED",
    "txt-real-read": "CANCELLED",
}
DEFAULT_STATUS = "PENDING"

# Remote facility name -> local studio id
# Local studios: 1 = main studio, 2 = solo studio category, 3 = solo studio A, 4 = solo studio B
FACILITY_STUDIO_IDS = {
    "대형 스튜디오": 1,
    "1인 스튜디오 #1": 3,
    "1인 스튜디오 #2": 4,
    "1인 스튜디오 A": 3,
    "1인 스튜디오 B": 4,
}
DEFAULT_STUDIO_ID = 1

# Verification mail
VERIFICATION_SUBJECT_KEYWORD = "인증"
VERIFICATION_MAX_MESSAGES = 5
VERIFICATION_CLOCK_SKEW_SECONDS = 60

# Errors surfaced in SyncResult.errors
MSG_ALREADY_SYNCING = "already syncing"
MSG_SESSION_INVALID = "remote session is not valid; login required"
MSG_NO_PENDING_LOGIN = "no pending login"
MSG_LOGIN_CANCELLED = "login cancelled by logout"
