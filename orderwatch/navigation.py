import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from playwright.sync_api import Error as PlaywrightError

from .errors import NavigationError, SessionUnavailable
from .logs import log, log_debug, log_error, log_warning
from .session import frame_label

# Tried in order; the first visible match in any frame gets clicked
CONSENT_BUTTON_TEXT = re.compile(
    r"^\s*(accept all|accept|agree|i agree|allow all|got it|ok|tout accepter|accepter|j'accepte)\s*$",
    re.I,
)
CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "button#didomi-notice-agree-button",
    "button[id*='accept' i]",
    "[class*='cookie' i] button",
    "[class*='consent' i] button",
]


class NavOutcome(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NavigationState:
    """Busy flag plus the time of the last attempted navigation (epoch seconds, 0 = never)."""
    last_reload_at: float = 0.0
    busy: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def in_progress(self) -> bool:
        return self.busy.locked()


def dismiss_consent(session: Any) -> bool:
    """Click away a cookie/consent banner if one is showing. Never raises."""
    try:
        frames = session.frames()
    except Exception:
        return False
    for frame in frames:
        try:
            btn = frame.get_by_role("button", name=CONSENT_BUTTON_TEXT).first
            if btn.count() > 0 and btn.is_visible():
                btn.click(timeout=1500)
                log(f"🍪 Consent banner dismissed in {frame_label(frame)}")
                return True
        except Exception:
            pass
    for sel in CONSENT_SELECTORS:
        for frame in frames:
            try:
                cand = frame.locator(sel).first
                if cand.count() > 0 and cand.is_visible():
                    cand.click(timeout=1500)
                    log(f"🍪 Consent banner dismissed via {sel}")
                    return True
            except Exception:
                pass
    return False


def wait_for_rows(session: Any, row_selector: str, timeout_ms: int, poll_ms: int = 300) -> Optional[str]:
    """Poll the main frame and nested frames until one matches the row selector.

    Returns the matching frame's label, or None on timeout. Frames may come and
    go while the page settles, so per-frame errors are ignored.
    """
    deadline = time.time() + max(1.0, timeout_ms / 1000.0)
    while time.time() < deadline:
        for frame in session.frames():
            try:
                if frame.locator(row_selector).count() > 0:
                    return frame_label(frame)
            except Exception:
                pass
        session.wait(poll_ms)
    return None


class NavigationController:
    """Owns session creation and single-flight navigation of the watched page."""

    def __init__(
        self,
        session_factory: Callable[[], Any],
        row_selector: str,
        nav_timeout_ms: int = 60000,
        idle_timeout_ms: int = 10000,
        rows_timeout_ms: int = 45000,
        clock: Callable[[], float] = time.time,
    ):
        self.session_factory = session_factory
        self.row_selector = row_selector
        self.nav_timeout_ms = nav_timeout_ms
        self.idle_timeout_ms = idle_timeout_ms
        self.rows_timeout_ms = rows_timeout_ms
        self.clock = clock
        self.state = NavigationState()
        self.session: Optional[Any] = None
        self.unavailable_reason: Optional[str] = None

    def ensure_session(self) -> Optional[Any]:
        """Create the session on first use. Returns None while the browser cannot be started."""
        if self.session is not None:
            if self.session.is_alive():
                return self.session
            log_warning("Page was closed or crashed; discarding session")
            self.discard_session()
        try:
            self.session = self.session_factory()
        except SessionUnavailable as e:
            if self.unavailable_reason is None:
                log_error(f"Browser unavailable, scans paused until it can start: {e}")
            self.unavailable_reason = str(e)
            return None
        if self.unavailable_reason is not None:
            log("✅ Browser available again")
        self.unavailable_reason = None
        # a fresh page has nothing loaded yet
        self.state.last_reload_at = 0.0
        return self.session

    def discard_session(self) -> None:
        if self.session is not None:
            try:
                self.session.close()
            except Exception:
                pass
        self.session = None

    def reload_due(self, interval_ms: int, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        return self.state.last_reload_at <= 0 or (now - self.state.last_reload_at) * 1000 >= interval_ms

    def navigate(self, url: str) -> NavOutcome:
        """Load url and wait for rows. Drops the call if a navigation is already running."""
        if self.session is None:
            return NavOutcome.SKIPPED
        if not self.state.busy.acquire(blocking=False):
            log_debug("Navigation already in progress; dropping request")
            return NavOutcome.SKIPPED
        started = self.clock()
        try:
            self._load(url)
            log_debug(f"Page ready in {self.clock() - started:.1f}s")
            return NavOutcome.OK
        except NavigationError as e:
            log_error(str(e))
            return NavOutcome.FAILED
        finally:
            self.state.last_reload_at = self.clock()
            self.state.busy.release()

    def _load(self, url: str) -> None:
        log(f"🌐 Opening {url}")
        try:
            self.session.goto(url, self.nav_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"Page load failed: {e}") from e
        self.session.wait_for_idle(self.idle_timeout_ms)
        dismiss_consent(self.session)
        try:
            found = wait_for_rows(self.session, self.row_selector, self.rows_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"Waiting for rows failed: {e}") from e
        if found is None:
            raise NavigationError(f"No frame showed rows within {self.rows_timeout_ms / 1000:.0f}s")
        log_debug(f"Rows found in frame {found}")
