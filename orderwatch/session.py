from typing import Any, List, Optional

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Frame,
    Page,
    Playwright,
    sync_playwright,
)

from .config import USER_AGENT, Settings
from .errors import SessionUnavailable
from .logs import log, log_debug

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


class BrowserSession:
    """One Chromium page driven through Playwright's sync API.

    Playwright sync objects are bound to the thread that created them, so a
    session must only be used from the scheduler thread.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.attached = False

    def start(self) -> "BrowserSession":
        """Launch (or attach to) the browser and open a page. Raises SessionUnavailable."""
        try:
            self.playwright = sync_playwright().start()
            if self.settings.cdp_url:
                log(f"🌐 Attaching to running browser over CDP at {self.settings.cdp_url} …")
                self.attached = True
                self.browser = self.playwright.chromium.connect_over_cdp(self.settings.cdp_url)
                self.context = self.browser.contexts[0] if self.browser.contexts else self._new_context()
            else:
                lang = self.settings.locale.split("-")[0]
                self.browser = self.playwright.chromium.launch(
                    headless=self.settings.headless,
                    args=LAUNCH_ARGS + [f"--lang={self.settings.locale},{lang}"],
                )
                self.context = self._new_context()
            self.page = self.context.new_page()
            self.page.set_default_timeout(self.settings.nav_timeout_ms)
            log("✅ Browser session ready")
            return self
        except PlaywrightError as e:
            self.close()
            raise SessionUnavailable(f"Could not start browser: {e}") from e

    def _new_context(self) -> BrowserContext:
        assert self.browser is not None
        return self.browser.new_context(
            viewport={"width": 1366, "height": 768},
            user_agent=USER_AGENT,
            locale=self.settings.locale,
        )

    def is_alive(self) -> bool:
        try:
            return self.page is not None and not self.page.is_closed()
        except PlaywrightError:
            return False

    def goto(self, url: str, timeout_ms: int) -> None:
        assert self.page is not None
        self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    def wait_for_idle(self, timeout_ms: int) -> bool:
        """Best-effort network idle wait; some pages never go idle."""
        assert self.page is not None
        try:
            self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
            return True
        except PlaywrightError as e:
            log_debug(f"Network idle not reached: {e}")
            return False

    def frames(self) -> List[Frame]:
        """Main frame first, then nested frames in document order."""
        assert self.page is not None
        return list(self.page.frames)

    def wait(self, ms: int) -> None:
        assert self.page is not None
        self.page.wait_for_timeout(ms)

    def content(self) -> str:
        assert self.page is not None
        return self.page.content()

    @property
    def url(self) -> str:
        return self.page.url if self.page is not None else ""

    def close(self) -> None:
        # an attached browser belongs to someone else: only drop our page and disconnect
        closers = (self.page, self.browser) if self.attached else (self.context, self.browser)
        for closer in closers:
            if closer is None:
                continue
            try:
                closer.close()
            except Exception:
                pass
        try:
            if self.playwright is not None:
                self.playwright.stop()
        except Exception:
            pass
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None


def frame_label(frame: Any) -> str:
    try:
        return frame.url or frame.name or "<frame>"
    except Exception:
        return "<frame>"
