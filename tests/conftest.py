"""
Pytest configuration and shared fakes.

The fakes stand in for Playwright frames/pages so the watcher can be tested
without a browser.
"""
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from orderwatch.config import DEFAULT_SELECTORS, Settings
from orderwatch.models import Snapshot

ROW_SEL = DEFAULT_SELECTORS["row"]


def row(order_id: str = "", first: str = "", avg: str = "", opened: str = "", text: str = "") -> Dict[str, str]:
    """Cell texts as returned by the in-page row script."""
    return {"id": order_id, "first": first, "avg": avg, "opened": opened, "row": text or f"{first} {avg} {opened} {order_id}"}


class FakeLocator:
    def __init__(self, n: int = 0, visible: bool = True, on_click=None):
        self.n = n
        self.visible = visible
        self.on_click = on_click
        self.clicks = 0

    @property
    def first(self) -> "FakeLocator":
        return self

    def count(self) -> int:
        return self.n

    def is_visible(self) -> bool:
        return self.visible

    def click(self, timeout: Optional[int] = None) -> None:
        self.clicks += 1
        if self.on_click:
            self.on_click()


class FakeFrame:
    def __init__(self, url: str = "https://trader.example/main", rows: Optional[List[Dict[str, str]]] = None,
                 fail: Optional[Exception] = None, buttons: Optional[List[str]] = None,
                 locators: Optional[Dict[str, FakeLocator]] = None):
        self.url = url
        self.name = ""
        self.rows = rows or []
        self.fail = fail
        self.buttons = buttons or []
        self.locators = locators or {}
        self.clicked: List[str] = []

    def evaluate(self, script: str, arg: Any = None) -> List[Dict[str, str]]:
        if self.fail:
            raise self.fail
        return list(self.rows)

    def locator(self, sel: str) -> FakeLocator:
        if self.fail:
            raise self.fail
        if sel == ROW_SEL:
            return FakeLocator(len(self.rows))
        return self.locators.get(sel, FakeLocator(0))

    def get_by_role(self, role: str, name: Any = None) -> FakeLocator:
        for text in self.buttons:
            if role == "button" and name is not None and re.search(name, text):
                return FakeLocator(1, on_click=lambda t=text: self.clicked.append(t))
        return FakeLocator(0)


class FakeSession:
    def __init__(self, frames: Optional[List[FakeFrame]] = None, goto_error: Optional[Exception] = None):
        self._frames = frames if frames is not None else [FakeFrame()]
        self.goto_error = goto_error
        self.visits: List[str] = []
        self.alive = True
        self.closed = False
        self.html = "<html><body><table></table></body></html>"

    def frames(self) -> List[FakeFrame]:
        return list(self._frames)

    def set_frames(self, frames: List[FakeFrame]) -> None:
        self._frames = frames

    def goto(self, url: str, timeout_ms: int) -> None:
        self.visits.append(url)
        if self.goto_error:
            raise self.goto_error

    def wait_for_idle(self, timeout_ms: int) -> bool:
        return True

    def wait(self, ms: int) -> None:
        time.sleep(ms / 1000.0)

    def content(self) -> str:
        return self.html

    @property
    def url(self) -> str:
        return self._frames[0].url if self._frames else ""

    def is_alive(self) -> bool:
        return self.alive

    def close(self) -> None:
        self.closed = True


class FakeDom:
    """Scripted DomQuery: returns queued snapshots, or raises queued exceptions."""

    def __init__(self, snapshots: Optional[List[Any]] = None):
        self.snapshots = list(snapshots or [])
        self.current: Any = Snapshot()
        self.snapshot_calls = 0
        self.count_error: Optional[Exception] = None

    def push(self, item: Any) -> None:
        self.snapshots.append(item)

    def _next(self) -> Snapshot:
        if self.snapshots:
            self.current = self.snapshots.pop(0)
        if isinstance(self.current, Exception):
            err, self.current = self.current, Snapshot()
            raise err
        return self.current

    def snapshot(self, session: Any) -> Snapshot:
        self.snapshot_calls += 1
        return self._next()

    def row_count(self, session: Any) -> int:
        if self.count_error:
            raise self.count_error
        upcoming = self.snapshots[0] if self.snapshots else self.current
        if isinstance(upcoming, Exception):
            # pretend rows exist so the failure surfaces from snapshot()
            return 1
        return len(upcoming.records)

    def frame_counts(self, session: Any) -> Dict[str, int]:
        return {"https://trader.example/main": self.row_count(session)}


class FakeHttp:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.posts: List[Dict[str, Any]] = []

    def post(self, url: str, json: Any = None, timeout: Any = None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return None

    @property
    def messages(self) -> List[str]:
        return [p["json"]["content"] for p in self.posts]


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        trader_url="https://trader.example/main",
        webhook_url="https://hooks.example/abc",
        state_file=tmp_path / "state.json",
        log_dir=tmp_path / "logs",
        snapshot_dir=tmp_path / "snapshots",
        rows_timeout_ms=1000,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


def build_scheduler(settings: Settings, http: FakeHttp, dom: FakeDom, clock: FakeClock,
                    session_factory=None, states=None):
    """A ScanScheduler wired to fakes: real navigation, tracker and store, fake page and webhook."""
    from orderwatch.navigation import NavigationController
    from orderwatch.notifier import NotificationDispatcher
    from orderwatch.scheduler import MonitorContext, ScanScheduler
    from orderwatch.store import StateStore
    from orderwatch.tracker import LifecycleTracker

    if session_factory is None:
        def session_factory():
            return FakeSession([FakeFrame(rows=[row("A1", "SOLUSDT Short 25x")])])

    store = StateStore(settings.state_file)
    ctx = MonitorContext(
        settings=settings,
        navigator=NavigationController(
            session_factory=session_factory,
            row_selector=settings.selectors["row"],
            rows_timeout_ms=settings.rows_timeout_ms,
            clock=clock,
        ),
        dom=dom,
        tracker=LifecycleTracker(settings.open_confirm_scans, settings.close_confirm_scans,
                                 states if states is not None else store.load()),
        store=store,
        dispatcher=NotificationDispatcher(settings.webhook_url, settings.trader_url, session=http),
    )
    return ScanScheduler(ctx, clock=clock)
