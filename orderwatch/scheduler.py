import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Callable, Dict, Optional, Tuple

from .config import Settings
from .errors import ExtractionError, SessionUnavailable
from .extract import DomQuery, FrameExtractor
from .logs import log, log_debug, log_error, log_warning
from .navigation import NavigationController, NavOutcome
from .notifier import NotificationDispatcher
from .session import BrowserSession
from .store import StateStore
from .tracker import LifecycleTracker

ACTIONS = ("baseline", "inspect")


@dataclass
class MonitorStatus:
    """What the dashboard shows. Copied out under a lock, never shared live."""
    target_url: str
    started_at: float = field(default_factory=time.time)
    session: str = "starting"
    last_scan_at: float = 0.0
    last_reload_at: float = 0.0
    last_reload_outcome: Optional[str] = None
    last_row_count: int = 0
    last_frame: Optional[str] = None
    last_error: Optional[str] = None
    last_baseline: Optional[int] = None
    ticks: int = 0
    sent: int = 0
    failed: int = 0
    tracked: Dict[str, int] = field(default_factory=dict)
    orders: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    inspection: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MonitorContext:
    """Everything a tick touches. Owned by the scheduler and only used from its thread."""
    settings: Settings
    navigator: NavigationController
    dom: DomQuery
    tracker: LifecycleTracker
    store: StateStore
    dispatcher: NotificationDispatcher


def save_dom_snapshot(html: str, snapshot_dir: Path, label: str = "snapshot") -> Optional[Path]:
    """Write page HTML under snapshot_dir for offline inspection."""
    try:
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        p = snapshot_dir / f"{label}_{ts}.html"
        p.write_text(html, encoding="utf-8")
        log(f"🧾 Saved DOM snapshot: {p}")
        return p
    except OSError as e:
        log_warning(f"Failed to save DOM snapshot: {e}")
        return None


class ScanScheduler:
    """Fixed-rate driver: one tick = (maybe) navigate, or extract -> track -> notify -> persist."""

    def __init__(self, ctx: MonitorContext, clock: Callable[[], float] = time.time):
        self.ctx = ctx
        self.clock = clock
        self._status = MonitorStatus(target_url=ctx.settings.trader_url)
        self._status_lock = threading.Lock()
        self._actions: "Queue[Tuple[str, Future]]" = Queue()
        self._announced = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- operator surface (any thread) --

    def status(self) -> MonitorStatus:
        with self._status_lock:
            return replace(
                self._status,
                tracked=dict(self._status.tracked),
                orders={k: dict(v) for k, v in self._status.orders.items()},
                inspection=dict(self._status.inspection),
            )

    def submit(self, action: str) -> Future:
        """Queue an operator action for the scheduler thread; resolves after the next tick runs it."""
        if action not in ACTIONS:
            raise ValueError(f"Unknown action {action!r}; expected one of {ACTIONS}")
        fut: Future = Future()
        self._actions.put((action, fut))
        return fut

    def _set(self, **fields: Any) -> None:
        with self._status_lock:
            for k, v in fields.items():
                setattr(self._status, k, v)

    # -- tick --

    def tick(self) -> None:
        """One scheduler tick. Never raises."""
        try:
            self._tick()
        except Exception as e:
            log_error(f"Scan error: {e}", exc_info=True)
            self._set(last_error=str(e))
        finally:
            with self._status_lock:
                self._status.ticks += 1

    def _tick(self) -> None:
        ctx = self.ctx
        nav = ctx.navigator
        session = nav.ensure_session()
        if session is None:
            self._set(session="unavailable", last_error=nav.unavailable_reason)
            self._fail_actions(SessionUnavailable(nav.unavailable_reason or "browser unavailable"))
            return
        self._set(session="ready")
        if not self._announced:
            self._announced = True
            if ctx.settings.notify_startup:
                ctx.dispatcher.announce(
                    f"🟢 Position watcher started (reload every {ctx.settings.reload_every_ms // 1000}s)."
                )

        if nav.state.in_progress:
            log_debug("Navigation in progress; tick dropped")
            return

        now = self.clock()
        if nav.reload_due(ctx.settings.reload_every_ms, now):
            self._navigate()
            return

        # only after a completed load, so actions never read a blank page
        self._run_actions(session)

        try:
            count = ctx.dom.row_count(session)
        except ExtractionError as e:
            log_warning(f"{e}; retrying next tick")
            self._set(last_error=str(e))
            return
        if count == 0 and nav.reload_due(ctx.settings.empty_reload_every_ms, now):
            log("🔄 No rows on page; reloading")
            self._navigate()
            return

        try:
            snap = ctx.dom.snapshot(session)
        except ExtractionError as e:
            log_warning(f"{e}; retrying next tick")
            self._set(last_error=str(e))
            return

        events = ctx.tracker.update(snap.records)
        for event in events:
            ctx.dispatcher.notify(event)
        ctx.store.save(ctx.tracker.states)

        with self._status_lock:
            self._status.last_scan_at = self.clock()
            self._status.last_row_count = len(snap.records)
            self._status.last_frame = snap.frame_url
            self._status.last_error = None
            self._status.sent = ctx.dispatcher.sent
            self._status.failed = ctx.dispatcher.failed
            self._status.tracked = ctx.tracker.counts()
            self._status.orders = {k: st.to_dict() for k, st in ctx.tracker.states.items()}

    def _navigate(self) -> NavOutcome:
        nav = self.ctx.navigator
        outcome = nav.navigate(self.ctx.settings.trader_url)
        if outcome is not NavOutcome.SKIPPED:
            self._set(last_reload_at=nav.state.last_reload_at, last_reload_outcome=outcome.value)
        return outcome

    # -- operator actions (scheduler thread) --

    def _fail_actions(self, exc: Exception) -> None:
        while True:
            try:
                _, fut = self._actions.get_nowait()
            except Empty:
                return
            fut.set_exception(exc)

    def _run_actions(self, session: Any) -> None:
        while True:
            try:
                action, fut = self._actions.get_nowait()
            except Empty:
                return
            try:
                if action == "baseline":
                    fut.set_result(self.baseline(session))
                else:
                    fut.set_result(self.inspect(session))
            except Exception as e:
                log_error(f"Action {action} failed: {e}")
                fut.set_exception(e)

    def baseline(self, session: Any) -> int:
        """Mark every visible row as already opened so no notification goes out for it."""
        snap = self.ctx.dom.snapshot(session)
        added = self.ctx.tracker.baseline(snap.records)
        self.ctx.store.save(self.ctx.tracker.states)
        with self._status_lock:
            self._status.last_baseline = added
            self._status.tracked = self.ctx.tracker.counts()
            self._status.orders = {k: st.to_dict() for k, st in self.ctx.tracker.states.items()}
        return added

    def inspect(self, session: Any) -> Dict[str, Any]:
        """Per-frame row counts plus a saved copy of the page HTML."""
        counts = self.ctx.dom.frame_counts(session)
        html = session.content()
        path = save_dom_snapshot(html, self.ctx.settings.snapshot_dir, label="inspect")
        report = {
            "at": self.clock(),
            "url": session.url,
            "frames": counts,
            "rows": sum(counts.values()),
            "html_path": str(path) if path else None,
            "excerpt": html[:4000],
        }
        self._set(inspection=report)
        return report

    # -- loop --

    def run_forever(self, stop: Optional[threading.Event] = None) -> None:
        """Tick at a fixed rate until stopped. Slots missed by a long tick are dropped."""
        stop = stop or self._stop
        interval = self.ctx.settings.scan_every_ms / 1000.0
        log(f"⏱️ Scanning every {interval:.1f}s, reload every {self.ctx.settings.reload_every_ms / 1000:.0f}s")
        next_at = time.monotonic()
        try:
            while not stop.is_set():
                self.tick()
                next_at += interval
                now = time.monotonic()
                if next_at < now:
                    missed = int((now - next_at) / interval) + 1
                    log_debug(f"Tick overran; dropping {missed} slot(s)")
                    next_at += missed * interval
                stop.wait(max(0.0, next_at - now))
        finally:
            self.ctx.navigator.discard_session()
            log("🛑 Scanner stopped")

    def start(self) -> threading.Thread:
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self.run_forever, name="orderwatch-scan", daemon=True)
            self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)


def build_monitor(settings: Settings) -> ScanScheduler:
    """Wire the real browser, extractor, tracker, store and webhook together."""
    store = StateStore(settings.state_file)
    tracker = LifecycleTracker(settings.open_confirm_scans, settings.close_confirm_scans, store.load())
    navigator = NavigationController(
        session_factory=lambda: BrowserSession(settings).start(),
        row_selector=settings.selectors["row"],
        nav_timeout_ms=settings.nav_timeout_ms,
        idle_timeout_ms=settings.idle_timeout_ms,
        rows_timeout_ms=settings.rows_timeout_ms,
    )
    dispatcher = NotificationDispatcher(settings.webhook_url, settings.trader_url, settings.notify_timeout_s)
    ctx = MonitorContext(
        settings=settings,
        navigator=navigator,
        dom=FrameExtractor(settings.selectors),
        tracker=tracker,
        store=store,
        dispatcher=dispatcher,
    )
    return ScanScheduler(ctx)
