import argparse
import sys
from typing import List, Optional

from .config import load_settings
from .errors import ConfigError, ExtractionError
from .logs import log, log_error, setup_logging
from .navigation import NavOutcome
from .scheduler import ScanScheduler, build_monitor


def _open_page(sched: ScanScheduler):
    nav = sched.ctx.navigator
    session = nav.ensure_session()
    if session is None:
        return None
    if nav.navigate(sched.ctx.settings.trader_url) is NavOutcome.FAILED:
        log("⚠️ Page did not show rows; continuing with whatever is rendered")
    return session


def run_once(sched: ScanScheduler, action: str) -> int:
    """Open the page, run a single operator action and close the browser."""
    session = _open_page(sched)
    if session is None:
        log_error("Browser unavailable; is Chromium installed? Try: playwright install chromium")
        return 1
    try:
        if action == "baseline":
            added = sched.baseline(session)
            log(f"Result: baselineAdded={added}")
        else:
            snap = sched.ctx.dom.snapshot(session)
            log(f"📋 Visible rows ({len(snap.records)}) in {snap.frame_url or 'no frame'}:")
            for i, rec in enumerate(snap.records, 1):
                lev = f" {rec.leverage}x" if rec.leverage else ""
                log(f"  [{i}] {rec.id} {rec.symbol or '?'} {rec.side.value}{lev} avg={rec.avg_price or '-'} opened={rec.open_time or '-'}")
            report = sched.inspect(session)
            log(f"🧩 Row matches per frame: {report['frames']}")
        return 0
    except ExtractionError as e:
        log_error(str(e))
        return 1
    finally:
        sched.ctx.navigator.discard_session()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Watch a copy-trading page and announce opened/closed positions.")
    parser.add_argument("--action", choices=["monitor", "baseline", "snapshot"], default="monitor")
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: ./.env)")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(dotenv_path=args.env_file)
    except ConfigError as e:
        print(f"⚠️  {e}. Set them in the environment or in .env.", file=sys.stderr)
        return 2

    log_file = setup_logging(settings.log_dir, settings.diag)
    log("🚀 Starting position watcher")
    log(f"🎯 Target: {settings.trader_url}")
    log(f"🧾 Log file: {log_file}")

    sched = build_monitor(settings)
    if args.action != "monitor":
        return run_once(sched, args.action)

    try:
        sched.run_forever()
    except KeyboardInterrupt:
        log("🛑 Interrupted by user.")
    return 0

