import hashlib
import re
from typing import Any, Dict, List, Optional, Protocol, Tuple

from playwright.sync_api import Error as PlaywrightError

from .errors import ExtractionError
from .logs import log_debug
from .models import RawOrderRecord, Side, Snapshot
from .session import frame_label

# Runs inside each frame; returns raw cell texts only, parsing happens in Python
ROWS_SCRIPT = """
(sel) => {
  const text = (el) => (el ? (el.innerText || el.textContent || '').trim() : '');
  return Array.from(document.querySelectorAll(sel.row)).map((tr) => ({
    id: text(tr.querySelector(sel.order_id)),
    first: text(tr.querySelector(sel.first_cell)),
    avg: text(tr.querySelector(sel.avg_price)),
    opened: text(tr.querySelector(sel.open_ts)),
    row: text(tr),
  }));
}
"""

SYMBOL_RE = re.compile(r"[A-Z0-9]{2,}USDT")
LEVERAGE_RE = re.compile(r"(\d+)\s*x", re.I)


class DomQuery(Protocol):
    """What the scheduler needs from the page. FrameExtractor is the browser-backed one."""

    def snapshot(self, session: Any) -> Snapshot:
        ...

    def row_count(self, session: Any) -> int:
        ...

    def frame_counts(self, session: Any) -> Dict[str, int]:
        ...


def normalize_text(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def clean_order_id(text: Optional[str]) -> str:
    return re.sub(r"\s+", "", text or "")


def parse_first_cell(text: Optional[str]) -> Tuple[str, Side, str]:
    """Split the composite "SOLUSDT Perpetual Short 25x" cell into (symbol, side, leverage)."""
    cell = normalize_text(text)
    m = SYMBOL_RE.search(cell)
    symbol = m.group(0) if m else ""
    if re.search(r"short", cell, re.I):
        side = Side.SHORT
    elif re.search(r"long", cell, re.I):
        side = Side.LONG
    else:
        side = Side.UNKNOWN
    leverage = ""
    m = LEVERAGE_RE.search(cell)
    if m and int(m.group(1)) > 0:
        leverage = str(int(m.group(1)))
    return symbol, side, leverage


def fallback_key(text: Optional[str]) -> str:
    """Deterministic key for a row with no identifier cell. Empty text gives an empty key."""
    norm = normalize_text(text).casefold()
    if not norm:
        return ""
    return "row-" + hashlib.sha1(norm.encode("utf-8")).hexdigest()[:12]


def record_from_cells(cells: Dict[str, Any]) -> Optional[RawOrderRecord]:
    """Build a record from the raw texts returned by ROWS_SCRIPT; None when no key can be derived."""
    first = normalize_text(cells.get("first"))
    opened = normalize_text(cells.get("opened"))
    order_id = clean_order_id(cells.get("id"))
    if not order_id:
        # first cell + open time do not change with the market; the full row does
        stable = f"{first} {opened}".strip()
        order_id = fallback_key(stable or cells.get("row"))
    if not order_id:
        return None
    symbol, side, leverage = parse_first_cell(first)
    return RawOrderRecord(
        id=order_id,
        symbol=symbol,
        side=side,
        leverage=leverage,
        avg_price=normalize_text(cells.get("avg")),
        open_time=opened,
    )


class FrameExtractor:
    """Reads position rows from whichever frame currently renders the table."""

    def __init__(self, selectors: Dict[str, str]):
        self.selectors = selectors

    def _frame_rows(self, frame: Any) -> List[RawOrderRecord]:
        raw = frame.evaluate(ROWS_SCRIPT, self.selectors) or []
        records: List[RawOrderRecord] = []
        seen = set()
        for cells in raw:
            rec = record_from_cells(cells or {})
            if rec is None or rec.id in seen:
                continue
            seen.add(rec.id)
            records.append(rec)
        return records

    def snapshot(self, session: Any) -> Snapshot:
        """Rows of the first frame that yields any. Raises ExtractionError."""
        try:
            for frame in session.frames():
                records = self._frame_rows(frame)
                if records:
                    log_debug(f"{len(records)} row(s) in frame {frame_label(frame)}")
                    return Snapshot(records=records, frame_url=frame_label(frame))
        except PlaywrightError as e:
            raise ExtractionError(f"Row extraction failed: {e}") from e
        return Snapshot()

    def row_count(self, session: Any) -> int:
        """Total row selector matches across every frame. Raises ExtractionError."""
        return sum(self.frame_counts(session).values())

    def frame_counts(self, session: Any) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        try:
            for frame in session.frames():
                label = frame_label(frame)
                counts[label] = counts.get(label, 0) + frame.locator(self.selectors["row"]).count()
        except PlaywrightError as e:
            raise ExtractionError(f"Row count failed: {e}") from e
        return counts
