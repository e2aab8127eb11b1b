"""Position lifecycle state machine.

Each tick the tracker receives the rows visible right now and decides, per
order id, whether a position has been confirmed open or confirmed closed:

* Provisional: seen at least once but fewer than ``open_n`` ticks. Missing
  for 2 consecutive ticks evicts it silently, it was most likely noise.
* Active: ``open_n`` sightings reached, an ``opened`` event was emitted.
  Missing for ``close_n`` consecutive ticks emits ``closed``.
* Closed: kept as history. A closed id that shows up again is ignored.

Flags are set when an event is emitted, not when it is delivered.
"""
from typing import Dict, Iterable, List, Optional

from .logs import log, log_debug
from .models import EventKind, OrderEvent, OrderState, RawOrderRecord

PROVISIONAL_GRACE = 2


class LifecycleTracker:
    def __init__(self, open_n: int, close_n: int, states: Optional[Dict[str, OrderState]] = None):
        if open_n < 1 or close_n < 1:
            raise ValueError("confirmation thresholds must be >= 1")
        self.open_n = open_n
        self.close_n = close_n
        self.states: Dict[str, OrderState] = states if states is not None else {}

    @property
    def seen_ceiling(self) -> int:
        return self.open_n + 3

    def _bump_seen(self, st: OrderState) -> None:
        st.seen_count = min(st.seen_count + 1, self.seen_ceiling)

    def update(self, records: Iterable[RawOrderRecord]) -> List[OrderEvent]:
        """Feed one snapshot; returns the events to deliver, opens before closes."""
        records = list(records)
        visible = {r.id for r in records}
        events: List[OrderEvent] = []

        # 1) merge everything visible
        for rec in records:
            st = self.states.get(rec.id)
            if st is None:
                st = OrderState(seen_count=1)
                st.merge(rec)
                self.states[rec.id] = st
                log_debug(f"New row {rec.id} ({st.symbol or '?'} {st.side.value})")
                continue
            if st.is_closed:
                log_debug(f"Closed order {rec.id} visible again; ignoring")
                continue
            self._bump_seen(st)
            st.missing_count = 0
            st.merge(rec)

        # 2) confirmed opens
        for order_id, st in self.states.items():
            if not st.opened_notified and st.seen_count >= self.open_n:
                st.opened_notified = True
                events.append(OrderEvent(EventKind.OPENED, order_id, st.copy()))
                log(f"📣 Opened {order_id}")

        # 3) bookkeeping for ids absent from this tick
        evicted: List[str] = []
        for order_id, st in self.states.items():
            if order_id in visible or st.is_closed:
                continue
            st.missing_count += 1
            if st.opened_notified:
                if st.missing_count >= self.close_n:
                    st.closed_notified = True
                    events.append(OrderEvent(EventKind.CLOSED, order_id, st.copy()))
                    log(f"📣 Closed {order_id}")
            elif st.missing_count >= PROVISIONAL_GRACE:
                evicted.append(order_id)
        for order_id in evicted:
            del self.states[order_id]
            log_debug(f"Dropped unconfirmed row {order_id}")
        return events

    def baseline(self, records: Iterable[RawOrderRecord]) -> int:
        """Mark visible rows as already announced, without emitting anything."""
        count = 0
        for rec in records:
            st = self.states.setdefault(rec.id, OrderState())
            st.seen_count = min(max(st.seen_count, self.open_n), self.seen_ceiling)
            st.missing_count = 0
            st.opened_notified = True
            st.closed_notified = False
            st.merge(rec)
            count += 1
        if count:
            log(f"📌 Baseline: {count} visible row(s) marked as already open")
        return count

    def counts(self) -> Dict[str, int]:
        out = {"provisional": 0, "active": 0, "closed": 0}
        for st in self.states.values():
            if st.is_closed:
                out["closed"] += 1
            elif st.opened_notified:
                out["active"] += 1
            else:
                out["provisional"] += 1
        return out
