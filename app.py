import time
from datetime import datetime
from typing import Any, Dict

import streamlit as st

from orderwatch.config import load_settings
from orderwatch.errors import ConfigError
from orderwatch.logs import log, setup_logging
from orderwatch.scheduler import MonitorStatus, ScanScheduler, build_monitor

st.set_page_config(page_title="Order Watch", page_icon="📡", layout="wide")

CUSTOM_CSS = """
<style>
    .stApp { background: #0B1220; color: #E6EDF3; }
    .metric-card { background: #131C2E; border: 1px solid #22304A; border-radius: 10px; padding: 14px 16px; }
    .grid { display: grid; grid-template-columns: repeat(12, 1fr); gap: 12px; }
    .col-3 { grid-column: span 3; }
    .col-12 { grid-column: span 12; }
    .title { font-weight: 700; font-size: 26px; }
    .subtitle { opacity: .8; margin-top: 2px; }
    .label { opacity: .65; font-size: 12px; text-transform: uppercase; }
    .value { font-weight: 600; font-size: 18px; }
    .good { color: #2EBD85; }
    .bad { color: #F6465D; }
    .pill { padding: 2px 8px; border-radius: 6px; background: #22304A; font-size: 13px; }
</style>
"""


@st.cache_resource
def get_monitor() -> ScanScheduler:
    """One scanner per Streamlit server process, shared by every browser tab."""
    settings = load_settings()
    setup_logging(settings.log_dir, settings.diag)
    log("🚀 Starting position watcher (dashboard)")
    sched = build_monitor(settings)
    sched.start()
    return sched


def fmt_ts(ts: float) -> str:
    if not ts:
        return "never"
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


def format_status_block(s: MonitorStatus) -> str:
    session_cls = "good" if s.session == "ready" else "bad"
    return f"""
    <div class="metric-card">
      <div class="label">Watching</div><div class="subtitle">{s.target_url}</div>
      <div class="grid" style="margin-top:8px">
         <div class="col-3"><div class="label">Session</div><div class="value {session_cls}">{s.session}</div></div>
         <div class="col-3"><div class="label">Last scan</div><div class="value">{fmt_ts(s.last_scan_at)}</div></div>
         <div class="col-3"><div class="label">Last reload</div><div class="value">{fmt_ts(s.last_reload_at)} ({s.last_reload_outcome or '-'})</div></div>
         <div class="col-3"><div class="label">Visible rows</div><div class="value">{s.last_row_count}</div></div>
      </div>
    </div>
    """


def format_orders_rows(orders: Dict[str, Dict[str, Any]]):
    rows = []
    for order_id, o in orders.items():
        if o.get("closed_notified"):
            state = "closed"
        elif o.get("opened_notified"):
            state = "active"
        else:
            state = "provisional"
        rows.append({
            "order": order_id,
            "state": state,
            "symbol": o.get("symbol") or "",
            "side": o.get("side") or "",
            "leverage": f"{o['leverage']}x" if o.get("leverage") else "",
            "avg price": o.get("avg_price") or "",
            "opened": o.get("open_time") or "",
            "seen": o.get("seen_count", 0),
            "missing": o.get("missing_count", 0),
        })
    return rows


st.markdown(CUSTOM_CSS, unsafe_allow_html=True)
st.markdown("""
<div class="grid">
    <div class="col-12">
        <div class="title">Order Watch <span class="pill">Live Monitor</span></div>
        <div class="subtitle">Positions opened and closed on the watched page</div>
    </div>
</div>
""", unsafe_allow_html=True)

try:
    monitor = get_monitor()
except ConfigError as e:
    st.error(f"{e}. Set them in the environment or in .env and restart.")
    st.stop()

col_a, col_b, _ = st.columns([2, 2, 6])
if col_a.button("Baseline visible rows", help="Mark every row on the page as already announced"):
    fut = monitor.submit("baseline")
    try:
        st.toast(f"Baseline: {fut.result(timeout=120)} row(s) marked")
    except Exception as e:
        st.error(f"Baseline failed: {e}")
if col_b.button("Inspect page", help="Row matches per frame and a saved HTML copy"):
    fut = monitor.submit("inspect")
    try:
        fut.result(timeout=120)
    except Exception as e:
        st.error(f"Inspection failed: {e}")

status_ph = st.empty()
error_ph = st.empty()
orders_ph = st.empty()
inspect_ph = st.empty()

# Refresh loop: read a status copy and render
while True:
    s = monitor.status()
    status_ph.markdown(format_status_block(s), unsafe_allow_html=True)
    if s.last_error:
        error_ph.warning(s.last_error)
    else:
        error_ph.empty()
    with orders_ph.container():
        st.caption(
            f"Tracked: {s.tracked or {}} · notifications sent {s.sent}, lost {s.failed}"
            + (f" · last baseline {s.last_baseline}" if s.last_baseline is not None else "")
        )
        rows = format_orders_rows(s.orders)
        if rows:
            st.dataframe(rows, use_container_width=True, hide_index=True)
        else:
            st.info("No tracked orders yet")
    if s.inspection:
        with inspect_ph.container():
            st.caption(f"Inspection at {fmt_ts(s.inspection.get('at', 0))}: {s.inspection.get('frames')}")
            st.code(s.inspection.get("excerpt") or "", language="html")
    time.sleep(1.0)
