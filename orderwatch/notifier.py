from typing import List

import requests

from .errors import DeliveryError
from .logs import log, log_debug, log_error
from .models import EventKind, OrderEvent, OrderState, Side


def side_indicator(side: Side) -> str:
    if side is Side.LONG:
        return "🟢⬆️"
    if side is Side.SHORT:
        return "🔴⬇️"
    return "ℹ️"


def render_message(event: OrderEvent, page_url: str) -> str:
    """Discord markdown for one event. Empty fields are left out entirely."""
    st: OrderState = event.state
    side_label = st.side.value if st.side is not Side.UNKNOWN else "N/A"
    arrow = side_indicator(st.side)
    if event.kind is EventKind.OPENED:
        title = f"{arrow} **Position opened ({side_label})**"
        price_label = "Avg price"
    else:
        title = f"✅ {arrow} **Position closed ({side_label})**"
        price_label = "Avg price (last)"

    lines: List[str] = [title, f"• Order: **{event.order_id}**"]
    if st.symbol:
        lines.append(f"• Symbol: **{st.symbol}**")
    if st.leverage:
        lines.append(f"• Leverage: **{st.leverage}x**")
    if st.avg_price:
        lines.append(f"• {price_label}: **{st.avg_price}**")
    if st.open_time:
        lines.append(f"• Opened: {st.open_time}")
    lines.append(f"• Page: {page_url}")
    return "\n".join(lines)


class NotificationDispatcher:
    """Posts messages to a webhook. One attempt per message; a failed post is logged and dropped."""

    def __init__(self, webhook_url: str, page_url: str, timeout_s: float = 10, session=None):
        self.webhook_url = webhook_url
        self.page_url = page_url
        self.timeout_s = timeout_s
        self.http = session or requests.Session()
        self.sent = 0
        self.failed = 0

    def _post(self, content: str) -> None:
        try:
            self.http.post(self.webhook_url, json={"content": content}, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise DeliveryError(str(e)) from e

    def deliver(self, content: str) -> bool:
        try:
            self._post(content)
        except DeliveryError as e:
            self.failed += 1
            log_error(f"Notification lost (no retry): {e}")
            return False
        self.sent += 1
        return True

    def notify(self, event: OrderEvent) -> bool:
        text = render_message(event, self.page_url)
        log_debug(f"Sending {event.kind.value} for {event.order_id}")
        return self.deliver(text)

    def announce(self, text: str) -> bool:
        log(f"📢 {text}")
        return self.deliver(text)
