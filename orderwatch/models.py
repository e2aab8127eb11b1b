from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class Side(str, Enum):
    LONG = "Long"
    SHORT = "Short"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "Side":
        """Lenient parse used for persisted values; anything unrecognised is UNKNOWN."""
        text = str(value or "").strip().lower()
        if text == "long":
            return cls.LONG
        if text == "short":
            return cls.SHORT
        return cls.UNKNOWN


@dataclass(frozen=True)
class RawOrderRecord:
    """One visible row, produced fresh each tick."""
    id: str
    symbol: str = ""
    side: Side = Side.UNKNOWN
    leverage: str = ""
    avg_price: str = ""
    open_time: str = ""


STICKY_FIELDS = ("symbol", "leverage", "avg_price", "open_time")


@dataclass
class OrderState:
    seen_count: int = 0
    missing_count: int = 0
    opened_notified: bool = False
    closed_notified: bool = False
    symbol: str = ""
    side: Side = Side.UNKNOWN
    leverage: str = ""
    avg_price: str = ""
    open_time: str = ""

    @property
    def is_closed(self) -> bool:
        return self.opened_notified and self.closed_notified

    def merge(self, record: RawOrderRecord) -> None:
        """Copy non-empty fields from a visible row; empty values never overwrite."""
        for name in STICKY_FIELDS:
            value = getattr(record, name)
            if value:
                setattr(self, name, value)
        if record.side is not Side.UNKNOWN:
            self.side = record.side

    def copy(self) -> "OrderState":
        return OrderState(**self.__dict__)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["side"] = self.side.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderState":
        def as_int(key: str) -> int:
            try:
                return max(0, int(data.get(key) or 0))
            except (TypeError, ValueError):
                return 0

        return cls(
            seen_count=as_int("seen_count"),
            missing_count=as_int("missing_count"),
            opened_notified=bool(data.get("opened_notified", False)),
            closed_notified=bool(data.get("closed_notified", False)),
            symbol=str(data.get("symbol") or ""),
            side=Side.parse(data.get("side")),
            leverage=str(data.get("leverage") or ""),
            avg_price=str(data.get("avg_price") or ""),
            open_time=str(data.get("open_time") or ""),
        )


class EventKind(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"


@dataclass(frozen=True)
class OrderEvent:
    kind: EventKind
    order_id: str
    state: OrderState


@dataclass
class Snapshot:
    """Result of one extraction: the rows of the first frame that had any."""
    records: List[RawOrderRecord] = field(default_factory=list)
    frame_url: Optional[str] = None
