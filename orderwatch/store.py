import json
from pathlib import Path
from typing import Dict

from .logs import log, log_error, log_warning
from .models import OrderState


class StateStore:
    """Whole-file JSON mirror of the tracker's state map.

    Only used for restart continuity. Writes overwrite the file in place, so a
    crash mid-write can leave it truncated; load() then starts from empty.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, OrderState]:
        if not self.path.exists():
            log(f"No state file at {self.path}; starting fresh")
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log_warning(f"State file {self.path} unreadable ({e}); starting fresh")
            return {}
        if not isinstance(raw, dict):
            log_warning(f"State file {self.path} is not a JSON object; starting fresh")
            return {}
        states: Dict[str, OrderState] = {}
        for order_id, data in raw.items():
            if isinstance(data, dict) and order_id:
                states[str(order_id)] = OrderState.from_dict(data)
        log(f"📂 Loaded {len(states)} tracked order(s) from {self.path}")
        return states

    def save(self, states: Dict[str, OrderState]) -> bool:
        """Best-effort; failures are logged, never raised."""
        try:
            payload = {order_id: st.to_dict() for order_id, st in states.items()}
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            return True
        except (OSError, TypeError, ValueError) as e:
            log_error(f"Failed to save state to {self.path}: {e}")
            return False
