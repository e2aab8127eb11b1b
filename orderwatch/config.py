import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError


# Ant Design table served by the copy-trading page ("Main orders" tab)
DEFAULT_SELECTORS: Dict[str, str] = {
    "row": "tr.ant-table-row.ant-table-row-level-0",
    "order_id": "td:nth-child(9) .data",
    "first_cell": "td:nth-child(1)",
    "avg_price": "td:nth-child(4)",
    "open_ts": "td:nth-child(8)",
}

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123 Safari/537.36"
)


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes")


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass
class Settings:
    trader_url: str
    webhook_url: str
    scan_every_ms: int = 1500
    reload_every_ms: int = 15000
    empty_reload_every_ms: int = 5000
    open_confirm_scans: int = 1
    close_confirm_scans: int = 3
    state_file: Path = Path("state.json")
    nav_timeout_ms: int = 60000
    idle_timeout_ms: int = 10000
    rows_timeout_ms: int = 45000
    notify_timeout_s: int = 10
    notify_startup: bool = True
    headless: bool = True
    cdp_url: Optional[str] = None
    locale: str = "fr-FR"
    selectors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SELECTORS))
    diag: bool = False
    log_dir: Path = Path("debug_logs")
    snapshot_dir: Path = Path("html_snapshots")

    @property
    def seen_ceiling(self) -> int:
        return self.open_confirm_scans + 3


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[Path] = None) -> Settings:
    """Build Settings from the environment (after loading .env). Raises ConfigError on bad input."""
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    trader_url = (env.get("TRADER_URL") or "").strip()
    webhook_url = (env.get("DISCORD_WEBHOOK") or "").strip()
    missing = [n for n, v in (("TRADER_URL", trader_url), ("DISCORD_WEBHOOK", webhook_url)) if not v]
    if missing:
        raise ConfigError(f"Missing required environment variable(s): {', '.join(missing)}")

    selectors = dict(DEFAULT_SELECTORS)
    for key in selectors:
        override = (env.get(f"SEL_{key.upper()}") or "").strip()
        if override:
            selectors[key] = override

    return Settings(
        trader_url=trader_url,
        webhook_url=webhook_url,
        scan_every_ms=_positive_int(env, "SCAN_EVERY_MS", 1500),
        reload_every_ms=_positive_int(env, "RELOAD_EVERY_MS", 15000),
        empty_reload_every_ms=_positive_int(env, "EMPTY_RELOAD_EVERY_MS", 5000),
        open_confirm_scans=_positive_int(env, "OPEN_CONFIRM_SCANS", 1),
        close_confirm_scans=_positive_int(env, "CLOSE_CONFIRM_SCANS", 3),
        state_file=Path((env.get("STATE_FILE") or "state.json").strip()),
        nav_timeout_ms=_positive_int(env, "NAV_TIMEOUT_MS", 60000),
        idle_timeout_ms=_positive_int(env, "IDLE_TIMEOUT_MS", 10000),
        rows_timeout_ms=_positive_int(env, "ROWS_TIMEOUT_MS", 45000),
        notify_timeout_s=_positive_int(env, "NOTIFY_TIMEOUT_S", 10),
        notify_startup=_flag(env.get("NOTIFY_STARTUP"), True),
        headless=_flag(env.get("HEADLESS"), True),
        cdp_url=(env.get("CDP_URL") or "").strip() or None,
        locale=(env.get("BROWSER_LOCALE") or "fr-FR").strip(),
        selectors=selectors,
        diag=_flag(env.get("WATCH_DIAG"), False),
        log_dir=Path((env.get("LOG_DIR") or "debug_logs").strip()),
        snapshot_dir=Path((env.get("SNAPSHOT_DIR") or "html_snapshots").strip()),
    )
