from pathlib import Path

import pytest

from orderwatch.config import DEFAULT_SELECTORS, load_settings
from orderwatch.errors import ConfigError

REQUIRED = {"TRADER_URL": "https://trader.example/main", "DISCORD_WEBHOOK": "https://hooks.example/abc"}


def test_defaults():
    s = load_settings(dict(REQUIRED))
    assert s.scan_every_ms == 1500
    assert s.reload_every_ms == 15000
    assert s.open_confirm_scans == 1
    assert s.close_confirm_scans == 3
    assert s.state_file == Path("state.json")
    assert s.selectors == DEFAULT_SELECTORS
    assert s.seen_ceiling == 4
    assert s.headless is True
    assert s.cdp_url is None


@pytest.mark.parametrize("missing", ["TRADER_URL", "DISCORD_WEBHOOK"])
def test_required_values(missing):
    env = dict(REQUIRED)
    env[missing] = "  "
    with pytest.raises(ConfigError, match=missing):
        load_settings(env)


def test_overrides():
    env = dict(
        REQUIRED,
        SCAN_EVERY_MS="2000",
        OPEN_CONFIRM_SCANS="2",
        CLOSE_CONFIRM_SCANS="5",
        STATE_FILE="/tmp/s.json",
        HEADLESS="0",
        WATCH_DIAG="yes",
        CDP_URL="http://127.0.0.1:9222",
        SEL_ROW="tr.position",
    )
    s = load_settings(env)
    assert s.scan_every_ms == 2000
    assert (s.open_confirm_scans, s.close_confirm_scans) == (2, 5)
    assert s.state_file == Path("/tmp/s.json")
    assert s.headless is False
    assert s.diag is True
    assert s.cdp_url == "http://127.0.0.1:9222"
    assert s.selectors["row"] == "tr.position"
    assert s.selectors["order_id"] == DEFAULT_SELECTORS["order_id"]


@pytest.mark.parametrize("value", ["0", "-3", "abc"])
def test_thresholds_must_be_positive_integers(value):
    with pytest.raises(ConfigError, match="OPEN_CONFIRM_SCANS"):
        load_settings(dict(REQUIRED, OPEN_CONFIRM_SCANS=value))
