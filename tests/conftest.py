"""Pytest configuration ensuring local packages are importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from runner.config import RunConfig  # noqa: E402


@pytest.fixture
def config(tmp_path: Path) -> RunConfig:
    """Config with every delay removed and short timeouts."""

    return RunConfig.from_mapping(
        {
            "fill_timeout_ms": 50,
            "action_timeout_ms": 50,
            "navigation_timeout_ms": 100,
            "post_navigation_timeout_ms": 50,
            "navigation_settle_ms": 0,
            "pre_navigation_screenshot_delay_ms": 0,
            "end_of_step_screenshot_delay_ms": 0,
            "cleanup_timeout_ms": 100,
            "cleanup_settle_ms": 0,
            "recorder_settle_ms": 0,
            "screenshot_dir": str(tmp_path / "shots"),
            "log_root": str(tmp_path / "runs"),
        }
    )
