"""Configuration loader for the scenario runner."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

ENV_PREFIX = "RUNNER_"

DEFAULTS: Dict[str, Any] = {
    "fill_timeout_ms": 5000,
    "action_timeout_ms": 10000,
    "navigation_timeout_ms": 30000,
    "navigation_wait_until": "load",
    "post_navigation_timeout_ms": 10000,
    "navigation_settle_ms": 2000,
    "pre_navigation_screenshot_delay_ms": 500,
    "end_of_step_screenshot_delay_ms": 1000,
    "logout_url": "about:blank",
    "cleanup_timeout_ms": 10000,
    "cleanup_settle_ms": 2000,
    "recorder_max_iterations": 25,
    "recorder_settle_ms": 1000,
    "headless": True,
    "capture_screenshots": False,
    "full_page_step_screenshots": False,
    "screenshot_dir": "screenshots",
    "log_root": "runs",
    "viewport_width": 1920,
    "viewport_height": 1080,
    "cdp_url": None,
    "test_data_file": None,
}

_INT_FIELDS = (
    "fill_timeout_ms",
    "action_timeout_ms",
    "navigation_timeout_ms",
    "post_navigation_timeout_ms",
    "navigation_settle_ms",
    "pre_navigation_screenshot_delay_ms",
    "end_of_step_screenshot_delay_ms",
    "cleanup_timeout_ms",
    "cleanup_settle_ms",
    "recorder_max_iterations",
    "recorder_settle_ms",
    "viewport_width",
    "viewport_height",
)


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class RunConfig:
    fill_timeout_ms: int = DEFAULTS["fill_timeout_ms"]
    action_timeout_ms: int = DEFAULTS["action_timeout_ms"]
    navigation_timeout_ms: int = DEFAULTS["navigation_timeout_ms"]
    navigation_wait_until: str = DEFAULTS["navigation_wait_until"]
    post_navigation_timeout_ms: int = DEFAULTS["post_navigation_timeout_ms"]
    navigation_settle_ms: int = DEFAULTS["navigation_settle_ms"]
    pre_navigation_screenshot_delay_ms: int = DEFAULTS["pre_navigation_screenshot_delay_ms"]
    end_of_step_screenshot_delay_ms: int = DEFAULTS["end_of_step_screenshot_delay_ms"]
    logout_url: str = DEFAULTS["logout_url"]
    cleanup_timeout_ms: int = DEFAULTS["cleanup_timeout_ms"]
    cleanup_settle_ms: int = DEFAULTS["cleanup_settle_ms"]
    recorder_max_iterations: int = DEFAULTS["recorder_max_iterations"]
    recorder_settle_ms: int = DEFAULTS["recorder_settle_ms"]
    headless: bool = DEFAULTS["headless"]
    capture_screenshots: bool = DEFAULTS["capture_screenshots"]
    full_page_step_screenshots: bool = DEFAULTS["full_page_step_screenshots"]
    screenshot_dir: Path = field(default_factory=lambda: Path(DEFAULTS["screenshot_dir"]))
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    viewport_width: int = DEFAULTS["viewport_width"]
    viewport_height: int = DEFAULTS["viewport_height"]
    cdp_url: Optional[str] = DEFAULTS["cdp_url"]
    test_data_file: Optional[Path] = DEFAULTS["test_data_file"]

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "RunConfig":
        data = dict(DEFAULTS)
        data.update({key: value for key, value in mapping.items() if key in DEFAULTS})
        ints = {name: int(data[name]) for name in _INT_FIELDS}
        test_data_file = _optional_str(data["test_data_file"])
        return cls(
            **ints,
            navigation_wait_until=str(data["navigation_wait_until"]),
            logout_url=str(data["logout_url"]),
            headless=_as_bool(data["headless"]),
            capture_screenshots=_as_bool(data["capture_screenshots"]),
            full_page_step_screenshots=_as_bool(data["full_page_step_screenshots"]),
            screenshot_dir=Path(data["screenshot_dir"]),
            log_root=Path(data["log_root"]),
            cdp_url=_optional_str(data["cdp_url"]),
            test_data_file=Path(test_data_file) if test_data_file else None,
        )

    @property
    def viewport(self) -> Dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(config_path: Path | None = None) -> RunConfig:
    """Load configuration from environment, optional TOML file, and defaults."""

    env_map: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            env_map[key[len(ENV_PREFIX):].lower()] = value

    file_map: Dict[str, Any] = {}
    path = config_path or Path("config.toml")
    if path.exists():
        file_map = _load_toml(path).get("runner", {})

    merged = {**file_map, **env_map}
    return RunConfig.from_mapping(merged)


def ensure_run_directories(run_id: str, config: RunConfig) -> Dict[str, Path]:
    base = config.log_root / run_id
    shots = base / "shots"
    base.mkdir(parents=True, exist_ok=True)
    shots.mkdir(parents=True, exist_ok=True)
    return {"base": base, "shots": shots}
