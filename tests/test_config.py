from pathlib import Path

from runner.config import DEFAULTS, RunConfig, ensure_run_directories, load_config


def test_defaults():
    config = RunConfig.from_mapping({})

    assert config.fill_timeout_ms == 5000
    assert config.action_timeout_ms == 10000
    assert config.navigation_timeout_ms == 30000
    assert config.logout_url == "about:blank"
    assert config.recorder_max_iterations == 25
    assert config.headless is True
    assert config.viewport == {"width": 1920, "height": 1080}
    assert config.cdp_url is None
    assert config.test_data_file is None


def test_mapping_values_are_coerced_and_unknown_keys_ignored():
    config = RunConfig.from_mapping(
        {"fill_timeout_ms": "1500", "headless": "false", "cdp_url": "  ", "test_data_file": "data.json", "bogus": 1}
    )

    assert config.fill_timeout_ms == 1500
    assert config.headless is False
    assert config.cdp_url is None
    assert config.test_data_file == Path("data.json")
    assert not hasattr(config, "bogus")


def test_load_config_merges_file_and_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        '[runner]\nfill_timeout_ms = 2000\naction_timeout_ms = 3000\nlogout_url = "https://example.test/logout"\n',
        encoding="utf-8",
    )
    monkeypatch.setenv("RUNNER_ACTION_TIMEOUT_MS", "4000")
    monkeypatch.setenv("RUNNER_CAPTURE_SCREENSHOTS", "yes")

    config = load_config(config_file)

    assert config.fill_timeout_ms == 2000
    assert config.action_timeout_ms == 4000
    assert config.logout_url == "https://example.test/logout"
    assert config.capture_screenshots is True
    assert config.navigation_timeout_ms == DEFAULTS["navigation_timeout_ms"]


def test_missing_config_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "absent.toml")

    assert config.action_timeout_ms == DEFAULTS["action_timeout_ms"]


def test_ensure_run_directories(tmp_path):
    config = RunConfig.from_mapping({"log_root": str(tmp_path / "runs")})

    paths = ensure_run_directories("abc", config)

    assert paths["base"] == tmp_path / "runs" / "abc"
    assert paths["shots"].is_dir()
