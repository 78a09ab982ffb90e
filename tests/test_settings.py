"""TOML settings: profile overlay, env fallbacks, MonitorConfig mapping."""

from polywatch.config import get_settings

DEFAULT_TOML = """
[polymarket]
page_size = 50
proxy_url = ""

[signals]
big_buy_usd_10m = 5000
not_a_field = 1

[alerts]
max_alerts_per_cycle = 4
cooldown_sec = 600

[state]
state_file = "var/state.json"
retention_minutes = 60
"""


def _write(tmp_path, name, text):
    (tmp_path / name).write_text(text, encoding="utf-8")


def test_sections_map_onto_monitor_config(tmp_path, monkeypatch):
    monkeypatch.delenv("PROXY_URL", raising=False)
    monkeypatch.delenv("HTTPS_PROXY", raising=False)
    _write(tmp_path, "default.toml", DEFAULT_TOML)
    settings = get_settings(config_dir=tmp_path)
    config = settings.monitor_config()
    assert config.page_size == 50
    assert config.big_buy_usd_10m == 5000
    assert config.max_alerts_per_cycle == 4
    assert config.alert_cooldown_sec == 600
    assert config.retention_ms == 60 * 60_000
    assert config.proxy_url == ""
    assert settings.state_file == "var/state.json"
    assert settings.runtime_config_file == "data/runtime.json"


def test_profile_overlay(tmp_path):
    _write(tmp_path, "default.toml", DEFAULT_TOML)
    _write(tmp_path, "dev.toml", "[signals]\nbig_buy_usd_10m = 100\n[logging]\nlevel = 'debug'\n")
    settings = get_settings("dev", tmp_path)
    assert settings.monitor_config().big_buy_usd_10m == 100
    assert settings.monitor_config().page_size == 50
    assert settings.logging_level == "DEBUG"


def test_env_fallbacks(tmp_path, monkeypatch):
    _write(tmp_path, "default.toml", DEFAULT_TOML)
    monkeypatch.setenv("PROXY_URL", " http://proxy.local:3128 ")
    monkeypatch.setenv("TG_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TG_CHAT_ID", "-100")
    settings = get_settings(config_dir=tmp_path)
    assert settings.monitor_config().proxy_url == "http://proxy.local:3128"
    assert settings.telegram_bot_token == "123:abc"
    assert settings.telegram_chat_id == "-100"


def test_missing_config_dir_gives_defaults(tmp_path):
    settings = get_settings(config_dir=tmp_path / "nowhere")
    assert settings.monitor_config().poll_interval_sec == 60.0
    assert settings.logging_format == "console"
