import logging

from app.core.config import Settings, settings
from app.core.logging_config import setup_logging


def test_enrichment_settings_follow_environment(monkeypatch):
    monkeypatch.setenv("LOADING_HEIGHT", "200")
    monkeypatch.setenv("ENRICHMENT_CACHE_SIZE", "16")
    monkeypatch.setenv("ASSET_POLL_ATTEMPTS", "5")

    config = Settings(_env_file=None).enrichment_settings()

    assert config.loading_height == 200
    assert config.cache_size == 16
    assert config.asset_poll_attempts == 5


def test_sync_settings_defaults():
    config = Settings(_env_file=None).sync_settings()

    assert config.debounce_quiet_period == 1.0
    assert config.settle_delay == 2.0
    assert config.min_save_interval == 0.0


def test_setup_logging_defaults_to_configured_level(monkeypatch):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(settings, "log_level", "WARNING")
    try:
        setup_logging()
        assert root.level == logging.WARNING
        setup_logging("DEBUG")
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
