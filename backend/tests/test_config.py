"""
StreamGate Backend - Settings Tests
=====================================

What we test:
    ✅ Defaults for the streaming knobs
    ✅ Validation of log level and numeric ranges
    ✅ Startup validation lists every missing secret
"""

import pytest
from pydantic import ValidationError

from streamgate.config import Settings


class TestSettings:

    def test_streaming_defaults(self, monkeypatch):
        monkeypatch.delenv("MAX_CONCURRENT_STREAMS", raising=False)
        monkeypatch.delenv("DEFAULT_THROTTLE_BPS", raising=False)
        monkeypatch.delenv("TELEGRAM_API_BASE", raising=False)

        config = Settings(_env_file=None)

        assert config.max_concurrent_streams == 10
        assert config.default_throttle_bps == 0
        assert config.telegram_api_base == "https://api.telegram.org"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_STREAMS", "25")
        monkeypatch.setenv("DEFAULT_THROTTLE_BPS", "65536")

        config = Settings(_env_file=None)

        assert config.max_concurrent_streams == 25
        assert config.default_throttle_bps == 65536

    def test_log_level_is_normalised(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    @pytest.mark.parametrize(
        "field, value",
        [("max_concurrent_streams", 0), ("default_throttle_bps", -1)],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    def test_cors_origins_list(self):
        config = Settings(cors_origins="https://a.example, https://b.example,")
        assert config.cors_origins_list == ["https://a.example", "https://b.example"]

    def test_is_configured_needs_both_secrets(self):
        assert Settings(shared_secret="s", telegram_bot_token="t").is_configured
        assert not Settings(shared_secret="s", telegram_bot_token="").is_configured
        assert not Settings(shared_secret="", telegram_bot_token="t").is_configured

    def test_production_validation_lists_missing_secrets(self):
        config = Settings(shared_secret="", telegram_bot_token="")
        with pytest.raises(ValueError) as exc_info:
            config.validate_required_for_production()
        assert "TELEGRAM_BOT_TOKEN" in str(exc_info.value)
        assert "SHARED_SECRET" in str(exc_info.value)

    def test_production_validation_passes_when_configured(self):
        Settings(shared_secret="s", telegram_bot_token="t").validate_required_for_production()
