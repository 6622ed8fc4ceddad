"""Unit tests for configuration loading and text helpers."""

import pytest

from feed_aggregator.config import DEFAULT_USER_AGENT, ServerConfig, load_config
from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.utils.text import (
    extract_domain,
    extract_domain_name,
    html_to_text,
    is_valid_url,
)


class TestLoadConfig:
    """Tests for YAML and environment configuration."""

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("FEED_AGGREGATOR_LOG_LEVEL", raising=False)
        monkeypatch.delenv("FEED_AGGREGATOR_DB_PATH", raising=False)
        monkeypatch.delenv("FEED_AGGREGATOR_POLLING_INTERVAL", raising=False)

        config = load_config(tmp_path / "missing.yaml")

        assert config.log_level == "INFO"
        assert config.user_agent == DEFAULT_USER_AGENT
        assert config.db_path is None
        assert config.polling_interval == 300

    def test_yaml_values(self, tmp_path, monkeypatch):
        monkeypatch.delenv("FEED_AGGREGATOR_LOG_LEVEL", raising=False)
        monkeypatch.delenv("FEED_AGGREGATOR_REQUEST_TIMEOUT", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("log_level: DEBUG\nrequest_timeout: 5\nunknown_key: 1\n")

        config = load_config(path)

        assert config.log_level == "DEBUG"
        assert config.request_timeout == 5.0

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("log_level: DEBUG\n")
        monkeypatch.setenv("FEED_AGGREGATOR_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("FEED_AGGREGATOR_DB_PATH", "/tmp/feeds.db")

        config = load_config(path)

        assert config.log_level == "WARNING"
        assert config.db_path == "/tmp/feeds.db"

    def test_non_mapping_yaml_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_wrong_type_in_yaml_rejected(self, tmp_path, monkeypatch):
        """Test that field types are validated, not passed through."""
        monkeypatch.delenv("FEED_AGGREGATOR_LOG_FILE", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("log_file: 12\n")

        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(path)

    def test_invalid_environment_value_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FEED_AGGREGATOR_REQUEST_TIMEOUT", "soon")

        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(tmp_path / "missing.yaml")

    def test_environment_values_are_coerced(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FEED_AGGREGATOR_REQUEST_TIMEOUT", "5")
        monkeypatch.setenv("FEED_AGGREGATOR_POLLING_INTERVAL", "600")

        config = load_config(tmp_path / "missing.yaml")

        assert config.request_timeout == 5.0
        assert config.polling_interval == 600

    def test_polling_interval_must_be_positive(self, tmp_path, monkeypatch):
        monkeypatch.delenv("FEED_AGGREGATOR_POLLING_INTERVAL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("polling_interval: 0\n")

        with pytest.raises(ValueError):
            load_config(path)

    def test_invalid_yaml_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("log_level: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(path)


class TestUnifiedLogger:
    """Tests for logger setup."""

    def test_loggers_share_hierarchy(self):
        logger = UnifiedLogger.get_logger("some.module")

        assert logger.name == "feed_aggregator.some.module"
        assert UnifiedLogger.get_logger("feed_aggregator.services").name == "feed_aggregator.services"

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "feed.log"
        UnifiedLogger.initialize_default(ServerConfig(log_file=str(log_file)))
        try:
            UnifiedLogger.get_logger(__name__).warning("written to file")
        finally:
            UnifiedLogger.close()

        assert "written to file" in log_file.read_text()


class TestTextHelpers:
    """Tests for URL and display text helpers."""

    def test_is_valid_url(self):
        assert is_valid_url("https://example.com/feed")
        assert is_valid_url("http://example.com")
        assert not is_valid_url("ftp://example.com/feed")
        assert not is_valid_url("example.com/feed")
        assert not is_valid_url("")

    def test_extract_domain(self):
        assert extract_domain("https://www.example.com/feed") == "example.com"
        assert extract_domain("https://blog.example.com/feed") == "blog.example.com"

    def test_extract_domain_name(self):
        assert extract_domain_name("https://www.example.com/feed") == "Example"
        assert extract_domain_name("https://news.ycombinator.com/rss") == "News"
        assert extract_domain_name("not a url") == "RSS Feed"

    def test_html_to_text(self):
        assert html_to_text("<p>Hello <b>world</b></p>\n<p>again</p>") == "Hello world again"
        assert html_to_text("<p>abcdefghij</p>", max_length=4) == "abcd..."
        assert html_to_text(None) == ""
