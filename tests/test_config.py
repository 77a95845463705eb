"""Tests for configuration loading."""

import json
import logging

import pytest
from pydantic import ValidationError

from docarchive.exceptions import ConfigError
from docarchive.utils.config import ArchiveConfig, load_config
from docarchive.utils.logging import get_logger, set_log_level


class TestArchiveConfig:
    """Tests for ArchiveConfig."""

    def test_defaults(self):
        """Test default values."""
        config = ArchiveConfig()

        assert config.document_directories == []
        assert config.chunk_size == 1000
        assert config.chunk_overlap == 200
        assert config.chunk_separators == ["\n\n", "\n", " ", ""]
        assert config.embedding_provider == "local"
        assert config.embedding_dimension == 384
        assert config.watch_depth == 10
        assert config.watch_debounce_ms == 500
        assert config.write_stability_ms == 2000
        assert config.write_poll_interval_ms == 100
        assert config.ready_timeout == 100.0
        assert ".pdf" in config.file_extensions

    def test_extension_normalization(self):
        """Test extensions are lowercased and dot-prefixed."""
        config = ArchiveConfig(file_extensions=["TXT", ".Md", " pdf ", ""])
        assert config.file_extensions == [".txt", ".md", ".pdf"]

    def test_overlap_must_be_smaller_than_chunk_size(self):
        with pytest.raises(ValidationError):
            ArchiveConfig(chunk_size=100, chunk_overlap=100)

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            ArchiveConfig(embedding_provider="cohere")


class TestConfigFiles:
    """Tests for reading config files."""

    def test_from_yaml(self, tmp_path):
        """Test loading a YAML file."""
        path = tmp_path / "archive.yaml"
        path.write_text(
            "document_directories:\n"
            "  - docs\n"
            "chunk_size: 500\n"
            "chunk_overlap: 50\n"
            "embedding_provider: hash\n"
        )

        config = ArchiveConfig.from_file(path)

        assert config.document_directories == ["docs"]
        assert config.chunk_size == 500
        assert config.embedding_provider == "hash"

    def test_from_json(self, tmp_path):
        path = tmp_path / "archive.json"
        path.write_text(json.dumps({"lancedb_path": "/tmp/db", "watch_depth": 2}))

        config = ArchiveConfig.from_file(path)

        assert config.lancedb_path == "/tmp/db"
        assert config.watch_depth == 2

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert ArchiveConfig.from_file(path) == ArchiveConfig()

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "archive.toml"
        path.write_text("")
        with pytest.raises(ConfigError):
            ArchiveConfig.from_file(path)

    def test_load_config_missing_file(self, tmp_path):
        """Test a missing file yields the defaults."""
        assert load_config(tmp_path / "nope.yaml") == ArchiveConfig()

    def test_load_config_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("chunk_size: 321\nchunk_overlap: 21\n")
        monkeypatch.setenv("DOCARCHIVE_CONFIG", str(path))

        assert load_config().chunk_size == 321


class TestLogging:
    """Tests for logging helpers."""

    def test_get_logger_adds_one_handler(self):
        logger = get_logger("docarchive.tests.handler")
        get_logger("docarchive.tests.handler")
        assert len(logger.handlers) == 1

    def test_set_log_level(self):
        logger = get_logger("docarchive.tests.level")
        set_log_level("DEBUG")
        try:
            assert logger.level == logging.DEBUG
            assert logging.getLogger("docarchive").level == logging.DEBUG
        finally:
            set_log_level(logging.INFO)
