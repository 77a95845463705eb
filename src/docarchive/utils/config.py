"""
Configuration utilities.
"""

import os
from pathlib import Path
from typing import Literal

import yaml

from pydantic import BaseModel, Field, field_validator, model_validator

from docarchive.exceptions import ConfigError

DEFAULT_CONFIG_PATH = "docarchive.yaml"
CONFIG_PATH_ENV = "DOCARCHIVE_CONFIG"


class Config(BaseModel):
    """Base configuration class."""

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from file (YAML or JSON)."""
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            return cls.from_yaml(path)
        elif path.suffix == ".json":
            import json
            with open(path) as f:
                data = json.load(f)
            return cls(**data)
        else:
            raise ConfigError(f"Unsupported config file format: {path.suffix}")


class ArchiveConfig(Config):
    """Configuration for the document archive."""

    # Sources
    document_directories: list[str] = Field(default_factory=list)
    file_extensions: list[str] = Field(
        default_factory=lambda: [".txt", ".md", ".pdf", ".docx", ".csv", ".json"]
    )

    # Chunking
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    chunk_separators: list[str] = Field(default_factory=lambda: ["\n\n", "\n", " ", ""])

    # Embeddings
    embedding_provider: Literal["local", "openai", "hash"] = "local"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = Field(default=384, gt=0)
    embedding_api_key: str | None = None

    # Storage
    lancedb_path: str = "data/lancedb"

    # Watching
    watch_existing_files: bool = True
    watch_depth: int = Field(default=10, ge=0)
    watch_debounce_ms: int = Field(default=500, ge=0)
    write_stability_ms: int = Field(default=2000, ge=0)
    write_poll_interval_ms: int = Field(default=100, gt=0)
    skip_unchanged: bool = True

    # Lifecycle
    ready_timeout: float = Field(default=100.0, gt=0)
    log_level: str = "INFO"

    @field_validator("file_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        extensions = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext or ext == ".":
                continue
            extensions.append(ext if ext.startswith(".") else f".{ext}")
        return extensions

    @model_validator(mode="after")
    def _check_overlap(self) -> "ArchiveConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self


def load_config(path: str | Path | None = None) -> ArchiveConfig:
    """
    Load archive configuration from file.

    Args:
        path: Path to config file; defaults to $DOCARCHIVE_CONFIG, then
            docarchive.yaml in the working directory

    Returns:
        ArchiveConfig instance
    """
    path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    if not path.exists():
        return ArchiveConfig()

    return ArchiveConfig.from_file(path)
