"""Upload engine configuration"""

import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Tuple
import logging

import yaml

logger = logging.getLogger(__name__)

MB = 1024 * 1024
GB = 1024 * MB


def _default_temp_dir() -> Path:
    return Path(tempfile.gettempdir()) / "resumable-chunks"


@dataclass
class UploadConfig:
    """Limits and locations shared by every upload session"""
    max_file_size: int = 2 * GB
    chunk_size: int = 5 * MB
    max_chunk_size: int = 5 * MB
    temp_dir: Path = field(default_factory=_default_temp_dir)
    cleanup_interval: float = 3600.0  # seconds
    max_retries: int = 3

    def __post_init__(self):
        self.temp_dir = Path(self.temp_dir)

        for name in ('max_file_size', 'chunk_size', 'max_chunk_size',
                     'cleanup_interval', 'max_retries'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if value <= 0:
                raise ValueError(f"{name} must be positive")

        if self.chunk_size > self.max_chunk_size:
            raise ValueError(
                f"chunk_size ({self.chunk_size}) exceeds "
                f"max_chunk_size ({self.max_chunk_size})"
            )


@dataclass
class LocalStorageConfig:
    """Local filesystem storage backend settings"""
    upload_dir: Path = Path("./uploads")
    base_url: str = "/uploads"

    def __post_init__(self):
        self.upload_dir = Path(self.upload_dir)


def _build(cls, section: dict, name: str):
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' section: {sorted(unknown)}")
    return cls(**section)


def load_config(config_file: Path) -> Tuple[UploadConfig, LocalStorageConfig]:
    """Load upload and storage configuration from a YAML file"""
    with open(config_file, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{config_file}: expected a mapping at top level")

    upload = _build(UploadConfig, data.get('upload') or {}, 'upload')
    storage = _build(LocalStorageConfig, data.get('storage') or {}, 'storage')

    logger.info(f"Loaded configuration from {config_file}")
    return upload, storage
