"""Load and save ``config.json``."""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from amf.config.schema import Config
from amf.utils.helpers import get_data_path


def get_config_path() -> Path:
    return get_data_path() / "config.json"


def load_config(path: Path | None = None) -> Config:
    """Read the config file; defaults (plus ``AMF_*`` env vars) when absent or invalid."""
    config_path = path or get_config_path()
    if not config_path.exists():
        return Config()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        return Config(**data)
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning(f"[config] Ignoring invalid {config_path}: {exc}")
        return Config()


def save_config(config: Config, path: Path | None = None) -> Path:
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        json.dumps(config.model_dump(mode="json"), ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    return config_path
