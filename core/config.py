"""
Config loader for the migration tool.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "default.yaml"
DEFAULT_SCHEMA_PATH = PROJECT_ROOT / "config" / "metadata_schema.json"


class Config:
    """Load YAML config with env overlay."""

    def __init__(self, path: str | Path = DEFAULT_CONFIG_PATH, overrides: Dict[str, Any] | None = None):
        self.path = Path(path)
        load_dotenv()
        self.data = self._load()
        for section, values in (overrides or {}).items():
            self._apply(section, values)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            raise FileNotFoundError(f"Config not found: {self.path}")
        with self.path.open('r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return data

    def _apply(self, section: str, values: Any) -> None:
        if isinstance(values, dict):
            current = self.data.setdefault(section, {})
            for key, value in values.items():
                if value is not None:
                    current[key] = value
        elif values is not None:
            self.data[section] = values

    @property
    def source(self) -> Dict[str, Any]:
        return self.data.get('source', {}) or {}

    @property
    def destination(self) -> Dict[str, Any]:
        return self.data.get('destination', {}) or {}

    @property
    def export(self) -> Dict[str, Any]:
        return self.data.get('export', {}) or {}

    @property
    def importer(self) -> Dict[str, Any]:
        return self.data.get('import', {}) or {}

    @property
    def logging(self) -> Dict[str, Any]:
        return self.data.get('logging', {}) or {}

    def resolve_database_url(self, section: str) -> str | None:
        cfg = self.data.get(section, {}) or {}
        if cfg.get('database_url'):
            return cfg['database_url']
        env_key = cfg.get('database_url_env')
        if env_key:
            return os.getenv(env_key)
        return None
