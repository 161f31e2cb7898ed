"""
Settings slot — the current APIConfig, kept across restarts.

A small YAML file of string keys to string values. The current config
lives under one key as a JSON string. It is read once at startup and
written on every successful configuration save. Conversations never
read it directly; they carry their own pinned copy.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml

from chatbench.models import APIConfig

logger = logging.getLogger(__name__)


class SettingsSlot:
    """Process-wide holder for the current APIConfig."""

    def __init__(self, path: str, key: str = "api_config"):
        self.path = Path(path)
        self.key = key
        self._current: APIConfig | None = None

    @property
    def current(self) -> APIConfig | None:
        return self._current

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        return data if isinstance(data, dict) else {}

    def load(self) -> APIConfig | None:
        """Read the saved config. A missing or unreadable value means no config."""
        try:
            raw = self._read_all().get(self.key)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not read settings from %s: %s", self.path, e)
            raw = None

        self._current = None
        if raw:
            try:
                self._current = APIConfig.from_dict(json.loads(raw))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Ignoring malformed %s in %s: %s", self.key, self.path, e)
        return self._current

    def save(self, config: APIConfig):
        """Persist config and make it current. I/O errors propagate."""
        data = self._read_all()
        data[self.key] = json.dumps(config.to_dict())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True)
        self._current = config
        logger.info("Saved %s (host=%s, model=%s)", self.key, config.hostname, config.model)
