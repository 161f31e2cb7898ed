"""
Config loader for chatbench.
Reads config.yaml once at startup. All other modules import from here.
Missing keys fall back to DEFAULTS, so a partial config.yaml is fine.
"""

import copy
import logging
import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

DEFAULTS: dict = {
    "storage": {
        "sqlite_path": "./data/conversations.db",
        "settings_path": "./data/settings.yaml",
    },
    "gateway": {
        "timeout": 120,
    },
    "conversation": {
        "history_window": 10,
        "title_length": 50,
    },
    "wiretap": {
        "enabled": False,
        "path": "./data/wire.jsonl",
    },
    "logging": {
        "level": "WARNING",
        "file": None,
    },
}

_config: dict | None = None


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def _merge(base: dict, override: dict) -> dict:
    """Deep-merge override onto a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None, reload: bool = False) -> dict:
    """Load and cache config from YAML file."""
    global _config
    if _config is not None and not reload:
        return _config

    config_path = Path(path) if path else _CONFIG_PATH
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("Config not found at %s, using defaults", config_path)
        raw = {}

    _config = _merge(DEFAULTS, _walk_and_resolve(raw))
    return _config


def get_config() -> dict:
    """Return cached config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config
