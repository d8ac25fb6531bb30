"""
Configuration — loads settings from .kgengine.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import logging
import os

import yaml

logger = logging.getLogger(__name__)


_DEFAULTS = {
    "db_path": ".kgengine/knowledge.db",
    "log_level": "WARNING",
    "keyword_limit": 10,
    "suggestion_threshold": 0.6,
    "auto_connect_confidence": 0.8,
    "strengthen_above": 0.7,
    "weaken_below": 0.3,
    "default_min_similarity": 0.7,
    "usage_url": "",
    "usage_timeout": 10.0,
    "connection_rules": [],
}

# Config file search locations
_CONFIG_FILENAMES = [".kgengine.yaml", ".kgengine.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not read config %s: %s", path, e)
        return {}


class Config:
    """Engine configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``KG_*``)
    3. .kgengine.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return _DEFAULTS[yaml_key]

        self.DB_PATH = _get("KG_DB_PATH", "db_path")
        self.LOG_LEVEL = _get("KG_LOG_LEVEL", "log_level").upper()

        # Feature extraction
        self.KEYWORD_LIMIT = _get("KG_KEYWORD_LIMIT", "keyword_limit", cast=int)

        # Suggestion / evolution thresholds
        self.SUGGESTION_THRESHOLD = _get("KG_SUGGESTION_THRESHOLD",
                                         "suggestion_threshold", cast=float)
        self.AUTO_CONNECT_CONFIDENCE = _get("KG_AUTO_CONNECT_CONFIDENCE",
                                            "auto_connect_confidence", cast=float)
        self.STRENGTHEN_ABOVE = _get("KG_STRENGTHEN_ABOVE", "strengthen_above",
                                     cast=float)
        self.WEAKEN_BELOW = _get("KG_WEAKEN_BELOW", "weaken_below", cast=float)
        self.DEFAULT_MIN_SIMILARITY = _get("KG_DEFAULT_MIN_SIMILARITY",
                                           "default_min_similarity", cast=float)

        # Usage signal endpoint (empty = use the in-process static signal)
        self.USAGE_URL = _get("KG_USAGE_URL", "usage_url")
        self.USAGE_TIMEOUT = _get("KG_USAGE_TIMEOUT", "usage_timeout", cast=float)

        # Suggestion rule table overrides
        self.CONNECTION_RULES: list[dict] = yd.get(
            "connection_rules", _DEFAULTS["connection_rules"])
        if not isinstance(self.CONNECTION_RULES, list):
            self.CONNECTION_RULES = []

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
