"""
Settings loader for settings.yaml

Usage:
    from lead_qualifier.settings import settings

    threshold = settings.engine.confidence_threshold
    min_score = settings.get_nested("matcher.default_min_match_score", 0.5)
"""

import logging
from pathlib import Path
from typing import Any, List, Optional

import yaml

logger = logging.getLogger(__name__)

# Settings file path
SETTINGS_FILE = Path(__file__).parent / "settings.yaml"

# Defaults (used when a key is missing from the YAML)
DEFAULTS = {
    "engine": {
        "confidence_threshold": 0.6,
        "default_max_attempts": 3,
    },
    "matcher": {
        "default_min_match_score": 0.5,
        "default_weight": 5,
        "default_limit": 5,
    },
    "classifier": {
        "default_intent_confidence": 0.5,
        "default_extraction_confidence": 0.7,
        "context_messages": 5,
    },
    "config_cache": {
        "ttl_seconds": 300,
    },
    "flows": {
        "directory": None,  # None -> lead_qualifier/yaml_config
    },
    "logging": {
        "level": "INFO",
    },
}


class DotDict(dict):
    """Dict with attribute access: d.key instead of d['key']"""

    def __getattr__(self, key: str) -> Any:
        try:
            value = self[key]
            if isinstance(value, dict):
                return DotDict(value)
            return value
        except KeyError:
            raise AttributeError(f"Setting '{key}' not found")

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def get_nested(self, path: str, default: Any = None) -> Any:
        """Value by dotted path: 'engine.confidence_threshold'"""
        keys = path.split('.')
        value = self
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep-merge dicts (override wins over base)"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(filepath: Optional[Path] = None) -> DotDict:
    """
    Load settings from a YAML file on top of DEFAULTS.

    Priority:
    1. Values from the YAML file
    2. DEFAULTS

    Args:
        filepath: Settings file (settings.yaml next to this module by default)

    Returns:
        DotDict with settings
    """
    filepath = filepath or SETTINGS_FILE

    config = _deep_merge({}, DEFAULTS)

    if filepath.exists():
        with open(filepath, "r", encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
        config = _deep_merge(config, yaml_config)
    else:
        logger.warning("Settings file not found: %s, using defaults", filepath)

    return DotDict(config)


def validate_settings(settings: DotDict) -> List[str]:
    """
    Validate settings.

    Returns:
        List of errors (empty when everything is OK)
    """
    errors = []

    threshold = settings.get_nested("engine.confidence_threshold")
    if not isinstance(threshold, (int, float)) or not (0 <= threshold <= 1):
        errors.append("engine.confidence_threshold must be between 0 and 1")

    max_attempts = settings.get_nested("engine.default_max_attempts")
    if not isinstance(max_attempts, int) or max_attempts < 1:
        errors.append("engine.default_max_attempts must be >= 1")

    min_score = settings.get_nested("matcher.default_min_match_score")
    if not isinstance(min_score, (int, float)) or not (0 <= min_score <= 1):
        errors.append("matcher.default_min_match_score must be between 0 and 1")

    weight = settings.get_nested("matcher.default_weight")
    if not isinstance(weight, (int, float)) or weight < 0:
        errors.append("matcher.default_weight must be >= 0")

    limit = settings.get_nested("matcher.default_limit")
    if not isinstance(limit, int) or limit < 1:
        errors.append("matcher.default_limit must be >= 1")

    for name in ["default_intent_confidence", "default_extraction_confidence"]:
        value = settings.get_nested(f"classifier.{name}")
        if not isinstance(value, (int, float)) or not (0 <= value <= 1):
            errors.append(f"classifier.{name} must be between 0 and 1")

    ttl = settings.get_nested("config_cache.ttl_seconds")
    if not isinstance(ttl, (int, float)) or ttl < 0:
        errors.append("config_cache.ttl_seconds must be >= 0")

    return errors


# Global settings instance (lazy loading)
_settings = None


def get_settings() -> DotDict:
    """Global settings (singleton)"""
    global _settings
    if _settings is None:
        _settings = load_settings()
        for err in validate_settings(_settings):
            logger.error("Invalid setting: %s", err)
    return _settings


def reload_settings() -> DotDict:
    """Reload settings from file"""
    global _settings
    _settings = None
    return get_settings()


# For convenient import: from lead_qualifier.settings import settings
settings = get_settings()
