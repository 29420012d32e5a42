"""
Configuration Loader for conversation flows and content catalogs.

Loads YAML flow graphs into StateMachineConfig, validates them offline
(unknown targets, duplicate ids, incomplete conditions) and loads
content catalogs.

Layout (relative to config_dir, default lead_qualifier/yaml_config/):
    flows/{flow_name}.yaml
    content/{catalog_name}.yaml

Runtime evaluation never validates; run validate_flow() at startup or
through `python -m lead_qualifier lint`.
"""

import logging
import time
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml

from lead_qualifier.conditions import RuleValidationError
from lead_qualifier.content.models import ContentItem
from lead_qualifier.settings import settings
from lead_qualifier.state_machine.models import (
    ConditionType,
    ObjectionCounter,
    StateMachineConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent / "yaml_config"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        message = f"Configuration validation failed with {len(errors)} error(s):\n"
        message += "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class ConfigLoadError(Exception):
    """Raised when configuration file loading fails."""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Failed to load '{file_path}': {reason}")


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load a YAML mapping.

    Raises:
        ConfigLoadError: If the file is missing, unparseable or not a mapping
    """
    if not file_path.exists():
        raise ConfigLoadError(str(file_path), "File not found")

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(str(file_path), f"YAML parse error: {e}")
    except OSError as e:
        raise ConfigLoadError(str(file_path), str(e))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(str(file_path), "top level must be a mapping")
    return data


def _duplicate_counters(counters: Tuple[ObjectionCounter, ...]) -> List[str]:
    counts = Counter(c.objection_type for c in counters)
    return sorted(t for t, n in counts.items() if n > 1)


def validate_flow(config: StateMachineConfig) -> List[str]:
    """
    Lint a flow graph.

    Checks:
    - State ids are unique
    - initial_state_id / lead_capture_state_id exist
    - Every transition target exists
    - Conditions carry what they need (keys, intents, max_attempts)
    - Objection counters are unique per scope

    Returns:
        List of errors (empty when the flow is valid)
    """
    errors = []

    ids = [s.id for s in config.states]
    known_states = set(ids)
    for state_id, count in Counter(ids).items():
        if count > 1:
            errors.append(f"Duplicate state id '{state_id}' ({count} times)")

    if config.initial_state_id not in known_states:
        errors.append(f"Unknown initial_state_id '{config.initial_state_id}'")

    if config.lead_capture_state_id and config.lead_capture_state_id not in known_states:
        errors.append(f"Unknown lead_capture_state_id '{config.lead_capture_state_id}'")

    for state in config.states:
        for index, transition in enumerate(state.transitions):
            where = f"{state.id}.transitions[{index}]"
            condition = transition.condition

            if transition.target_state_id not in known_states:
                errors.append(f"Unknown state '{transition.target_state_id}' in {where}")

            if condition.type not in {c.value for c in ConditionType}:
                errors.append(f"Unknown condition type '{condition.type}' in {where}")
            elif condition.type in (ConditionType.DATA_COLLECTED, ConditionType.ANY_DATA_COLLECTED):
                if not condition.mapping_keys:
                    errors.append(f"Condition '{condition.type}' without mapping_keys in {where}")
            elif condition.type == ConditionType.INTENT_SET:
                if not condition.intents:
                    errors.append(f"Condition 'intent_set' without intents in {where}")
            elif condition.type == ConditionType.MAX_ATTEMPTS_REACHED:
                if condition.max_attempts is None or condition.max_attempts < 1:
                    errors.append(f"Condition 'max_attempts_reached' needs max_attempts >= 1 in {where}")

        for objection_type in _duplicate_counters(state.objection_counters):
            errors.append(f"Duplicate objection counter '{objection_type}' in {state.id}")

        if state.max_attempts < 1:
            errors.append(f"max_attempts must be >= 1 in {state.id}")

    for objection_type in _duplicate_counters(config.global_objection_counters):
        errors.append(f"Duplicate global objection counter '{objection_type}'")

    return errors


class FlowLoader:
    """
    Loads flow graphs and content catalogs from a config directory.

    Example:
        loader = FlowLoader()
        config = loader.load_flow("buy")
        catalog = loader.load_catalog("advice")
    """

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        """
        Args:
            config_dir: Config directory (settings flows.directory, else yaml_config/)
        """
        if config_dir is None:
            configured = settings.get_nested("flows.directory")
            config_dir = Path(configured) if configured else DEFAULT_CONFIG_DIR
        self.config_dir = Path(config_dir)

    def flow_path(self, flow_name: str) -> Path:
        return self.config_dir / "flows" / f"{flow_name}.yaml"

    def available_flows(self) -> List[str]:
        flows_dir = self.config_dir / "flows"
        if not flows_dir.is_dir():
            return []
        return sorted(p.stem for p in flows_dir.glob("*.yaml"))

    def load_flow_file(self, file_path: Union[str, Path], validate: bool = True) -> StateMachineConfig:
        """
        Load a flow from an explicit file.

        Raises:
            ConfigLoadError: If the file cannot be read or a part is malformed
            ConfigValidationError: If validate is set and the flow has errors
        """
        file_path = Path(file_path)
        data = load_yaml_file(file_path)
        data.setdefault("id", file_path.stem)

        try:
            config = StateMachineConfig.from_dict(data)
        except (ValueError, TypeError) as e:
            raise ConfigLoadError(str(file_path), str(e))

        if validate:
            errors = validate_flow(config)
            if errors:
                raise ConfigValidationError(errors)

        logger.debug("Loaded flow %s (%d states)", config.id, len(config.states))
        return config

    def load_flow(self, flow_name: str, validate: bool = True) -> StateMachineConfig:
        """Load flows/{flow_name}.yaml."""
        return self.load_flow_file(self.flow_path(flow_name), validate=validate)

    def load_catalog_file(self, file_path: Union[str, Path]) -> List[ContentItem]:
        """
        Load content items from a YAML file with an `items` list.

        Entries that fail to build are skipped with a warning; callers that
        need strict validation should check the returned count.

        Raises:
            ConfigLoadError: If the file cannot be read
        """
        file_path = Path(file_path)
        data = load_yaml_file(file_path)
        entries = data.get("items") or []
        if not isinstance(entries, list):
            raise ConfigLoadError(str(file_path), "'items' must be a list")

        items = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.warning("Skipping content entry %d in %s: not a mapping", index, file_path)
                continue
            try:
                items.append(ContentItem.from_dict(entry))
            except (RuleValidationError, ValueError, TypeError) as e:
                logger.warning("Skipping content entry %d in %s: %s", index, file_path, e)
        return items

    def load_catalog(self, catalog_name: str) -> List[ContentItem]:
        """Load content/{catalog_name}.yaml."""
        return self.load_catalog_file(self.config_dir / "content" / f"{catalog_name}.yaml")

    def __repr__(self) -> str:
        return f"FlowLoader(config_dir={self.config_dir})"


class ConfigCache:
    """
    Time-bounded cache of loaded flows.

    Injected where flows are needed instead of a module-level singleton;
    entries older than ttl_seconds are reloaded on the next access.

    Example:
        cache = ConfigCache(FlowLoader(), ttl_seconds=300)
        config = cache.get("buy")
    """

    def __init__(
        self,
        loader: FlowLoader,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.loader = loader
        if ttl_seconds is None:
            ttl_seconds = float(settings.get_nested("config_cache.ttl_seconds", 300))
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, StateMachineConfig]] = {}

    def get(self, flow_name: str) -> StateMachineConfig:
        """Cached flow, reloaded when expired."""
        now = self._clock()
        entry = self._entries.get(flow_name)
        if entry is not None and now - entry[0] < self.ttl_seconds:
            return entry[1]

        config = self.loader.load_flow(flow_name)
        self._entries[flow_name] = (now, config)
        return config

    def invalidate(self, flow_name: Optional[str] = None) -> None:
        """Drop one flow, or everything when flow_name is None."""
        if flow_name is None:
            self._entries.clear()
        else:
            self._entries.pop(flow_name, None)

    def __contains__(self, flow_name: str) -> bool:
        entry = self._entries.get(flow_name)
        return entry is not None and self._clock() - entry[0] < self.ttl_seconds

    def __len__(self) -> int:
        return len(self._entries)
