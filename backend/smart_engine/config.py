"""
Configurable heuristics and weights for the Smart Engine.

Defaults ship with the engine. A deployment may override them through the
``SMART_ENGINE`` Django setting and a project may override any subset
through its settings. Overrides are applied as a per-section overlay:

    load_config({'smart_engine': {'priority': {'weights': {'urgency': 6}}}})

changes only the urgency weight; every other priority weight, and every
other section, keeps its default value.
"""

import logging
import re
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriorityWeights:
    """Weight applied to each priority factor's raw contribution."""
    urgency: float = 3.0
    dependencies: float = 5.0
    overdue: float = 10.0
    manual_priority: float = 4.0
    completion: float = 2.0
    workload: float = 3.0


@dataclass(frozen=True)
class PriorityConfig:
    weights: PriorityWeights = field(default_factory=PriorityWeights)
    urgency_decay: float = 0.1   # How quickly urgency decreases per day
    overdue_penalty: float = 2.0   # Multiplier per whole day overdue


@dataclass(frozen=True)
class WorkloadConfig:
    overload_threshold: float = 1.0
    warning_threshold: float = 0.9
    underutilized_threshold: float = 0.3


@dataclass(frozen=True)
class ConfidenceThresholds:
    high: float = 0.8
    medium: float = 0.5


@dataclass(frozen=True)
class EstimationConfig:
    min_samples: int = 3
    use_median: bool = True
    fallback_multiplier: float = 1.5
    default_minutes: float = 60.0
    similarity_threshold: float = 0.5
    confidence_thresholds: ConfidenceThresholds = field(default_factory=ConfidenceThresholds)


@dataclass(frozen=True)
class DuplicationConfig:
    similarity_threshold: float = 0.7   # Jaccard similarity threshold
    min_tokens: int = 3
    normalize_title: bool = True


@dataclass(frozen=True)
class DependencyConfig:
    max_depth: int = 5


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration, one frozen record per engine."""
    priority: PriorityConfig = field(default_factory=PriorityConfig)
    workload: WorkloadConfig = field(default_factory=WorkloadConfig)
    estimation: EstimationConfig = field(default_factory=EstimationConfig)
    duplication: DuplicationConfig = field(default_factory=DuplicationConfig)
    dependency: DependencyConfig = field(default_factory=DependencyConfig)

    def to_dict(self) -> Dict:
        return asdict(self)


DEFAULT_CONFIG = EngineConfig()

# Keys under which a project's settings may nest engine overrides
SETTINGS_KEYS = ('smart_engine', 'smartEngine')

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', key).lower()


def _overlay(record, overrides: Mapping[str, Any], path: str):
    """
    Return a copy of ``record`` with ``overrides`` applied.

    Nested dataclass fields are overlaid key by key rather than replaced;
    unknown keys are ignored with a warning.
    """
    known = {f.name: f for f in fields(record)}
    changes = {}

    for raw_key, value in overrides.items():
        key = _snake(raw_key)
        if key not in known:
            logger.warning("Ignoring unknown smart engine setting %s.%s", path, raw_key)
            continue

        current = getattr(record, key)
        if hasattr(current, '__dataclass_fields__'):
            if not isinstance(value, Mapping):
                raise InvalidConfiguration(
                    f"{path}.{key} must be a mapping",
                    field=f"{path}.{key}"
                )
            changes[key] = _overlay(current, value, f"{path}.{key}")
        else:
            changes[key] = _coerce(current, value, f"{path}.{key}")

    return replace(record, **changes) if changes else record


def _coerce(current, value, path: str):
    """Coerce ``value`` to the type of the default it replaces."""
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        raise InvalidConfiguration(f"{path} must be true or false", field=path)

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfiguration(f"{path} must be a number", field=path)
    if value < 0:
        raise InvalidConfiguration(f"{path} cannot be negative", field=path)

    return int(value) if isinstance(current, int) else float(value)


def extract_overrides(project_settings: Optional[Mapping]) -> Mapping:
    """
    Find the engine section inside a project's settings.

    Accepts ``{'smart_engine': {...}}``, ``{'smartEngine': {...}}`` or the
    bare section mapping itself.
    """
    if not project_settings:
        return {}
    for key in SETTINGS_KEYS:
        if key in project_settings:
            return project_settings[key] or {}
    section_names = {f.name for f in fields(EngineConfig)}
    if any(_snake(key) in section_names for key in project_settings):
        return project_settings
    return {}


def load_config(
    project_settings: Optional[Mapping] = None,
    base: Optional[Mapping] = None
) -> EngineConfig:
    """
    Build the configuration for one engine invocation.

    Args:
        project_settings: A project's settings (may nest the overrides under
            ``smart_engine``)
        base: Deployment-wide overrides applied before the project's

    Raises:
        InvalidConfiguration: when an override has an unusable value
    """
    config = DEFAULT_CONFIG
    for layer in (extract_overrides(base), extract_overrides(project_settings)):
        if not layer:
            continue
        if not isinstance(layer, Mapping):
            raise InvalidConfiguration("smart_engine settings must be a mapping", field='smart_engine')
        config = _overlay(config, layer, 'smart_engine')
    return config


def validate_config_overrides(project_settings: Optional[Mapping]) -> List[InvalidConfiguration]:
    """
    Validate overrides without raising.

    Returns the first invalid entry of every section.
    """
    errors: List[InvalidConfiguration] = []
    overrides = extract_overrides(project_settings)
    if not isinstance(overrides, Mapping):
        return [InvalidConfiguration("smart_engine settings must be a mapping", field='smart_engine')]

    for section, values in overrides.items():
        try:
            _overlay(DEFAULT_CONFIG, {section: values}, 'smart_engine')
        except InvalidConfiguration as exc:
            errors.append(exc)
    return errors


__all__ = [
    'ConfidenceThresholds',
    'DEFAULT_CONFIG',
    'DependencyConfig',
    'DuplicationConfig',
    'EngineConfig',
    'EstimationConfig',
    'PriorityConfig',
    'PriorityWeights',
    'WorkloadConfig',
    'extract_overrides',
    'load_config',
    'validate_config_overrides',
]
