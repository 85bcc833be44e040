"""
Error taxonomy for the Smart Engine.

Every error raised by the engine carries an ``ErrorCode`` so the API layer
can forward a structured, user-facing message without inspecting the
exception type. All of these are validation-class outcomes: they are
deterministic and never retried.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional


class ErrorCode(Enum):
    """Error codes surfaced in API responses."""
    SUCCESS = "SUCCESS"
    ERR_MISSING_FIELD = "ERR_MISSING_FIELD"
    ERR_INVALID_SNAPSHOT = "ERR_INVALID_SNAPSHOT"
    ERR_INVALID_CONFIG = "ERR_INVALID_CONFIG"
    ERR_SELF_DEPENDENCY = "ERR_SELF_DEPENDENCY"
    ERR_CIRCULAR_DEPENDENCY = "ERR_CIRCULAR_DEPENDENCY"
    ERR_DEPENDENCY_NOT_FOUND = "ERR_DEPENDENCY_NOT_FOUND"
    ERR_ENTITY_NOT_FOUND = "ERR_ENTITY_NOT_FOUND"


class SmartEngineError(Exception):
    """Base class for all engine errors."""

    code = ErrorCode.ERR_INVALID_SNAPSHOT

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict:
        result = {
            'error_code': self.code.value,
            'message': self.message
        }
        if self.field:
            result['field'] = self.field
        return result


class InvalidSnapshot(SmartEngineError):
    """Malformed entity handed to a snapshot conversion."""
    code = ErrorCode.ERR_INVALID_SNAPSHOT


class InvalidConfiguration(SmartEngineError):
    """Configuration override with a value the engines cannot use."""
    code = ErrorCode.ERR_INVALID_CONFIG


class EntityNotFound(SmartEngineError):
    """The entity store has no record for the requested id."""
    code = ErrorCode.ERR_ENTITY_NOT_FOUND

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind.capitalize()} not found: {entity_id}", field=kind)
        self.kind = kind
        self.entity_id = entity_id


class DependencyError(SmartEngineError):
    """Base class for dependency validation failures."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message, field='dependencies')
        self.task_id = task_id

    def to_dict(self) -> Dict:
        result = super().to_dict()
        if self.task_id is not None:
            result['task_id'] = self.task_id
        return result


class SelfDependency(DependencyError):
    code = ErrorCode.ERR_SELF_DEPENDENCY

    def __init__(self, task_id: Optional[str]):
        super().__init__("A task cannot depend on itself", task_id=task_id)


class DependencyNotFound(DependencyError):
    """Raised with every missing id, not just the first one."""
    code = ErrorCode.ERR_DEPENDENCY_NOT_FOUND

    def __init__(self, missing_ids: Iterable[str], task_id: Optional[str] = None):
        self.missing_ids: List[str] = list(missing_ids)
        super().__init__(
            f"Dependency tasks not found: {', '.join(self.missing_ids)}",
            task_id=task_id
        )

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['missing_ids'] = self.missing_ids
        return result


class CycleDetected(DependencyError):
    code = ErrorCode.ERR_CIRCULAR_DEPENDENCY

    def __init__(self, path: Iterable[str], task_id: Optional[str] = None):
        self.path: List[str] = list(path)
        chain = ([task_id] if task_id is not None else []) + self.path
        super().__init__(
            f"Circular dependency detected: {' → '.join(chain)}",
            task_id=task_id
        )

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['cycle_path'] = self.path
        return result
