"""
Immutable snapshots of tasks, users and projects.

Snapshots are the only data shape the engines understand. They are built
fresh for every engine invocation from whatever the persistence layer
returns (plain documents with raw or populated references, or model
instances) and are never mutated afterwards.

This module is the single boundary that resolves "raw id vs. populated
sub-document" ambiguity; every engine downstream works on plain string ids.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from .errors import InvalidSnapshot


# Enum priorities as stored by the task model
PRIORITY_MAP = {
    'low': 1,
    'medium': 3,
    'high': 5,
}
DEFAULT_PRIORITY = 3

DEFAULT_WEEKLY_CAPACITY = 40 * 60  # minutes

DEFAULT_AVAILABILITY = MappingProxyType({
    'Monday': 8 * 60,
    'Tuesday': 8 * 60,
    'Wednesday': 8 * 60,
    'Thursday': 8 * 60,
    'Friday': 8 * 60,
    'Saturday': 0,
    'Sunday': 0,
})

DEFAULT_WORKING_DAYS = (1, 2, 3, 4, 5)  # 0 = Sunday

EMPTY_MAPPING = MappingProxyType({})


# ==================== Snapshot Types ====================

@dataclass(frozen=True)
class TaskSnapshot:
    """Normalized, immutable representation of a task."""
    id: str
    title: str = ''
    project_id: Optional[str] = None
    assignees: frozenset = frozenset()
    labels: Tuple[str, ...] = ()
    priority: int = DEFAULT_PRIORITY
    percent_done: float = 0
    estimated_time: Optional[float] = None
    actual_time: Optional[float] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    done: bool = False
    done_at: Optional[datetime] = None
    dependencies: Tuple[str, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'title': self.title,
            'project_id': self.project_id,
            'assignees': sorted(self.assignees),
            'labels': list(self.labels),
            'priority': self.priority,
            'percent_done': self.percent_done,
            'estimated_time': self.estimated_time,
            'actual_time': self.actual_time,
            'due_date': _isoformat(self.due_date),
            'start_date': _isoformat(self.start_date),
            'end_date': _isoformat(self.end_date),
            'done': self.done,
            'done_at': _isoformat(self.done_at),
            'dependencies': list(self.dependencies),
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }


@dataclass(frozen=True)
class UserSnapshot:
    """Normalized user data for capacity analysis."""
    id: str
    name: str = ''
    weekly_capacity: float = DEFAULT_WEEKLY_CAPACITY
    historical_average_by_label: Mapping[str, float] = field(default_factory=lambda: EMPTY_MAPPING)
    historical_average_by_project: Mapping[str, float] = field(default_factory=lambda: EMPTY_MAPPING)
    availability_by_day: Mapping[str, float] = field(default_factory=lambda: DEFAULT_AVAILABILITY)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'weekly_capacity': self.weekly_capacity,
            'historical_average_by_label': dict(self.historical_average_by_label),
            'historical_average_by_project': dict(self.historical_average_by_project),
            'availability_by_day': dict(self.availability_by_day),
        }


@dataclass(frozen=True)
class ProjectSnapshot:
    """Normalized project data."""
    id: str
    name: str = ''
    task_ids: Tuple[str, ...] = ()
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    working_days: Tuple[int, ...] = DEFAULT_WORKING_DAYS
    settings: Mapping[str, Any] = field(default_factory=lambda: EMPTY_MAPPING)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'task_ids': list(self.task_ids),
            'start_date': _isoformat(self.start_date),
            'end_date': _isoformat(self.end_date),
            'working_days': list(self.working_days),
            'settings': dict(self.settings),
        }


# ==================== Entity Store ====================

class EntityStore(Protocol):
    """Raw entity access supplied by the persistence layer."""

    def get_task(self, task_id: str) -> Optional[Any]:
        ...

    def get_user(self, user_id: str) -> Optional[Any]:
        ...

    def get_project(self, project_id: str) -> Optional[Any]:
        ...


class InMemoryEntityStore:
    """
    Entity store over lists of raw entities.

    Used by the API layer, where the caller submits the entities with the
    request, and by tests.
    """

    def __init__(
        self,
        tasks: Iterable[Any] = (),
        users: Iterable[Any] = (),
        projects: Iterable[Any] = ()
    ):
        self._tasks = _index(tasks, 'task')
        self._users = _index(users, 'user')
        self._projects = _index(projects, 'project')

    def get_task(self, task_id: str) -> Optional[Any]:
        return self._tasks.get(str(task_id))

    def get_user(self, user_id: str) -> Optional[Any]:
        return self._users.get(str(user_id))

    def get_project(self, project_id: str) -> Optional[Any]:
        return self._projects.get(str(project_id))

    def task_ids(self) -> List[str]:
        return list(self._tasks)

    def user_ids(self) -> List[str]:
        return list(self._users)


def _index(entities: Iterable[Any], kind: str) -> Dict[str, Any]:
    indexed: Dict[str, Any] = {}
    for entity in entities:
        entity_id = normalize_id(_field(entity, '_id', 'id', 'pk'))
        if entity_id is None:
            raise InvalidSnapshot(f"Every {kind} needs an id", field='id')
        indexed[entity_id] = entity
    return indexed


# ==================== Normalization Helpers ====================

def _field(entity: Any, *names: str, default: Any = None) -> Any:
    """Return the first non-None value among ``names`` (keys or attributes)."""
    for name in names:
        if isinstance(entity, Mapping):
            value = entity.get(name)
        else:
            value = getattr(entity, name, None)
        if value is not None:
            return value
    return default


def normalize_id(value: Any) -> Optional[str]:
    """
    Reduce a reference to a plain string id.

    Handles raw ids, populated sub-documents (``{'_id': ...}`` or
    ``{'id': ...}``) and model instances (``.pk`` / ``.id``).
    """
    if value is None:
        return None
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    if isinstance(value, Mapping):
        return normalize_id(_field(value, '_id', 'id', 'pk'))
    for attr in ('pk', '_id', 'id'):
        nested = getattr(value, attr, None)
        if nested is not None and nested is not value:
            return normalize_id(nested)
    # ObjectId, UUID and similar scalar id types
    return str(value)


def _ids(values: Any, field_name: str) -> Tuple[str, ...]:
    """Normalize a collection of references to ordered, unique ids."""
    if values is None:
        return ()
    if isinstance(values, (str, bytes, Mapping)):
        values = [values]
    try:
        items = list(values)
    except TypeError:
        raise InvalidSnapshot(f"{field_name} must be a list of ids", field=field_name)

    seen = []
    for item in items:
        item_id = normalize_id(item)
        if item_id is not None and item_id not in seen:
            seen.append(item_id)
    return tuple(seen)


def parse_datetime(value: Any, field_name: str = 'date') -> Optional[datetime]:
    """
    Parse a date-like value to an aware UTC-based datetime.

    Naive values are taken as UTC. Plain dates map to midnight.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidSnapshot(
                f"{field_name} must be an ISO-8601 date or datetime",
                field=field_name
            )
    else:
        raise InvalidSnapshot(f"{field_name} must be a date", field=field_name)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _number(
    value: Any,
    field_name: str,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None
) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidSnapshot(f"{field_name} must be a number", field=field_name)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidSnapshot(f"{field_name} must be a number", field=field_name)
    if minimum is not None and number < minimum:
        raise InvalidSnapshot(f"{field_name} must be at least {minimum:g}", field=field_name)
    if maximum is not None and number > maximum:
        raise InvalidSnapshot(f"{field_name} must be at most {maximum:g}", field=field_name)
    return int(number) if number.is_integer() else number


def _priority(value: Any) -> int:
    """Map enum or numeric priorities onto the 1-5 scale."""
    if value is None:
        return DEFAULT_PRIORITY
    if isinstance(value, str) and not value.strip().isdigit():
        return PRIORITY_MAP.get(value.strip().lower(), DEFAULT_PRIORITY)
    number = _number(value, 'priority', minimum=1, maximum=5)
    return int(number)


def _minutes_map(values: Any, field_name: str) -> Mapping[str, float]:
    if not values:
        return EMPTY_MAPPING
    if not isinstance(values, Mapping):
        raise InvalidSnapshot(f"{field_name} must be a mapping", field=field_name)
    return MappingProxyType({
        str(key): _number(minutes, field_name, minimum=0)
        for key, minutes in values.items()
        if minutes is not None
    })


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ==================== Conversions ====================

def task_to_snapshot(task: Any) -> TaskSnapshot:
    """
    Convert a persisted task to a TaskSnapshot.

    Raises:
        InvalidSnapshot: for a missing id, malformed values, or a task that
            lists itself as a dependency
    """
    task_id = normalize_id(_field(task, '_id', 'id', 'pk'))
    if task_id is None:
        raise InvalidSnapshot("Task id is required", field='id')

    done = bool(_field(task, 'done', 'completed', default=False))
    percent_done = _number(
        _field(task, 'percent_done', 'percentDone'), 'percent_done', minimum=0, maximum=100
    )
    if not percent_done:
        percent_done = 100 if done else 0

    dependencies = _ids(_field(task, 'dependencies'), 'dependencies')
    if task_id in dependencies:
        raise InvalidSnapshot(f"Task {task_id} cannot depend on itself", field='dependencies')

    return TaskSnapshot(
        id=task_id,
        title=str(_field(task, 'title', default='')),
        project_id=normalize_id(_field(task, 'project_id', 'projectId', 'project')),
        assignees=frozenset(_ids(_field(task, 'assignees', 'assigned_to', 'assignedTo'), 'assignees')),
        labels=_ids(_field(task, 'labels'), 'labels'),
        priority=_priority(_field(task, 'priority')),
        percent_done=percent_done,
        estimated_time=_number(
            _field(task, 'estimated_time', 'estimatedTime'), 'estimated_time', minimum=0
        ),
        actual_time=_number(_field(task, 'actual_time', 'actualTime'), 'actual_time'),
        due_date=parse_datetime(_field(task, 'due_date', 'dueDate'), 'due_date'),
        start_date=parse_datetime(_field(task, 'start_date', 'startDate'), 'start_date'),
        end_date=parse_datetime(_field(task, 'end_date', 'endDate'), 'end_date'),
        done=done,
        done_at=parse_datetime(_field(task, 'done_at', 'doneAt', 'completedAt'), 'done_at'),
        dependencies=dependencies,
        created_at=parse_datetime(_field(task, 'created_at', 'createdAt'), 'created_at'),
        updated_at=parse_datetime(_field(task, 'updated_at', 'updatedAt'), 'updated_at'),
    )


def user_to_snapshot(
    user: Any,
    historical_averages: Optional[Mapping] = None,
    availability: Optional[Mapping] = None
) -> UserSnapshot:
    """
    Convert a persisted user to a UserSnapshot.

    Args:
        user: Raw user entity
        historical_averages: Optional ``{'by_label': {...}, 'by_project': {...}}``
            aggregates computed by the persistence layer
        availability: Optional weekday name -> minutes mapping
    """
    user_id = normalize_id(_field(user, '_id', 'id', 'pk'))
    if user_id is None:
        raise InvalidSnapshot("User id is required", field='id')

    first = _field(user, 'first_name', 'firstName')
    last = _field(user, 'last_name', 'lastName')
    if first and last:
        name = f"{first} {last}"
    else:
        name = str(_field(user, 'name', 'username', default=user_id))

    capacity = _number(
        _field(user, 'weekly_capacity', 'weeklyCapacity', default=DEFAULT_WEEKLY_CAPACITY),
        'weekly_capacity'
    )
    if capacity <= 0:
        raise InvalidSnapshot("weekly_capacity must be positive", field='weekly_capacity')

    averages = historical_averages or _field(user, 'historical_averages', 'historicalAverages') or {}
    by_label = _field(averages, 'by_label', 'byLabel') or _field(
        user, 'historical_average_by_label', 'historicalAverageByLabel')
    by_project = _field(averages, 'by_project', 'byProject') or _field(
        user, 'historical_average_by_project', 'historicalAverageByProject')
    availability = availability or _field(user, 'availability_by_day', 'availabilityByDay')

    return UserSnapshot(
        id=user_id,
        name=name,
        weekly_capacity=capacity,
        historical_average_by_label=_minutes_map(by_label, 'historical_average_by_label'),
        historical_average_by_project=_minutes_map(by_project, 'historical_average_by_project'),
        availability_by_day=(
            _minutes_map(availability, 'availability_by_day') if availability
            else DEFAULT_AVAILABILITY
        ),
    )


def project_to_snapshot(project: Any, task_ids: Iterable[Any] = ()) -> ProjectSnapshot:
    """Convert a persisted project to a ProjectSnapshot."""
    project_id = normalize_id(_field(project, '_id', 'id', 'pk'))
    if project_id is None:
        raise InvalidSnapshot("Project id is required", field='id')

    working_days = _field(project, 'working_days', 'workingDays')
    if working_days:
        try:
            working_days = tuple(int(day) for day in working_days)
        except (TypeError, ValueError):
            raise InvalidSnapshot("working_days must be weekday numbers", field='working_days')
        if any(day < 0 or day > 6 for day in working_days):
            raise InvalidSnapshot("working_days must be between 0 and 6", field='working_days')
    else:
        working_days = DEFAULT_WORKING_DAYS

    settings = _field(project, 'settings') or {}
    if not isinstance(settings, Mapping):
        raise InvalidSnapshot("settings must be a mapping", field='settings')

    return ProjectSnapshot(
        id=project_id,
        name=str(_field(project, 'name', default='')),
        task_ids=_ids(task_ids or _field(project, 'task_ids', 'taskIds', 'tasks'), 'task_ids'),
        start_date=parse_datetime(_field(project, 'start_date', 'startDate'), 'start_date'),
        end_date=parse_datetime(_field(project, 'end_date', 'endDate'), 'end_date'),
        working_days=working_days,
        settings=MappingProxyType(dict(settings)),
    )


_CONVERTERS = {
    'task': task_to_snapshot,
    'user': user_to_snapshot,
    'project': project_to_snapshot,
}


def to_snapshot(kind: str, entity: Any):
    """Dispatch to the converter for ``kind`` ('task', 'user' or 'project')."""
    try:
        converter = _CONVERTERS[kind]
    except KeyError:
        raise InvalidSnapshot(f"Unknown entity kind: {kind}", field='kind')
    return converter(entity)
