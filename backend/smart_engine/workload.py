"""
Workload & capacity engine.

Compares the estimated time of a user's open tasks with their weekly
capacity and classifies the result as overload, warning, balanced or
underutilized.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .config import EngineConfig, load_config
from .explanation import Factor, build_explanation
from .snapshots import TaskSnapshot, UserSnapshot

logger = logging.getLogger(__name__)

OVERLOAD = 'overload'
WARNING = 'warning'
BALANCED = 'balanced'
UNDERUTILIZED = 'underutilized'

STATUS_COLORS = {
    OVERLOAD: '#EF4444',
    WARNING: '#F59E0B',
    BALANCED: '#22C55E',
    UNDERUTILIZED: '#6B7280',
}


@dataclass(frozen=True)
class WorkloadResult:
    user_id: str
    user_name: str
    weekly_load: float
    capacity: float
    load_ratio: float
    status: str
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    explanation: str = ''
    assigned_task_count: int = 0

    @property
    def load_percentage(self) -> int:
        return round(self.load_ratio * 100)

    def to_dict(self) -> Dict:
        return {
            'user_id': self.user_id,
            'user_name': self.user_name,
            'weekly_load': self.weekly_load,
            'capacity': self.capacity,
            'load_percentage': self.load_percentage,
            'status': self.status,
            'warnings': self.warnings,
            'suggestions': self.suggestions,
            'explanation': self.explanation,
            'assigned_task_count': self.assigned_task_count,
        }


def determine_workload_status(load_ratio: float, config: EngineConfig) -> str:
    """Classify a load ratio; thresholds are checked in order, first match wins."""
    thresholds = config.workload
    if load_ratio >= thresholds.overload_threshold:
        return OVERLOAD
    if load_ratio >= thresholds.warning_threshold:
        return WARNING
    if load_ratio <= thresholds.underutilized_threshold:
        return UNDERUTILIZED
    return BALANCED


def calculate_workload(
    user: UserSnapshot,
    tasks: Iterable[TaskSnapshot] = (),
    config: Optional[EngineConfig] = None
) -> WorkloadResult:
    """
    Calculate the weekly workload of one user.

    Only open tasks that list the user as an assignee count; a task
    without an estimate adds nothing.
    """
    if config is None:
        config = load_config()

    assigned = [task for task in tasks if not task.done and user.id in task.assignees]
    weekly_load = sum(task.estimated_time or 0 for task in assigned)
    capacity = user.weekly_capacity
    load_ratio = weekly_load / capacity if capacity > 0 else 0.0
    status = determine_workload_status(load_ratio, config)
    percentage = round(load_ratio * 100)

    warnings: List[str] = []
    suggestions: List[str] = []
    if status == OVERLOAD:
        warnings.append(f"User is overloaded: {percentage}% capacity used")
        suggestions.append("Consider reassigning some tasks or extending deadlines")
    elif status == WARNING:
        warnings.append(f"User is approaching capacity: {percentage}% capacity used")
    elif status == UNDERUTILIZED:
        suggestions.append(
            f"User is underutilized: {percentage}% capacity used. Consider assigning more tasks."
        )

    factors = [
        Factor(factor='status', value=status, impact=status),
        Factor(factor='load', value=weekly_load, impact=f"{weekly_load:g} minutes"),
        Factor(factor='capacity', value=capacity, impact=f"{capacity:g} minutes per week"),
    ]

    logger.debug("Workload for user %s: %s/%s min (%s)", user.id, weekly_load, capacity, status)

    return WorkloadResult(
        user_id=user.id,
        user_name=user.name,
        weekly_load=weekly_load,
        capacity=capacity,
        load_ratio=load_ratio,
        status=status,
        warnings=warnings,
        suggestions=suggestions,
        explanation=build_explanation('workload', factors),
        assigned_task_count=len(assigned),
    )


def calculate_workloads(
    users: Iterable[UserSnapshot],
    tasks: Iterable[TaskSnapshot] = (),
    config: Optional[EngineConfig] = None
) -> List[WorkloadResult]:
    if config is None:
        config = load_config()
    tasks = list(tasks)
    return [calculate_workload(user, tasks, config) for user in users]


def workload_heatmap(results: Iterable[WorkloadResult]) -> List[Dict]:
    """Heatmap rows: one per user, coloured by status."""
    return [
        {
            'user_id': result.user_id,
            'user_name': result.user_name,
            'load_percentage': result.load_percentage,
            'status': result.status,
            'color': STATUS_COLORS.get(result.status, STATUS_COLORS[UNDERUTILIZED]),
        }
        for result in results
    ]
