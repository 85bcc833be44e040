"""
Priority Engine.

Scores a task from 0 to 100 by summing weighted factor contributions
around a neutral baseline of 50:

    score = clamp(sum(raw_factor * weight) + 50, 0, 100)

Factors:
- urgency: 10 * e^(-urgency_decay * days_until_due), future due dates only
- overdue: whole days overdue * overdue_penalty
- manual_priority: (priority - 3) * 2, so medium priority is neutral
- blocking: incomplete dependency count * 2
- completion: (100 - percent_done) / 100, once work has started
- workload: 1 - workload_factor, when the caller supplies a factor

The engine is pure: dependency counts and workload factors are computed
by the caller (the dependency resolver and the workload engine) and passed
in, never looked up here. A task with no due date, no dependencies, the
default priority and no progress scores exactly 50.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import EngineConfig, load_config
from .explanation import NEGATIVE, NEUTRAL, POSITIVE, Factor, build_explanation, describe_priority_factor
from .snapshots import ProjectSnapshot, TaskSnapshot, UserSnapshot

logger = logging.getLogger(__name__)

BASELINE_SCORE = 50
BASE_URGENCY = 10
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class PriorityResult:
    task_id: str
    score: int
    reasons: List[str]
    explanation: str
    factors: List[Factor]

    def to_dict(self) -> Dict:
        return {
            'task_id': self.task_id,
            'score': self.score,
            'reasons': self.reasons,
            'explanation': self.explanation,
            'factors': [f.to_dict() for f in self.factors],
        }


def _aware(moment: Optional[datetime]) -> datetime:
    if moment is None:
        return datetime.now(timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def days_until_due(task: TaskSnapshot, now: datetime) -> Optional[float]:
    """Fractional days until the due date; negative when overdue, None if n/a."""
    if task.due_date is None or task.done:
        return None
    return (task.due_date - _aware(now)).total_seconds() / SECONDS_PER_DAY


def calculate_urgency(task: TaskSnapshot, now: datetime, config: EngineConfig) -> float:
    """
    Exponential urgency decay: 10 when due now, ~9 a day later, and so on.

    Overdue and done tasks have no urgency; overdue is scored separately.
    """
    days = days_until_due(task, now)
    if days is None or days < 0:
        return 0.0
    return BASE_URGENCY * math.exp(-config.priority.urgency_decay * days)


def _sign(raw: float) -> str:
    if raw > 0:
        return POSITIVE
    if raw < 0:
        return NEGATIVE
    return NEUTRAL


def calculate_priority(
    task: TaskSnapshot,
    project: Optional[ProjectSnapshot] = None,
    assignees: Sequence[UserSnapshot] = (),
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
    incomplete_dependency_count: int = 0,
    workload_factor: Optional[float] = None
) -> PriorityResult:
    """
    Calculate the priority score for one task.

    Args:
        task: Task to score
        project: Owning project; its settings supply the config when
            ``config`` is not given
        assignees: User snapshots of the task's assignees
        now: Reference time (defaults to the current UTC time)
        config: Engine configuration
        incomplete_dependency_count: Number of the task's dependencies that
            are not done, as computed by the dependency resolver
        workload_factor: Assignee load ratio from the workload engine
            (>1 overloaded, <1 available). When omitted the workload factor
            stays neutral.
    """
    if config is None:
        config = load_config(project.settings if project else None)
    now = _aware(now)
    weights = config.priority.weights
    factors: List[Factor] = []

    def add(name: str, value, raw: float, weight: float, impact: Optional[str] = None):
        factors.append(Factor(
            factor=name,
            value=value,
            impact=impact if impact is not None else _sign(raw),
            weight=weight,
            contribution=raw * weight,
        ))

    # Urgency and overdue are mutually exclusive: urgency is 0 once past due
    days = days_until_due(task, now)
    urgency = calculate_urgency(task, now, config)
    add('urgency', days, urgency, weights.urgency)

    if days is not None and days < 0:
        days_overdue = math.floor(-days)
        if days_overdue >= 1:
            add('overdue', days_overdue, days_overdue * config.priority.overdue_penalty, weights.overdue)

    add('manual_priority', task.priority, (task.priority - 3) * 2, weights.manual_priority)

    if incomplete_dependency_count > 0:
        add('blocking', incomplete_dependency_count, incomplete_dependency_count * 2, weights.dependencies)

    # An unstarted task carries no completion signal
    if task.percent_done > 0:
        add(
            'completion',
            task.percent_done,
            (100 - task.percent_done) / 100,
            weights.completion,
            impact=POSITIVE if task.percent_done < 50 else NEUTRAL,
        )

    if workload_factor is not None and _has_known_assignee(task, assignees):
        add('workload', round(workload_factor, 3), 1 - workload_factor, weights.workload)

    total = sum(f.contribution for f in factors)
    score = round(max(0, min(100, total + BASELINE_SCORE)))

    logger.debug("Priority for task %s: raw %.2f, score %d", task.id, total, score)

    return PriorityResult(
        task_id=task.id,
        score=score,
        reasons=[describe_priority_factor(f) for f in factors if f.impact != NEUTRAL],
        explanation=build_explanation('priority', factors),
        factors=factors,
    )


def _has_known_assignee(task: TaskSnapshot, assignees: Sequence[UserSnapshot]) -> bool:
    if not task.assignees:
        return False
    if not assignees:
        return True
    return any(user.id in task.assignees for user in assignees)


def calculate_priorities(
    tasks: Iterable[TaskSnapshot],
    project: Optional[ProjectSnapshot] = None,
    assignees: Sequence[UserSnapshot] = (),
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
    incomplete_dependency_counts: Optional[Mapping[str, int]] = None,
    workload_factors: Optional[Mapping[str, float]] = None
) -> List[PriorityResult]:
    """
    Score several tasks, highest first.

    Ties keep their input order.
    """
    if config is None:
        config = load_config(project.settings if project else None)
    now = _aware(now)
    counts = incomplete_dependency_counts or {}
    factors = workload_factors or {}

    results = [
        calculate_priority(
            task,
            project=project,
            assignees=assignees,
            now=now,
            config=config,
            incomplete_dependency_count=counts.get(task.id, 0),
            workload_factor=factors.get(task.id),
        )
        for task in tasks
    ]
    return sorted(results, key=lambda result: result.score, reverse=True)


def workload_factor_for(task: TaskSnapshot, workload_results: Iterable) -> Optional[float]:
    """
    Mean load ratio of the task's assignees, from workload engine results.

    Returns None when none of the task's assignees has a result, which
    keeps the workload factor neutral.
    """
    ratios = [
        result.load_ratio for result in workload_results
        if result.user_id in task.assignees
    ]
    if not ratios:
        return None
    return sum(ratios) / len(ratios)
