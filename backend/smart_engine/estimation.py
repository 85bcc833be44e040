"""
Time estimation engine.

Estimates a task's duration from completed tasks that resemble it:

1. Score every done historical task: shared label +3, same project +2,
   previously assigned to the assignee +2, priority within one step +1.
   A task is similar when it reaches ``similarity_threshold`` of the
   maximum score the target task can earn.
2. With fewer than ``min_samples`` usable times, fall back to the
   assignee's historical averages (label, then project) or a default,
   inflated by ``fallback_multiplier``.
3. Otherwise take the median (or mean) of the similar tasks' actual times.
"""

import logging
from dataclasses import dataclass, field
from statistics import mean, median
from typing import Dict, Iterable, List, Optional, Tuple

from .config import EngineConfig, load_config
from .explanation import Factor, build_explanation
from .snapshots import ProjectSnapshot, TaskSnapshot, UserSnapshot

logger = logging.getLogger(__name__)

LABEL_WEIGHT = 3
PROJECT_WEIGHT = 2
ASSIGNEE_WEIGHT = 2
PRIORITY_WEIGHT = 1

FALLBACK_CONFIDENCE = 0.3
FULL_CONFIDENCE_SAMPLES = 10
FILTERED_PENALTY = 0.9


@dataclass(frozen=True)
class EstimateResult:
    estimated_minutes: int
    confidence_level: float
    based_on: List[str] = field(default_factory=list)
    explanation: str = ''
    sample_size: int = 0

    def to_dict(self) -> Dict:
        return {
            'estimated_minutes': self.estimated_minutes,
            'confidence_level': round(self.confidence_level, 3),
            'based_on': self.based_on,
            'explanation': self.explanation,
            'sample_size': self.sample_size,
        }


def _similarity(
    task: TaskSnapshot,
    historical: TaskSnapshot,
    assignee: Optional[UserSnapshot]
) -> Tuple[int, int, List[str]]:
    """Return (score, max_score, matched dimensions) for one historical task."""
    score = 0
    max_score = 0
    matched = []

    if task.labels:
        max_score += LABEL_WEIGHT
        if set(task.labels) & set(historical.labels):
            score += LABEL_WEIGHT
            matched.append('label')

    if task.project_id:
        max_score += PROJECT_WEIGHT
        if historical.project_id == task.project_id:
            score += PROJECT_WEIGHT
            matched.append('project')

    if assignee is not None:
        max_score += ASSIGNEE_WEIGHT
        if assignee.id in historical.assignees:
            score += ASSIGNEE_WEIGHT
            matched.append('assignee')

    max_score += PRIORITY_WEIGHT
    if abs(task.priority - historical.priority) <= 1:
        score += PRIORITY_WEIGHT

    return score, max_score, matched


def find_similar_tasks(
    task: TaskSnapshot,
    historical_tasks: Iterable[TaskSnapshot],
    assignee: Optional[UserSnapshot] = None,
    config: Optional[EngineConfig] = None
) -> List[TaskSnapshot]:
    """Done historical tasks whose similarity ratio reaches the threshold."""
    if config is None:
        config = load_config()
    threshold = config.estimation.similarity_threshold

    similar = []
    for historical in historical_tasks:
        if not historical.done or historical.id == task.id:
            continue
        score, max_score, _ = _similarity(task, historical, assignee)
        if max_score and score / max_score >= threshold:
            similar.append(historical)
    return similar


def fallback_estimate(
    task: TaskSnapshot,
    assignee: Optional[UserSnapshot] = None,
    config: Optional[EngineConfig] = None
) -> EstimateResult:
    """
    Estimate without enough history.

    Uses the assignee's average for the task's primary label, then for its
    project, then the configured default; the result is multiplied by
    ``fallback_multiplier`` and reported with low confidence.
    """
    if config is None:
        config = load_config()

    minutes = None
    if assignee is not None:
        if task.labels:
            minutes = assignee.historical_average_by_label.get(task.labels[0])
        if not minutes and task.project_id:
            minutes = assignee.historical_average_by_project.get(task.project_id)
    if not minutes:
        minutes = config.estimation.default_minutes

    estimated = minutes * config.estimation.fallback_multiplier
    factors = [
        Factor(factor='estimate', value=estimated, impact=f"{round(estimated)} minutes"),
        Factor(factor='confidence', value=FALLBACK_CONFIDENCE, impact='low'),
        Factor(factor='based_on', value=['fallback'], impact='default estimate'),
    ]

    return EstimateResult(
        estimated_minutes=round(estimated),
        confidence_level=FALLBACK_CONFIDENCE,
        based_on=['fallback'],
        explanation=build_explanation('estimate', factors),
        sample_size=0,
    )


def _confidence_impact(level: float, config: EngineConfig) -> str:
    thresholds = config.estimation.confidence_thresholds
    if level >= thresholds.high:
        return 'high'
    if level >= thresholds.medium:
        return 'medium'
    return 'low'


def estimate_time(
    task: TaskSnapshot,
    historical_tasks: Iterable[TaskSnapshot] = (),
    assignee: Optional[UserSnapshot] = None,
    project: Optional[ProjectSnapshot] = None,
    config: Optional[EngineConfig] = None
) -> EstimateResult:
    """
    Estimate how long ``task`` will take, in minutes.

    Args:
        task: Task to estimate
        historical_tasks: Candidate history; tasks that are not done are ignored
        assignee: The user expected to do the work
        project: Owning project; its settings supply the config when
            ``config`` is not given
        config: Engine configuration
    """
    if config is None:
        config = load_config(project.settings if project else None)

    similar = find_similar_tasks(task, historical_tasks, assignee, config)
    samples = [t for t in similar if t.actual_time is not None and t.actual_time > 0]

    if not samples or len(samples) < config.estimation.min_samples:
        logger.debug(
            "Task %s: %d usable samples, using fallback estimate", task.id, len(samples)
        )
        return fallback_estimate(task, assignee, config)

    times = sorted(t.actual_time for t in samples)
    estimated = median(times) if config.estimation.use_median else mean(times)

    confidence = min(1.0, len(samples) / FULL_CONFIDENCE_SAMPLES)
    if len(similar) > len(samples):
        confidence *= FILTERED_PENALTY

    matched = set()
    for sample in samples:
        matched.update(_similarity(task, sample, assignee)[2])

    based_on = []
    if 'label' in matched:
        based_on.append(f"label:{task.labels[0]}")
    if 'project' in matched:
        based_on.append(f"project:{task.project_id}")
    if 'assignee' in matched:
        based_on.append(f"assignee:{assignee.id}")

    factors = [
        Factor(factor='estimate', value=estimated, impact=f"{round(estimated)} minutes"),
        Factor(factor='confidence', value=confidence, impact=_confidence_impact(confidence, config)),
        Factor(factor='based_on', value=based_on, impact=', '.join(based_on)),
    ]

    logger.debug(
        "Task %s: estimated %.1f min from %d samples (confidence %.2f)",
        task.id, estimated, len(samples), confidence
    )

    return EstimateResult(
        estimated_minutes=round(estimated),
        confidence_level=confidence,
        based_on=based_on,
        explanation=build_explanation('estimate', factors),
        sample_size=len(samples),
    )
