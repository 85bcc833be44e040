"""
Human-readable explanations for Smart Engine outputs.

Every engine records the factors behind its result as ``Factor`` entries
and hands them to ``build_explanation``, which renders one sentence per
result kind. Rendering never raises: a factor list with missing entries
produces a generic completion message instead.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

NEUTRAL = 'neutral'
POSITIVE = 'positive'
NEGATIVE = 'negative'

PRIORITY_LEVELS = ['lowest', 'low', 'medium', 'high', 'highest']


@dataclass(frozen=True)
class Factor:
    """One contributing factor of an engine result."""
    factor: str
    value: Any
    impact: str = NEUTRAL
    weight: Optional[float] = None
    contribution: Optional[float] = None

    def to_dict(self) -> Dict:
        result = {
            'factor': self.factor,
            'value': self.value,
            'impact': self.impact,
        }
        if self.weight is not None:
            result['weight'] = self.weight
        if self.contribution is not None:
            result['contribution'] = round(self.contribution, 2)
        return result


def _as_factor(item: Any) -> Optional[Factor]:
    if isinstance(item, Factor):
        return item
    if isinstance(item, Mapping) and item.get('factor'):
        return Factor(
            factor=str(item['factor']),
            value=item.get('value'),
            impact=item.get('impact', NEUTRAL),
        )
    return None


def _find(factors: List[Factor], name: str) -> Optional[Factor]:
    return next((f for f in factors if f.factor == name), None)


def _plural(count, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def describe_priority_factor(factor: Factor) -> str:
    """Render one priority factor as a short clause, e.g. "due tomorrow"."""
    value = factor.value
    if value is None:
        return factor.factor

    if factor.factor == 'urgency':
        if value < 1:
            return 'due today'
        if value < 2:
            return 'due tomorrow'
        return f"due in {_plural(math.floor(value), 'day')}"
    if factor.factor == 'overdue':
        return f"overdue by {_plural(value, 'day')}"
    if factor.factor == 'manual_priority':
        level = PRIORITY_LEVELS[value - 1] if 1 <= value <= 5 else 'medium'
        return f"manual priority: {level}"
    if factor.factor == 'blocking':
        return f"blocks {_plural(value, 'task')}"
    if factor.factor == 'completion':
        return f"{value:g}% complete"
    if factor.factor == 'workload':
        return 'assignee overloaded' if value > 1 else 'assignee available'
    return f"{factor.factor}: {factor.impact}"


def _priority(factors: List[Factor]) -> str:
    reasons = [describe_priority_factor(f) for f in factors if f.impact != NEUTRAL]
    if not reasons:
        return 'Standard priority based on default factors.'
    return f"Priority based on: {', '.join(reasons)}."


def _workload(factors: List[Factor]) -> str:
    status = _find(factors, 'status')
    load = _find(factors, 'load')
    capacity = _find(factors, 'capacity')

    if not (status and load and capacity) or not capacity.value:
        return 'Workload analysis completed.'

    percentage = round(load.value / capacity.value * 100)
    if status.value == 'overload':
        return (
            f"Overloaded: {percentage}% capacity used "
            f"({load.value:g} min / {capacity.value:g} min per week)."
        )
    if status.value == 'warning':
        return f"Approaching capacity: {percentage}% capacity used."
    if status.value == 'underutilized':
        return f"Underutilized: {percentage}% capacity used. Consider assigning more tasks."
    return f"Balanced workload: {percentage}% capacity used."


def _confidence_label(level: float, high: float = 0.8, medium: float = 0.5) -> str:
    if level >= high:
        return 'high confidence'
    if level >= medium:
        return 'medium confidence'
    return 'low confidence'


def _estimate(factors: List[Factor]) -> str:
    estimate = _find(factors, 'estimate')
    confidence = _find(factors, 'confidence')
    based_on = _find(factors, 'based_on')

    if not (estimate and confidence) or estimate.value is None or confidence.value is None:
        return 'Time estimate calculated.'

    hours = round(estimate.value / 60, 1)
    if confidence.impact in ('high', 'medium', 'low'):
        text = f"{confidence.impact} confidence"
    else:
        text = _confidence_label(confidence.value)
    if based_on and based_on.value:
        text += f" based on {', '.join(based_on.value)}"
    return f"Estimated {hours:g} hour{'' if hours == 1 else 's'} ({text})."


def _dependency(factors: List[Factor]) -> str:
    impact = _find(factors, 'impact')
    affected = _find(factors, 'affected_tasks')

    if not (impact and affected) or affected.value is None:
        return 'Dependency analysis completed.'
    if not affected.value:
        return 'No other tasks depend on this task.'
    return f"If delayed, affects {_plural(affected.value, 'task')} ({impact.value} impact)."


def _duplicate(factors: List[Factor]) -> str:
    similarity = _find(factors, 'similarity')
    matches = _find(factors, 'matches')

    if not (similarity and matches) or similarity.value is None:
        return 'Duplicate detection completed.'
    percent = round(similarity.value * 100)
    return f"{percent}% similar to {_plural(matches.value, 'other task')}."


_BUILDERS: Dict[str, Callable[[List[Factor]], str]] = {
    'priority': _priority,
    'workload': _workload,
    'estimate': _estimate,
    'dependency': _dependency,
    'duplicate': _duplicate,
}


def build_explanation(kind: str, factors: Optional[Iterable[Any]]) -> str:
    """
    Build a one-sentence explanation from contributing factors.

    Args:
        kind: priority, workload, estimate, dependency or duplicate; any
            other kind renders a generic "factor: impact; ..." join
        factors: ``Factor`` entries (plain mappings are accepted too)
    """
    normalized = [f for f in (_as_factor(item) for item in (factors or [])) if f]
    if not normalized:
        return 'No factors available.'

    builder = _BUILDERS.get(kind)
    if builder:
        try:
            return builder(normalized)
        except (TypeError, ValueError):
            return f"{kind.capitalize()} analysis completed."

    return '; '.join(f"{f.factor}: {f.impact}" for f in normalized)


def format_score(score: float, explanation: str, now: Optional[datetime] = None) -> Dict:
    """Bundle a score with its explanation and a timestamp."""
    return {
        'score': score,
        'explanation': explanation,
        'timestamp': (now or datetime.now(timezone.utc)).isoformat(),
    }
