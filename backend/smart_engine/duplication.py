"""
Duplicate detection by Jaccard similarity of title tokens.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from .config import EngineConfig, load_config
from .explanation import Factor, build_explanation
from .snapshots import TaskSnapshot

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class SimilarTask:
    task_id: str
    title: str
    similarity: float
    project_id: Optional[str] = None
    done: bool = False

    def to_dict(self) -> Dict:
        return {
            'task_id': self.task_id,
            'title': self.title,
            'similarity': round(self.similarity, 3),
            'project_id': self.project_id,
            'done': self.done,
        }


@dataclass(frozen=True)
class DuplicateResult:
    task_id: str
    title: str
    has_duplicates: bool
    similar_tasks: List[SimilarTask] = field(default_factory=list)
    explanation: str = ''
    highest_similarity: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'task_id': self.task_id,
            'title': self.title,
            'has_duplicates': self.has_duplicates,
            'similar_tasks': [t.to_dict() for t in self.similar_tasks],
            'explanation': self.explanation,
            'highest_similarity': round(self.highest_similarity, 3),
        }


def normalize_title(title: Optional[str]) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    if not title:
        return ''
    text = _PUNCTUATION.sub('', title.lower().strip())
    return _WHITESPACE.sub(' ', text).strip()


def tokenize(title: Optional[str], normalize: bool = True) -> List[str]:
    text = normalize_title(title) if normalize else (title or '')
    return [token for token in text.split() if token]


def jaccard_similarity(first: Iterable[str], second: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets have similarity 0."""
    first, second = set(first), set(second)
    union = first | second
    if not union:
        return 0.0
    return len(first & second) / len(union)


def _token_set(task: TaskSnapshot, config: EngineConfig) -> FrozenSet[str]:
    return frozenset(tokenize(task.title, config.duplication.normalize_title))


def find_duplicates(
    task: TaskSnapshot,
    others: Iterable[TaskSnapshot],
    config: Optional[EngineConfig] = None
) -> List[SimilarTask]:
    """
    Tasks among ``others`` whose titles resemble ``task``'s, best match first.

    Titles with fewer than ``min_tokens`` distinct tokens are never
    compared, on either side.
    """
    if config is None:
        config = load_config()
    settings = config.duplication

    tokens = _token_set(task, config)
    if len(tokens) < settings.min_tokens:
        return []

    matches = []
    for other in others:
        if other.id == task.id:
            continue
        other_tokens = _token_set(other, config)
        if len(other_tokens) < settings.min_tokens:
            continue
        similarity = jaccard_similarity(tokens, other_tokens)
        if similarity >= settings.similarity_threshold:
            matches.append(SimilarTask(
                task_id=other.id,
                title=other.title,
                similarity=similarity,
                project_id=other.project_id,
                done=other.done,
            ))

    matches.sort(key=lambda match: match.similarity, reverse=True)
    return matches


def detect_duplicates(
    tasks: Iterable[TaskSnapshot],
    config: Optional[EngineConfig] = None
) -> List[DuplicateResult]:
    """Check every task against the others; only tasks with matches are returned."""
    if config is None:
        config = load_config()
    tasks = list(tasks)

    results = []
    for task in tasks:
        matches = find_duplicates(task, tasks, config)
        if not matches:
            continue

        best = matches[0].similarity
        factors = [
            Factor(factor='similarity', value=best, impact=f"{round(best * 100)}% similar"),
            Factor(factor='matches', value=len(matches), impact=f"{len(matches)} similar tasks"),
        ]
        results.append(DuplicateResult(
            task_id=task.id,
            title=task.title,
            has_duplicates=True,
            similar_tasks=matches,
            explanation=build_explanation('duplicate', factors),
            highest_similarity=best,
        ))

    logger.debug("Duplicate detection: %d of %d tasks have matches", len(results), len(tasks))
    return results
