"""
Dependency graph resolver.

Graph algorithms over task dependencies: cycle detection, blocked-state
computation, impact (reverse reachability) analysis and bounded graph
traversal for visualization.

The resolver never queries storage. It works over an ``EdgeLookup``
(forward edges, reverse edges, existence) and, where it needs completion
state, a ``TaskLookup``. ``TaskGraph`` implements both over a collection of
snapshots.

All traversals are iterative with explicit queues/stacks and function-local
visited sets, so the resolver holds no state between calls and tolerates an
inconsistent lookup (edges that already form a cycle) without looping.

Concurrency contract: the resolver does no locking. A caller guarding a
write with ``validate_dependencies`` must run the validation inside the
same transaction or critical section as the write itself.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Union

from .errors import CycleDetected, DependencyError, DependencyNotFound, EntityNotFound, SelfDependency
from .explanation import NEUTRAL, Factor, build_explanation
from .snapshots import TaskSnapshot, normalize_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 5


class EdgeLookup(Protocol):
    """Forward and reverse dependency edges, supplied by the caller."""

    def dependencies_of(self, task_id: str) -> Iterable[str]:
        ...

    def dependents_of(self, task_id: str) -> Iterable[str]:
        ...

    def exists(self, task_id: str) -> bool:
        ...


class TaskLookup(Protocol):
    def get_task(self, task_id: str) -> Optional[TaskSnapshot]:
        ...


class TaskGraph:
    """
    In-memory edge and task lookup over a set of snapshots.

    Keeps a reverse-edge index so ``dependents_of`` is a dictionary lookup.
    """

    def __init__(self, tasks: Iterable[TaskSnapshot] = ()):
        self._tasks: Dict[str, TaskSnapshot] = {}
        self._dependents: Dict[str, List[str]] = {}
        for task in tasks:
            self._tasks[task.id] = task
        for task in self._tasks.values():
            for dependency_id in task.dependencies:
                self._dependents.setdefault(dependency_id, []).append(task.id)

    def __contains__(self, task_id) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def dependencies_of(self, task_id: str) -> Sequence[str]:
        task = self._tasks.get(task_id)
        return task.dependencies if task else ()

    def dependents_of(self, task_id: str) -> Sequence[str]:
        return tuple(self._dependents.get(task_id, ()))

    def exists(self, task_id: str) -> bool:
        return task_id in self._tasks

    def get_task(self, task_id: str) -> Optional[TaskSnapshot]:
        return self._tasks.get(task_id)

    def tasks(self) -> List[TaskSnapshot]:
        return list(self._tasks.values())


# ==================== Result Types ====================

@dataclass(frozen=True)
class CycleCheck:
    has_cycle: bool
    cycle_path: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        result = {'has_cycle': self.has_cycle}
        if self.has_cycle:
            result['cycle_path'] = self.cycle_path
        return result


@dataclass(frozen=True)
class ImpactSet:
    direct: List[str]
    indirect: List[str]

    @property
    def all(self) -> List[str]:
        return self.direct + self.indirect

    def to_dict(self) -> Dict:
        return {
            'direct': self.direct,
            'indirect': self.indirect,
            'all': self.all,
        }


@dataclass(frozen=True)
class DependencyImpact:
    """Impact set plus its explanation trace."""
    task_id: str
    impact: ImpactSet
    level: str
    factors: List[Factor]
    explanation: str

    @property
    def total_affected(self) -> int:
        return len(self.impact.all)

    def to_dict(self) -> Dict:
        result = {'task_id': self.task_id}
        result.update(self.impact.to_dict())
        result.update({
            'total_affected': self.total_affected,
            'impact_level': self.level,
            'factors': [f.to_dict() for f in self.factors],
            'explanation': self.explanation,
        })
        return result


@dataclass(frozen=True)
class GraphEntry:
    task_id: str
    depth: int
    task: Optional[TaskSnapshot] = None

    def to_dict(self) -> Dict:
        return {
            'task_id': self.task_id,
            'depth': self.depth,
            'task': self.task.to_dict() if self.task else None,
        }


@dataclass(frozen=True)
class DependencyGraph:
    task_id: str
    upstream: List[GraphEntry]
    downstream: List[GraphEntry]
    max_depth: int = DEFAULT_MAX_DEPTH

    def to_dict(self) -> Dict:
        return {
            'task_id': self.task_id,
            'max_depth': self.max_depth,
            'upstream': [entry.to_dict() for entry in self.upstream],
            'downstream': [entry.to_dict() for entry in self.downstream],
        }


@dataclass(frozen=True)
class DependencyValidation:
    """Outcome of validating a whole candidate dependency set."""
    valid: bool
    dependency_ids: List[str] = field(default_factory=list)
    error: Optional[DependencyError] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> Dict:
        result = {
            'valid': self.valid,
            'dependency_ids': self.dependency_ids,
        }
        if self.error is not None:
            result['error'] = self.error.message
            result['error_code'] = self.error.code.value
            result['details'] = self.error.to_dict()
        return result


@dataclass(frozen=True)
class UnblockReport:
    completed_task_id: str
    unblocked: List[str]
    still_blocked: List[str]

    def to_dict(self) -> Dict:
        return {
            'completed_task_id': self.completed_task_id,
            'unblocked': self.unblocked,
            'still_blocked': self.still_blocked,
        }


def _unique(ids: Iterable) -> List[str]:
    """Normalize ids, dropping blanks and duplicates but keeping order."""
    result: List[str] = []
    seen: Set[str] = set()
    for raw in ids or ():
        task_id = normalize_id(raw)
        if task_id is not None and task_id not in seen:
            seen.add(task_id)
            result.append(task_id)
    return result


# ==================== Resolver ====================

class DependencyResolver:
    """
    Read-only dependency analysis over an ``EdgeLookup``.

    Args:
        edges: Forward/reverse edge lookup
        tasks: Task lookup used for completion state; defaults to ``edges``
            when it also implements ``get_task`` (as ``TaskGraph`` does)
    """

    def __init__(self, edges: EdgeLookup, tasks: Optional[TaskLookup] = None):
        self.edges = edges
        if tasks is None and hasattr(edges, 'get_task'):
            tasks = edges
        self.tasks = tasks

    # ---------- cycle detection ----------

    def detect_cycle(
        self,
        task_id: Optional[str],
        proposed_dependencies: Iterable[str]
    ) -> CycleCheck:
        """
        Check whether giving ``task_id`` the proposed dependencies closes a cycle.

        Builds the sub-graph reachable from the proposed edges breadth-first
        (each node expanded once), then searches it depth-first for a path
        back to ``task_id``. For a task being created (``task_id`` is None)
        any cycle among the reachable nodes is reported instead.

        Returns:
            CycleCheck whose ``cycle_path`` lists the ids from the first
            proposed dependency to the node that closes the loop
        """
        proposed = _unique(proposed_dependencies)
        if not proposed:
            return CycleCheck(has_cycle=False)

        if task_id is not None and task_id in proposed:
            return CycleCheck(has_cycle=True, cycle_path=[task_id])

        graph = self._reachable_subgraph(task_id, proposed)
        logger.debug("Cycle check for %s expanded %d nodes", task_id, len(graph))

        finished: Set[str] = set()
        for start in proposed:
            path = self._find_cycle(start, task_id, graph, finished)
            if path:
                return CycleCheck(has_cycle=True, cycle_path=path)

        return CycleCheck(has_cycle=False)

    def _reachable_subgraph(self, task_id: Optional[str], proposed: List[str]) -> Dict[str, List[str]]:
        graph: Dict[str, List[str]] = {}
        queue = deque(proposed)

        while queue:
            current = queue.popleft()
            if current in graph:
                continue
            if current == task_id:
                edges = proposed
            else:
                edges = _unique(self.edges.dependencies_of(current))
            graph[current] = edges
            queue.extend(dep for dep in edges if dep not in graph)

        return graph

    @staticmethod
    def _find_cycle(
        start: str,
        target: Optional[str],
        graph: Dict[str, List[str]],
        finished: Set[str]
    ) -> Optional[List[str]]:
        """Iterative DFS; ``finished`` holds nodes already fully explored."""
        if start in finished:
            return None

        path = [start]
        on_path = {start}
        stack = [iter(graph.get(start, ()))]

        while stack:
            dependency = next(stack[-1], None)
            if dependency is None:
                stack.pop()
                node = path.pop()
                on_path.discard(node)
                finished.add(node)
                continue

            if dependency == target or dependency in on_path:
                return path + [dependency]
            if dependency in finished:
                continue

            path.append(dependency)
            on_path.add(dependency)
            stack.append(iter(graph.get(dependency, ())))

        return None

    # ---------- blocked state ----------

    def _dependency_snapshots(
        self,
        task: Union[TaskSnapshot, str],
        dependencies: Optional[Iterable[Union[TaskSnapshot, str]]] = None
    ) -> List[TaskSnapshot]:
        if dependencies is None:
            if not isinstance(task, TaskSnapshot):
                task = self._require_task(task)
            dependencies = task.dependencies

        snapshots = []
        for dependency in dependencies:
            if isinstance(dependency, TaskSnapshot):
                snapshots.append(dependency)
                continue
            if self.tasks is None:
                raise ValueError("Resolving dependencies by id requires a task lookup")
            resolved = self._lookup(normalize_id(dependency))
            if resolved is not None:
                snapshots.append(resolved)
        return snapshots

    def is_blocked(
        self,
        task: Union[TaskSnapshot, str],
        dependencies: Optional[Iterable[Union[TaskSnapshot, str]]] = None
    ) -> bool:
        """
        A task is blocked when any of its dependencies is incomplete.

        Args:
            task: Snapshot or id of the task
            dependencies: Already materialized dependency snapshots (or ids);
                skips the lookup when the caller has them at hand
        """
        return any(not dep.done for dep in self._dependency_snapshots(task, dependencies))

    def incomplete_dependency_count(
        self,
        task: Union[TaskSnapshot, str],
        dependencies: Optional[Iterable[Union[TaskSnapshot, str]]] = None
    ) -> int:
        return sum(1 for dep in self._dependency_snapshots(task, dependencies) if not dep.done)

    # ---------- impact ----------

    def impacted_tasks(self, task_id: str) -> ImpactSet:
        """
        Tasks that would be affected if ``task_id`` slips.

        ``direct`` are immediate dependents; ``indirect`` are every further
        reverse-reachable task. Nodes are marked visited before they are
        queued, so a cyclic lookup still terminates.
        """
        direct = [dep for dep in _unique(self.edges.dependents_of(task_id)) if dep != task_id]
        visited = {task_id, *direct}
        indirect: List[str] = []
        queue = deque(direct)

        while queue:
            current = queue.popleft()
            for dependent in _unique(self.edges.dependents_of(current)):
                if dependent in visited:
                    continue
                visited.add(dependent)
                indirect.append(dependent)
                queue.append(dependent)

        return ImpactSet(direct=direct, indirect=indirect)

    def analyze_impact(self, task_id: str) -> DependencyImpact:
        """Impact set with a graded level and an explanation."""
        impact = self.impacted_tasks(task_id)
        total = len(impact.all)

        if total == 0:
            level = 'none'
        elif total <= 2:
            level = 'low'
        elif total <= 5:
            level = 'medium'
        else:
            level = 'high'

        factors = [
            Factor(factor='impact', value=level, impact=NEUTRAL if total == 0 else level),
            Factor(factor='affected_tasks', value=total, impact=f"{total} task{'' if total == 1 else 's'}"),
        ]
        return DependencyImpact(
            task_id=task_id,
            impact=impact,
            level=level,
            factors=factors,
            explanation=build_explanation('dependency', factors),
        )

    # ---------- traversal ----------

    def dependency_graph(self, task_id: str, max_depth: int = DEFAULT_MAX_DEPTH) -> DependencyGraph:
        """
        Upstream dependencies and downstream dependents up to ``max_depth`` hops.

        Direct neighbours have depth 0. Each direction keeps its own visited
        set and the root is excluded from both lists.

        Raises:
            EntityNotFound: when ``task_id`` is unknown to the lookup
        """
        if not self.edges.exists(task_id):
            raise EntityNotFound('task', task_id)

        return DependencyGraph(
            task_id=task_id,
            upstream=self._walk(task_id, self.edges.dependencies_of, max_depth),
            downstream=self._walk(task_id, self.edges.dependents_of, max_depth),
            max_depth=max_depth,
        )

    def _walk(
        self,
        root: str,
        neighbours: Callable[[str], Iterable[str]],
        max_depth: int
    ) -> List[GraphEntry]:
        entries: List[GraphEntry] = []
        visited = {root}
        queue = deque([(root, 0)])

        while queue:
            current, hops = queue.popleft()
            if hops >= max_depth:
                continue
            for neighbour in _unique(neighbours(current)):
                if neighbour in visited:
                    continue
                visited.add(neighbour)
                entries.append(GraphEntry(
                    task_id=neighbour,
                    depth=hops,
                    task=self._lookup(neighbour),
                ))
                queue.append((neighbour, hops + 1))

        return entries

    # ---------- validation ----------

    def validate_dependencies(
        self,
        task_id: Optional[str],
        dependency_ids: Optional[Iterable[str]]
    ) -> DependencyValidation:
        """
        Validate a task's complete candidate dependency set.

        Checks run in order and stop at the first failure: duplicates are
        dropped, then self-dependency, existence (all missing ids reported
        together) and finally cycles. The whole set is accepted or rejected.

        Args:
            task_id: The task being updated, or None when it is being created
            dependency_ids: The full list of dependencies the task should have
        """
        unique = _unique(dependency_ids)
        if not unique:
            return DependencyValidation(valid=True)

        error: Optional[DependencyError] = None
        if task_id is not None and task_id in unique:
            error = SelfDependency(task_id)
        else:
            missing = [dep for dep in unique if not self.edges.exists(dep)]
            if missing:
                error = DependencyNotFound(missing, task_id=task_id)
            else:
                check = self.detect_cycle(task_id, unique)
                if check.has_cycle:
                    error = CycleDetected(check.cycle_path, task_id=task_id)

        if error is not None:
            logger.info("Rejected dependencies for task %s: %s", task_id, error.message)
            return DependencyValidation(valid=False, dependency_ids=unique, error=error)

        return DependencyValidation(valid=True, dependency_ids=unique)

    # ---------- completion hook ----------

    def unblock_dependent_tasks(self, completed_task_id: str) -> UnblockReport:
        """
        Hook run after a task transitions to done.

        Inspects the incomplete dependents of the completed task and reports
        which of them are now unblocked. Blocked state is derived on read and
        never stored, so this only reports; delivering notifications is up
        to the caller.
        """
        unblocked: List[str] = []
        still_blocked: List[str] = []

        for dependent_id in _unique(self.edges.dependents_of(completed_task_id)):
            dependent = self._lookup(dependent_id)
            if dependent is None or dependent.done:
                continue
            remaining = [
                dep for dep in self._dependency_snapshots(dependent)
                if dep.id != completed_task_id and not dep.done
            ]
            (still_blocked if remaining else unblocked).append(dependent_id)

        logger.info(
            "Task %s completed: %d dependents unblocked, %d still blocked",
            completed_task_id, len(unblocked), len(still_blocked)
        )
        return UnblockReport(
            completed_task_id=completed_task_id,
            unblocked=unblocked,
            still_blocked=still_blocked,
        )

    # ---------- lookups ----------

    def _lookup(self, task_id: Optional[str]) -> Optional[TaskSnapshot]:
        if task_id is None or self.tasks is None:
            return None
        return self.tasks.get_task(task_id)

    def _require_task(self, task_id: str) -> TaskSnapshot:
        if self.tasks is None:
            raise ValueError("Resolving tasks by id requires a task lookup")
        task = self.tasks.get_task(normalize_id(task_id))
        if task is None:
            raise EntityNotFound('task', task_id)
        return task
