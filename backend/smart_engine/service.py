"""
Smart Engine facade.

Loads raw entities from an entity store, converts them to snapshots,
resolves the configuration (deployment base, then project settings) and
hands everything to the pure engines. This is the only place that knows
both the persistence shapes and the engines.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import duplication, estimation, priority, workload
from .config import EngineConfig, load_config
from .dependencies import (
    DependencyGraph,
    DependencyImpact,
    DependencyResolver,
    DependencyValidation,
    EdgeLookup,
    TaskGraph,
    UnblockReport,
)
from .errors import EntityNotFound
from .snapshots import (
    EntityStore,
    ProjectSnapshot,
    TaskSnapshot,
    UserSnapshot,
    normalize_id,
    project_to_snapshot,
    task_to_snapshot,
    user_to_snapshot,
)

logger = logging.getLogger(__name__)


class SmartEngine:
    """
    Entry point for every Smart Engine operation.

    Args:
        store: Raw entity access. Operations that default to "all tasks" or
            "all users" need a store that also lists ids (``task_ids()``,
            ``user_ids()``), as ``InMemoryEntityStore`` does.
        edges: Edge lookup for the dependency resolver; built from every
            task in the store when omitted
        base_config: Deployment-wide overrides, applied before project settings
    """

    def __init__(
        self,
        store: EntityStore,
        edges: Optional[EdgeLookup] = None,
        base_config: Optional[Mapping] = None
    ):
        self.store = store
        self.base_config = base_config or {}
        self._edges = edges
        self._tasks: Dict[str, Optional[TaskSnapshot]] = {}
        self._users: Dict[str, Optional[UserSnapshot]] = {}
        self._projects: Dict[str, Optional[ProjectSnapshot]] = {}

    # ==================== Entity loading ====================

    def get_task(self, task_id: Any) -> Optional[TaskSnapshot]:
        task_id = normalize_id(task_id)
        if task_id is None:
            return None
        if task_id not in self._tasks:
            raw = self.store.get_task(task_id)
            self._tasks[task_id] = task_to_snapshot(raw) if raw is not None else None
        return self._tasks[task_id]

    def get_user(self, user_id: Any) -> Optional[UserSnapshot]:
        user_id = normalize_id(user_id)
        if user_id is None:
            return None
        if user_id not in self._users:
            raw = self.store.get_user(user_id)
            self._users[user_id] = user_to_snapshot(raw) if raw is not None else None
        return self._users[user_id]

    def get_project(self, project_id: Any) -> Optional[ProjectSnapshot]:
        project_id = normalize_id(project_id)
        if project_id is None:
            return None
        if project_id not in self._projects:
            raw = self.store.get_project(project_id)
            self._projects[project_id] = project_to_snapshot(raw) if raw is not None else None
        return self._projects[project_id]

    def task(self, task_id: Any) -> TaskSnapshot:
        task = self.get_task(task_id)
        if task is None:
            raise EntityNotFound('task', task_id)
        return task

    def user(self, user_id: Any) -> UserSnapshot:
        user = self.get_user(user_id)
        if user is None:
            raise EntityNotFound('user', user_id)
        return user

    def project(self, project_id: Any) -> ProjectSnapshot:
        project = self.get_project(project_id)
        if project is None:
            raise EntityNotFound('project', project_id)
        return project

    def all_tasks(self) -> List[TaskSnapshot]:
        return [self.task(task_id) for task_id in self._list_ids('task_ids')]

    def all_users(self) -> List[UserSnapshot]:
        return [self.user(user_id) for user_id in self._list_ids('user_ids')]

    def _list_ids(self, method: str) -> List[str]:
        lister = getattr(self.store, method, None)
        if lister is None:
            raise ValueError(f"The entity store cannot list entities ({method})")
        return list(lister())

    def _project_for(self, project_id: Any, task: Optional[TaskSnapshot] = None) -> Optional[ProjectSnapshot]:
        """An explicit project must exist; a task's own project is optional."""
        if project_id is not None:
            return self.project(project_id)
        if task is not None and task.project_id:
            return self.get_project(task.project_id)
        return None

    def config_for(self, project: Optional[ProjectSnapshot] = None) -> EngineConfig:
        return load_config(project.settings if project else None, base=self.base_config)

    # ==================== Dependency graph ====================

    @property
    def edges(self) -> EdgeLookup:
        if self._edges is None:
            self._edges = TaskGraph(self.all_tasks())
        return self._edges

    @property
    def resolver(self) -> DependencyResolver:
        return DependencyResolver(self.edges, tasks=self)

    # ==================== Priority ====================

    def calculate_priority(
        self,
        task_id: Any,
        project_id: Any = None,
        assignee_ids: Optional[Iterable[Any]] = None,
        now: Optional[datetime] = None,
        include_workload: bool = False
    ) -> priority.PriorityResult:
        """
        Priority for one task.

        The incomplete dependency count comes from the resolver; with
        ``include_workload`` the assignees' load ratios feed the workload
        factor.
        """
        task = self.task(task_id)
        project = self._project_for(project_id, task)
        assignees = self._assignees(assignee_ids, [task])
        config = self.config_for(project)

        factor = None
        if include_workload:
            factor = priority.workload_factor_for(task, self._workloads(assignees, config))

        return priority.calculate_priority(
            task,
            project=project,
            assignees=assignees,
            now=now,
            config=config,
            incomplete_dependency_count=self.resolver.incomplete_dependency_count(task),
            workload_factor=factor,
        )

    def calculate_priorities(
        self,
        task_ids: Iterable[Any],
        project_id: Any = None,
        now: Optional[datetime] = None,
        include_workload: bool = False
    ) -> List[priority.PriorityResult]:
        """Ranked priorities; the project defaults to the first task's."""
        tasks = [self.task(task_id) for task_id in task_ids]
        project = self._project_for(project_id, tasks[0] if tasks else None)
        assignees = self._assignees(None, tasks)
        config = self.config_for(project)

        resolver = self.resolver
        counts = {task.id: resolver.incomplete_dependency_count(task) for task in tasks}

        factors = None
        if include_workload:
            results = self._workloads(assignees, config)
            factors = {}
            for task in tasks:
                factor = priority.workload_factor_for(task, results)
                if factor is not None:
                    factors[task.id] = factor

        return priority.calculate_priorities(
            tasks,
            project=project,
            assignees=assignees,
            now=now,
            config=config,
            incomplete_dependency_counts=counts,
            workload_factors=factors,
        )

    def _assignees(
        self,
        assignee_ids: Optional[Iterable[Any]],
        tasks: Iterable[TaskSnapshot]
    ) -> List[UserSnapshot]:
        """Explicit assignees must exist; the tasks' own assignees may be unknown."""
        if assignee_ids is not None:
            return [self.user(user_id) for user_id in assignee_ids]

        ids: List[str] = []
        for task in tasks:
            ids.extend(user_id for user_id in sorted(task.assignees) if user_id not in ids)
        return [user for user in (self.get_user(user_id) for user_id in ids) if user]

    def _workloads(self, users: Iterable[UserSnapshot], config: EngineConfig) -> List[workload.WorkloadResult]:
        return workload.calculate_workloads(users, self.all_tasks(), config)

    # ==================== Workload ====================

    def calculate_workload(
        self,
        user_id: Any,
        task_ids: Optional[Iterable[Any]] = None
    ) -> workload.WorkloadResult:
        """Workload of one user over the given tasks (default: every task)."""
        user = self.user(user_id)
        tasks = self._tasks_or_all(task_ids)
        return workload.calculate_workload(user, tasks, self.config_for())

    def calculate_workloads(
        self,
        user_ids: Optional[Iterable[Any]] = None,
        task_ids: Optional[Iterable[Any]] = None,
        project_id: Any = None
    ) -> List[workload.WorkloadResult]:
        """
        Workloads for several users (default: every user).

        With ``project_id`` only that project's tasks count.
        """
        users = [self.user(user_id) for user_id in user_ids] if user_ids is not None else self.all_users()
        tasks = self._tasks_or_all(task_ids)
        if project_id is not None:
            project = self.project(project_id)
            tasks = [task for task in tasks if task.project_id == project.id]
        return workload.calculate_workloads(users, tasks, self.config_for())

    def _tasks_or_all(self, task_ids: Optional[Iterable[Any]]) -> List[TaskSnapshot]:
        if task_ids is None:
            return self.all_tasks()
        return [self.task(task_id) for task_id in task_ids]

    # ==================== Estimation ====================

    def estimate_time(
        self,
        task_id: Any,
        historical_ids: Optional[Iterable[Any]] = None,
        user_id: Any = None,
        project_id: Any = None
    ) -> estimation.EstimateResult:
        """
        Time estimate for one task.

        The assignee defaults to the task's first assignee (by id) and the
        history to every done task in the store.
        """
        task = self.task(task_id)
        project = self._project_for(project_id, task)

        if user_id is not None:
            user = self.user(user_id)
        elif task.assignees:
            user = self.get_user(sorted(task.assignees)[0])
        else:
            user = None

        if historical_ids is None:
            history = [t for t in self.all_tasks() if t.done and t.id != task.id]
        else:
            history = [self.task(historical_id) for historical_id in historical_ids]

        return estimation.estimate_time(task, history, user, project, self.config_for(project))

    # ==================== Duplicates ====================

    def detect_duplicates(
        self,
        task_ids: Optional[Iterable[Any]] = None,
        project_id: Any = None
    ) -> List[duplication.DuplicateResult]:
        """
        Duplicate groups among the given tasks.

        Without ``task_ids`` the project's tasks are checked, or every task
        when no project is given either.
        """
        project = self.project(project_id) if project_id is not None else None
        if task_ids is not None:
            tasks = [self.task(task_id) for task_id in task_ids]
        else:
            tasks = self.all_tasks()
            if project is not None:
                tasks = [task for task in tasks if task.project_id == project.id]
        if project is None and tasks:
            project = self._project_for(None, tasks[0])
        return duplication.detect_duplicates(tasks, self.config_for(project))

    # ==================== Dependencies ====================

    def analyze_dependency_impact(self, task_id: Any) -> DependencyImpact:
        task = self.task(task_id)
        return self.resolver.analyze_impact(task.id)

    def dependency_graph(self, task_id: Any, max_depth: Optional[int] = None) -> DependencyGraph:
        """Upstream/downstream graph; depth defaults to the project's setting."""
        task = self.task(task_id)
        if max_depth is None:
            max_depth = self.config_for(self._project_for(None, task)).dependency.max_depth
        return self.resolver.dependency_graph(task.id, max_depth)

    def validate_dependencies(self, task_id: Any, dependency_ids: Iterable[Any]) -> DependencyValidation:
        """
        Validate a task's full candidate dependency list.

        ``task_id`` may be None for a task that is being created.
        """
        return self.resolver.validate_dependencies(normalize_id(task_id), dependency_ids)

    def unblock_dependent_tasks(self, task_id: Any) -> UnblockReport:
        task = self.task(task_id)
        return self.resolver.unblock_dependent_tasks(task.id)
