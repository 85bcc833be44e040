"""
Tests for the SmartEngine facade over an in-memory entity store.
"""

from datetime import datetime, timezone

from django.test import SimpleTestCase

from smart_engine.dependencies import TaskGraph
from smart_engine.errors import EntityNotFound, SelfDependency
from smart_engine.service import SmartEngine
from smart_engine.snapshots import InMemoryEntityStore, task_to_snapshot

NOW = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)

TASKS = [
    {'_id': 't1', 'title': 'Design database schema', 'project': 'p1', 'assignedTo': ['u1'],
     'estimatedTime': 1500, 'completed': True, 'actualTime': 1400, 'labels': ['backend']},
    {'_id': 't2', 'title': 'Implement user login page', 'project': 'p1', 'assignedTo': ['u1'],
     'estimatedTime': 1200, 'dependencies': ['t1', 't3'], 'labels': ['backend']},
    {'_id': 't3', 'title': 'Set up CI pipeline', 'project': 'p1', 'assignedTo': ['u2'],
     'estimatedTime': 300},
    {'_id': 't4', 'title': 'Implement user login page styles', 'project': 'p1',
     'dependencies': ['t2']},
    {'_id': 't5', 'title': 'Write launch announcement post', 'project': 'p2', 'assignedTo': ['u2'],
     'estimatedTime': 60},
]

USERS = [
    {'_id': 'u1', 'firstName': 'Ada', 'lastName': 'Lovelace', 'weeklyCapacity': 1000},
    {'_id': 'u2', 'username': 'grace', 'weeklyCapacity': 2400},
]

PROJECTS = [
    {'_id': 'p1', 'name': 'Platform'},
    {'_id': 'p2', 'name': 'Marketing', 'settings': {'smart_engine': {'duplication': {'min_tokens': 2}}}},
]


def make_engine(**kwargs):
    return SmartEngine(InMemoryEntityStore(TASKS, USERS, PROJECTS), **kwargs)


class EntityLoadingTests(SimpleTestCase):
    """Tests for snapshot loading through the facade."""

    def test_snapshots_are_cached(self):
        engine = make_engine()
        self.assertIs(engine.task('t1'), engine.task('t1'))

    def test_missing_entities(self):
        engine = make_engine()

        with self.assertRaises(EntityNotFound) as ctx:
            engine.task('nope')
        self.assertEqual(ctx.exception.message, 'Task not found: nope')
        with self.assertRaises(EntityNotFound):
            engine.user('nope')
        self.assertIsNone(engine.get_project('nope'))

    def test_base_config_applied_before_project(self):
        engine = make_engine(base_config={'duplication': {'min_tokens': 5}})

        self.assertEqual(engine.config_for().duplication.min_tokens, 5)
        self.assertEqual(engine.config_for(engine.project('p2')).duplication.min_tokens, 2)


class PriorityFacadeTests(SimpleTestCase):
    """Tests for priority through the facade."""

    def test_dependency_count_resolved(self):
        """t2 waits on t3 (open); t1 is done."""
        result = make_engine().calculate_priority('t2', now=NOW)

        self.assertIn('blocks 1 task', result.reasons)
        self.assertEqual(result.score, 60)

    def test_workload_opt_in(self):
        """u1 carries 1200 open minutes against 1000 capacity."""
        engine = make_engine()
        plain = engine.calculate_priority('t2', now=NOW)
        weighted = engine.calculate_priority('t2', now=NOW, include_workload=True)

        self.assertLess(weighted.score, plain.score)
        self.assertIn('assignee overloaded', weighted.reasons)

    def test_explicit_missing_assignee(self):
        with self.assertRaises(EntityNotFound):
            make_engine().calculate_priority('t2', assignee_ids=['ghost'])

    def test_ranked_priorities(self):
        """t2 and t4 each wait on one open task and tie; ties keep request order."""
        results = make_engine().calculate_priorities(['t3', 't2', 't4'], now=NOW)

        self.assertEqual([r.task_id for r in results], ['t2', 't4', 't3'])
        self.assertEqual([r.score for r in results], [60, 60, 50])


class WorkloadFacadeTests(SimpleTestCase):

    def test_single_user(self):
        result = make_engine().calculate_workload('u1')

        self.assertEqual(result.user_name, 'Ada Lovelace')
        self.assertEqual(result.weekly_load, 1200)
        self.assertEqual(result.status, 'overload')

    def test_all_users_in_project(self):
        results = make_engine().calculate_workloads(project_id='p2')

        self.assertEqual([r.user_id for r in results], ['u1', 'u2'])
        self.assertEqual(results[0].weekly_load, 0)
        self.assertEqual(results[1].weekly_load, 60)


class EstimateFacadeTests(SimpleTestCase):

    def test_defaults_to_first_assignee_and_store_history(self):
        result = make_engine().estimate_time('t2')

        self.assertEqual(result.based_on, ['fallback'])
        self.assertEqual(result.estimated_minutes, 90)

    def test_explicit_history(self):
        result = make_engine().estimate_time('t2', historical_ids=['t1'], user_id='u1')
        self.assertEqual(result.sample_size, 0)


class DuplicateFacadeTests(SimpleTestCase):

    def test_project_tasks(self):
        results = make_engine().detect_duplicates(project_id='p1')
        self.assertEqual([r.task_id for r in results], ['t2', 't4'])

    def test_selected_tasks(self):
        self.assertEqual(make_engine().detect_duplicates(task_ids=['t2', 't3']), [])


class DependencyFacadeTests(SimpleTestCase):

    def test_impact(self):
        impact = make_engine().analyze_dependency_impact('t1')

        self.assertEqual(impact.impact.direct, ['t2'])
        self.assertEqual(impact.impact.indirect, ['t4'])

    def test_graph_uses_configured_depth(self):
        engine = make_engine(base_config={'dependency': {'max_depth': 1}})
        graph = engine.dependency_graph('t4')

        self.assertEqual([entry.task_id for entry in graph.upstream], ['t2'])
        self.assertEqual(graph.max_depth, 1)

    def test_validate(self):
        engine = make_engine()

        self.assertTrue(engine.validate_dependencies('t3', ['t1']).valid)
        self.assertIsInstance(engine.validate_dependencies('t1', ['t1']).error, SelfDependency)
        self.assertFalse(engine.validate_dependencies('t1', ['t4']).valid)

    def test_unblock(self):
        report = make_engine().unblock_dependent_tasks('t3')
        self.assertEqual(report.unblocked, ['t2'])

    def test_explicit_edge_lookup(self):
        graph = TaskGraph([task_to_snapshot(task) for task in TASKS[:2]])
        engine = make_engine(edges=graph)

        self.assertEqual(engine.analyze_dependency_impact('t1').impact.all, ['t2'])
