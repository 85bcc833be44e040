"""
Tests for the workload engine.
"""

from django.test import SimpleTestCase

from smart_engine.config import load_config
from smart_engine.snapshots import task_to_snapshot, user_to_snapshot
from smart_engine.workload import (
    STATUS_COLORS,
    calculate_workload,
    calculate_workloads,
    determine_workload_status,
    workload_heatmap,
)


def make_user(user_id='u1', capacity=2400):
    return user_to_snapshot({'id': user_id, 'name': f"User {user_id}", 'weeklyCapacity': capacity})


def make_task(task_id, minutes, assignees=('u1',), done=False):
    return task_to_snapshot({
        'id': task_id,
        'estimatedTime': minutes,
        'assignedTo': list(assignees),
        'completed': done,
    })


class WorkloadStatusTests(SimpleTestCase):
    """Tests for determine_workload_status."""

    def setUp(self):
        self.config = load_config()

    def test_thresholds(self):
        self.assertEqual(determine_workload_status(1.0, self.config), 'overload')
        self.assertEqual(determine_workload_status(0.9, self.config), 'warning')
        self.assertEqual(determine_workload_status(0.6, self.config), 'balanced')
        self.assertEqual(determine_workload_status(0.3, self.config), 'underutilized')
        self.assertEqual(determine_workload_status(0.0, self.config), 'underutilized')

    def test_configured_thresholds(self):
        config = load_config({'workload': {'overload_threshold': 1.5, 'warning_threshold': 1.2}})
        self.assertEqual(determine_workload_status(1.1, config), 'balanced')
        self.assertEqual(determine_workload_status(1.3, config), 'warning')


class CalculateWorkloadTests(SimpleTestCase):
    """Tests for calculate_workload."""

    def test_overload(self):
        """2640 minutes against a 2400 minute week is 110%."""
        tasks = [make_task('a', 1320), make_task('b', 1320)]
        result = calculate_workload(make_user(), tasks)

        self.assertEqual(result.weekly_load, 2640)
        self.assertEqual(result.load_percentage, 110)
        self.assertEqual(result.status, 'overload')
        self.assertEqual(result.warnings, ['User is overloaded: 110% capacity used'])
        self.assertEqual(result.suggestions, ['Consider reassigning some tasks or extending deadlines'])
        self.assertEqual(
            result.explanation,
            'Overloaded: 110% capacity used (2640 min / 2400 min per week).'
        )

    def test_only_open_assigned_tasks_count(self):
        tasks = [
            make_task('a', 600),
            make_task('b', 600, done=True),
            make_task('c', 600, assignees=('u2',)),
            task_to_snapshot({'id': 'd', 'assignedTo': ['u1']}),
        ]
        result = calculate_workload(make_user(), tasks)

        self.assertEqual(result.weekly_load, 600)
        self.assertEqual(result.assigned_task_count, 2)
        self.assertEqual(result.load_percentage, 25)

    def test_warning(self):
        result = calculate_workload(make_user(), [make_task('a', 2200)])

        self.assertEqual(result.status, 'warning')
        self.assertEqual(result.warnings, ['User is approaching capacity: 92% capacity used'])
        self.assertEqual(result.suggestions, [])

    def test_underutilized(self):
        result = calculate_workload(make_user(), [])

        self.assertEqual(result.status, 'underutilized')
        self.assertEqual(result.warnings, [])
        self.assertEqual(
            result.suggestions,
            ['User is underutilized: 0% capacity used. Consider assigning more tasks.']
        )

    def test_balanced(self):
        result = calculate_workload(make_user(), [make_task('a', 1200)])

        self.assertEqual(result.status, 'balanced')
        self.assertEqual(result.explanation, 'Balanced workload: 50% capacity used.')

    def test_to_dict(self):
        data = calculate_workload(make_user(), [make_task('a', 1200)]).to_dict()

        self.assertEqual(data['user_id'], 'u1')
        self.assertEqual(data['user_name'], 'User u1')
        self.assertEqual(data['capacity'], 2400)
        self.assertEqual(data['load_percentage'], 50)


class MultiUserTests(SimpleTestCase):
    """Tests for calculate_workloads and the heatmap."""

    def test_workloads_and_heatmap(self):
        users = [make_user('u1'), make_user('u2', capacity=600)]
        tasks = [make_task('a', 1200, assignees=('u1', 'u2'))]

        results = calculate_workloads(users, tasks)
        heatmap = workload_heatmap(results)

        self.assertEqual([r.status for r in results], ['balanced', 'overload'])
        self.assertEqual(heatmap[0]['color'], STATUS_COLORS['balanced'])
        self.assertEqual(heatmap[1]['color'], '#EF4444')
        self.assertEqual(heatmap[1]['load_percentage'], 200)
