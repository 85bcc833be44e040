"""
Tests for the priority engine.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from django.test import SimpleTestCase

from smart_engine.config import load_config
from smart_engine.priority import (
    calculate_priorities,
    calculate_priority,
    calculate_urgency,
    days_until_due,
    workload_factor_for,
)
from smart_engine.snapshots import project_to_snapshot, task_to_snapshot

NOW = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)


def make_task(task_id='t1', **fields):
    return task_to_snapshot({'id': task_id, 'title': f"Task {task_id}", **fields})


class BaselineTests(SimpleTestCase):
    """A task with no signals sits exactly on the baseline."""

    def test_baseline_score(self):
        result = calculate_priority(make_task(), now=NOW)

        self.assertEqual(result.score, 50)
        self.assertEqual(result.reasons, [])
        self.assertEqual(result.explanation, 'Standard priority based on default factors.')

    def test_factor_trace(self):
        result = calculate_priority(make_task(), now=NOW)
        names = [factor.factor for factor in result.factors]

        self.assertEqual(names, ['urgency', 'manual_priority'])
        self.assertEqual(result.to_dict()['factors'][1]['contribution'], 0)


class UrgencyTests(SimpleTestCase):
    """Tests for urgency and overdue scoring."""

    def test_due_now_high_priority_blocking(self):
        """Due now, high priority and two open dependencies."""
        task = make_task(priority='high', dueDate=NOW.isoformat())
        result = calculate_priority(task, now=NOW, incomplete_dependency_count=2)

        self.assertIn('due today', result.reasons)
        self.assertIn('blocks 2 tasks', result.reasons)
        self.assertEqual(result.score, 100)

    def test_urgency_decays_with_distance(self):
        config = load_config()
        soon = make_task(dueDate=(NOW + timedelta(days=1)).isoformat())
        later = make_task(dueDate=(NOW + timedelta(days=10)).isoformat())

        self.assertAlmostEqual(calculate_urgency(make_task(dueDate=NOW.isoformat()), NOW, config), 10.0)
        self.assertGreater(calculate_urgency(soon, NOW, config), calculate_urgency(later, NOW, config))

    def test_due_in_five_days(self):
        task = make_task(dueDate=(NOW + timedelta(days=5)).isoformat())
        result = calculate_priority(task, now=NOW)

        # 10 * e^-0.5 * 3 = 18.2
        self.assertEqual(result.score, 68)
        self.assertEqual(result.reasons, ['due in 5 days'])
        self.assertEqual(result.explanation, 'Priority based on: due in 5 days.')

    def test_overdue(self):
        task = make_task(dueDate=(NOW - timedelta(days=3, hours=2)).isoformat())
        result = calculate_priority(task, now=NOW)

        self.assertEqual(result.reasons, ['overdue by 3 days'])
        self.assertEqual(result.score, 100)

    def test_overdue_less_than_a_day(self):
        """Past due by hours: no urgency and no whole overdue day yet."""
        task = make_task(dueDate=(NOW - timedelta(hours=5)).isoformat())
        self.assertEqual(calculate_priority(task, now=NOW).score, 50)

    def test_done_task_has_no_urgency(self):
        task = make_task(dueDate=(NOW - timedelta(days=3)).isoformat(), done=True)

        self.assertIsNone(days_until_due(task, NOW))
        self.assertEqual(calculate_priority(task, now=NOW).score, 50)


class FactorTests(SimpleTestCase):
    """Tests for the remaining factors."""

    def test_low_manual_priority(self):
        result = calculate_priority(make_task(priority='low'), now=NOW)

        self.assertEqual(result.score, 34)
        self.assertEqual(result.reasons, ['manual priority: lowest'])

    def test_completion(self):
        result = calculate_priority(make_task(percentDone=40), now=NOW)

        self.assertEqual(result.score, 51)
        self.assertEqual(result.reasons, ['40% complete'])

    def test_workload_factor_needs_assignee(self):
        unassigned = calculate_priority(make_task(), now=NOW, workload_factor=2.0)
        assigned = calculate_priority(make_task(assignees=['u1']), now=NOW, workload_factor=2.0)

        self.assertEqual(unassigned.score, 50)
        self.assertEqual(assigned.score, 47)
        self.assertEqual(assigned.reasons, ['assignee overloaded'])

    def test_score_is_bounded(self):
        low = calculate_priority(
            make_task(priority='low', assignees=['u1']),
            now=NOW,
            workload_factor=30
        )
        high = calculate_priority(
            make_task(priority=5, dueDate=(NOW - timedelta(days=40)).isoformat()),
            now=NOW,
            incomplete_dependency_count=10
        )

        self.assertEqual(low.score, 0)
        self.assertEqual(high.score, 100)

    def test_project_settings_supply_config(self):
        project = project_to_snapshot({
            'id': 'p1',
            'settings': {'smart_engine': {'priority': {'weights': {'urgency': 0}}}}
        })
        task = make_task(dueDate=NOW.isoformat(), projectId='p1')

        self.assertEqual(calculate_priority(task, project=project, now=NOW).score, 50)


class RankingTests(SimpleTestCase):
    """Tests for calculate_priorities."""

    def test_sorted_descending_with_stable_ties(self):
        tasks = [
            make_task('a'),
            make_task('b', priority='high'),
            make_task('c'),
            make_task('d', priority='low'),
        ]
        results = calculate_priorities(tasks, now=NOW)

        self.assertEqual([r.task_id for r in results], ['b', 'a', 'c', 'd'])

    def test_dependency_counts_by_task(self):
        tasks = [make_task('a'), make_task('b')]
        results = calculate_priorities(tasks, now=NOW, incomplete_dependency_counts={'b': 1})

        self.assertEqual(results[0].task_id, 'b')
        self.assertEqual(results[0].score, 60)


class WorkloadFactorTests(SimpleTestCase):
    """Tests for workload_factor_for."""

    def test_mean_of_assignee_ratios(self):
        task = make_task(assignees=['u1', 'u2'])
        results = [
            SimpleNamespace(user_id='u1', load_ratio=1.2),
            SimpleNamespace(user_id='u2', load_ratio=0.4),
            SimpleNamespace(user_id='u3', load_ratio=3.0),
        ]

        self.assertAlmostEqual(workload_factor_for(task, results), 0.8)

    def test_no_matching_results(self):
        self.assertIsNone(workload_factor_for(make_task(assignees=['u9']), []))
