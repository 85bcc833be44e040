"""
Tests for the explanation builder.
"""

from datetime import datetime, timezone

from django.test import SimpleTestCase

from smart_engine.explanation import (
    NEGATIVE,
    POSITIVE,
    Factor,
    build_explanation,
    describe_priority_factor,
    format_score,
)


class BuildExplanationTests(SimpleTestCase):
    """Tests for build_explanation."""

    def test_empty_factors(self):
        self.assertEqual(build_explanation('priority', []), 'No factors available.')
        self.assertEqual(build_explanation('workload', None), 'No factors available.')

    def test_priority_without_signals(self):
        factors = [Factor('urgency', None), Factor('manual_priority', 3)]
        self.assertEqual(
            build_explanation('priority', factors),
            'Standard priority based on default factors.'
        )

    def test_priority_reasons(self):
        factors = [
            Factor('urgency', 0.5, POSITIVE),
            Factor('blocking', 2, POSITIVE),
            Factor('manual_priority', 1, NEGATIVE),
        ]
        self.assertEqual(
            build_explanation('priority', factors),
            'Priority based on: due today, blocks 2 tasks, manual priority: lowest.'
        )

    def test_workload_overload(self):
        factors = [Factor('status', 'overload'), Factor('load', 2640), Factor('capacity', 2400)]
        self.assertEqual(
            build_explanation('workload', factors),
            'Overloaded: 110% capacity used (2640 min / 2400 min per week).'
        )

    def test_workload_missing_entries(self):
        """Missing optional entries degrade to a completion message."""
        self.assertEqual(
            build_explanation('workload', [Factor('status', 'balanced')]),
            'Workload analysis completed.'
        )

    def test_estimate(self):
        factors = [
            Factor('estimate', 90, '90 minutes'),
            Factor('confidence', 0.3, 'low'),
            Factor('based_on', ['fallback']),
        ]
        self.assertEqual(
            build_explanation('estimate', factors),
            'Estimated 1.5 hours (low confidence based on fallback).'
        )

    def test_dependency(self):
        none = [Factor('impact', 'none'), Factor('affected_tasks', 0)]
        some = [Factor('impact', 'medium', 'medium'), Factor('affected_tasks', 3)]

        self.assertEqual(build_explanation('dependency', none), 'No other tasks depend on this task.')
        self.assertEqual(
            build_explanation('dependency', some),
            'If delayed, affects 3 tasks (medium impact).'
        )

    def test_duplicate(self):
        factors = [Factor('similarity', 0.8), Factor('matches', 1)]
        self.assertEqual(build_explanation('duplicate', factors), '80% similar to 1 other task.')

    def test_malformed_values_do_not_raise(self):
        factors = [Factor('status', 'overload'), Factor('load', 'lots'), Factor('capacity', 2400)]
        self.assertEqual(build_explanation('workload', factors), 'Workload analysis completed.')

    def test_unknown_kind_joins_factors(self):
        factors = [{'factor': 'a', 'impact': 'up'}, {'factor': 'b', 'impact': 'down'}]
        self.assertEqual(build_explanation('custom', factors), 'a: up; b: down')


class DescribeFactorTests(SimpleTestCase):
    """Tests for the priority reason clauses."""

    def test_clauses(self):
        self.assertEqual(describe_priority_factor(Factor('urgency', 1.5)), 'due tomorrow')
        self.assertEqual(describe_priority_factor(Factor('urgency', 4.7)), 'due in 4 days')
        self.assertEqual(describe_priority_factor(Factor('overdue', 1)), 'overdue by 1 day')
        self.assertEqual(describe_priority_factor(Factor('completion', 40)), '40% complete')
        self.assertEqual(describe_priority_factor(Factor('workload', 1.4)), 'assignee overloaded')
        self.assertEqual(describe_priority_factor(Factor('workload', 0.4)), 'assignee available')


class FormatScoreTests(SimpleTestCase):

    def test_format_score(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(
            format_score(72, 'Priority based on: due today.', now),
            {'score': 72, 'explanation': 'Priority based on: due today.', 'timestamp': now.isoformat()}
        )
