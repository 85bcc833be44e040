"""
Tests for configuration loading and per-project overrides.
"""

from django.test import SimpleTestCase

from smart_engine.config import DEFAULT_CONFIG, extract_overrides, load_config, validate_config_overrides
from smart_engine.errors import ErrorCode, InvalidConfiguration


class LoadConfigTests(SimpleTestCase):
    """Tests for load_config."""

    def test_defaults(self):
        config = load_config()

        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertEqual(config.priority.weights.urgency, 3.0)
        self.assertEqual(config.priority.weights.overdue, 10.0)
        self.assertEqual(config.priority.urgency_decay, 0.1)
        self.assertEqual(config.workload.overload_threshold, 1.0)
        self.assertEqual(config.estimation.min_samples, 3)
        self.assertTrue(config.estimation.use_median)
        self.assertEqual(config.duplication.similarity_threshold, 0.7)
        self.assertEqual(config.dependency.max_depth, 5)

    def test_nested_override_keeps_siblings(self):
        """Overriding one weight leaves every other value at its default."""
        config = load_config({'smart_engine': {'priority': {'weights': {'urgency': 6}}}})

        self.assertEqual(config.priority.weights.urgency, 6.0)
        self.assertEqual(config.priority.weights.dependencies, 5.0)
        self.assertEqual(config.priority.urgency_decay, 0.1)
        self.assertEqual(config.workload, DEFAULT_CONFIG.workload)

    def test_camel_case_settings(self):
        config = load_config({'smartEngine': {'priority': {'urgencyDecay': 0.2}}})
        self.assertEqual(config.priority.urgency_decay, 0.2)

    def test_bare_section_mapping(self):
        config = load_config({'workload': {'warning_threshold': 0.8}})
        self.assertEqual(config.workload.warning_threshold, 0.8)

    def test_unrelated_settings_ignored(self):
        self.assertEqual(extract_overrides({'theme': 'dark'}), {})
        self.assertEqual(load_config({'theme': 'dark'}), DEFAULT_CONFIG)

    def test_base_layer_applied_before_project(self):
        config = load_config(
            {'smart_engine': {'duplication': {'min_tokens': 4}}},
            base={'duplication': {'min_tokens': 2, 'similarity_threshold': 0.6}}
        )

        self.assertEqual(config.duplication.min_tokens, 4)
        self.assertEqual(config.duplication.similarity_threshold, 0.6)

    def test_integer_fields_stay_integers(self):
        config = load_config({'estimation': {'min_samples': 5.0}})
        self.assertEqual(config.estimation.min_samples, 5)
        self.assertIsInstance(config.estimation.min_samples, int)

    def test_unknown_key_logged_and_ignored(self):
        with self.assertLogs('smart_engine.config', level='WARNING') as logs:
            config = load_config({'priority': {'velocity': 3}})

        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIn('velocity', logs.output[0])

    def test_negative_value_rejected(self):
        with self.assertRaises(InvalidConfiguration) as ctx:
            load_config({'priority': {'weights': {'urgency': -1}}})

        self.assertEqual(ctx.exception.code, ErrorCode.ERR_INVALID_CONFIG)
        self.assertEqual(ctx.exception.field, 'smart_engine.priority.weights.urgency')

    def test_non_numeric_value_rejected(self):
        with self.assertRaises(InvalidConfiguration):
            load_config({'workload': {'overload_threshold': 'high'}})

    def test_boolean_field_requires_boolean(self):
        with self.assertRaises(InvalidConfiguration):
            load_config({'estimation': {'use_median': 1}})
        self.assertFalse(load_config({'estimation': {'use_median': False}}).estimation.use_median)

    def test_to_dict(self):
        data = load_config().to_dict()
        self.assertEqual(data['priority']['weights']['manual_priority'], 4.0)
        self.assertEqual(data['estimation']['confidence_thresholds']['high'], 0.8)


class ValidateConfigOverridesTests(SimpleTestCase):
    """Tests for validate_config_overrides."""

    def test_valid_overrides(self):
        self.assertEqual(validate_config_overrides({'priority': {'weights': {'urgency': 2}}}), [])
        self.assertEqual(validate_config_overrides(None), [])

    def test_one_error_per_section(self):
        errors = validate_config_overrides({
            'smart_engine': {
                'priority': {'weights': {'urgency': -1, 'overdue': 'lots'}},
                'workload': {'warning_threshold': -0.5},
            }
        })

        self.assertEqual(len(errors), 2)
        self.assertTrue(all(isinstance(e, InvalidConfiguration) for e in errors))

    def test_section_must_be_mapping(self):
        errors = validate_config_overrides({'priority': 5})
        self.assertEqual(len(errors), 1)
        self.assertIn('must be a mapping', errors[0].message)
