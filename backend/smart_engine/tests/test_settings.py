"""
Tests for environment-driven project settings.
"""

import importlib
import os
from unittest import mock

from django.test import SimpleTestCase

from task_engine import settings as project_settings


class DebugSwitchTests(SimpleTestCase):
    """DEBUG is off unless DJANGO_DEBUG turns it on."""

    def tearDown(self):
        importlib.reload(project_settings)

    def test_debug_off_by_default(self):
        env = {key: value for key, value in os.environ.items() if key != 'DJANGO_DEBUG'}
        with mock.patch.dict(os.environ, env, clear=True):
            module = importlib.reload(project_settings)
        self.assertFalse(module.DEBUG)

    def test_debug_enabled_from_environment(self):
        with mock.patch.dict(os.environ, {'DJANGO_DEBUG': 'true'}):
            module = importlib.reload(project_settings)
        self.assertTrue(module.DEBUG)
