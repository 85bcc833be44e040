"""
Smart Engine Test Suite
=======================

Unit tests for every engine plus API tests for the REST endpoints.

Running Tests:
--------------
    # Run all smart engine tests
    python manage.py test smart_engine

    # Run one module
    python manage.py test smart_engine.tests.test_dependencies

    # Or through pytest-django from the repository root
    pytest
"""
