"""
Pytest bootstrap for running Django tests without pytest-django.

This project uses Django's `SimpleTestCase` classes; all state lives in the
cache-backed key-value store, so no test database is created. When running
tests via `pytest` directly, we must:
- set `DJANGO_SETTINGS_MODULE`
- call `django.setup()`
- install the Django test environment (locmem email, test runner hooks)
"""

import os

import django
from django.test.utils import setup_test_environment, teardown_test_environment


def pytest_configure():
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
    django.setup()


def pytest_sessionstart(session):
    setup_test_environment()


def pytest_sessionfinish(session, exitstatus):
    teardown_test_environment()
