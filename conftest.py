"""
Root conftest.py for pytest configuration

Pins the environment before any application module reads settings and
registers the markers used across the suite.
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["QUEUE_BACKEND"] = "memory"
os.environ["STORE_BACKEND"] = "memory"
os.environ.setdefault("ENABLE_SEMANTIC_CHECK", "false")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("PROXY_LIST", None)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated unit tests")
    config.addinivalue_line("markers", "critical: core behaviour that must never regress")
