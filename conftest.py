"""
Root pytest configuration.
Switches the settings to testing mode (in-memory SQLite, eager Celery) before
any application module is imported.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("JWT_SECRET", "test-secret")
