"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# The engine is built at import time; point it at a throwaway SQLite file
os.environ.setdefault(
    "DATABASE__URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="checkout-tests-"), "test.db"),
)
os.environ.setdefault("DEBUG", "false")
