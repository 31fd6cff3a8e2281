"""Pytest configuration for integration tests.

Integration tests talk to a real MongoDB (MONGO_URL_TEST) and are skipped
when it is not configured.
"""

import sys
from pathlib import Path

# Ensure the project root is on sys.path so `app` and `tests` packages resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
from tests.fixtures.redis_fixtures import *  # noqa: E402, F403
