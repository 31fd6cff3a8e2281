import os
import sys
from pathlib import Path

# Keep the test run independent from a developer env.local
os.environ.update(
    {
        "DEBUG": "true",
        "INTERNAL_API_KEY": "test-internal-key",
        "SESSION_COOKIE_SECURE": "false",
        "LOGFIRE_ENABLE": "false",
    }
)

# Ensure the project root is on sys.path so `app` and `tests` packages resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from tests.fixtures.api_fixtures import *  # noqa: E402, F403
from tests.fixtures.owner_fixtures import *  # noqa: E402, F403
from tests.fixtures.redis_fixtures import *  # noqa: E402, F403
