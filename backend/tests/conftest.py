import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest


# Allow `from docbridge...` imports when running tests from repo root.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Keep execution logs out of the developer database; must be set before docbridge.core.db is imported.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="docbridge-tests-")
os.environ["DOCBRIDGE_DATABASE_URL"] = f"sqlite:///{Path(_TEST_DB_DIR) / 'docbridge.db'}"
os.environ.pop("DOCBRIDGE_SERVICE_API_TOKEN", None)


@pytest.fixture(scope="session", autouse=True)
def _schema():
    from docbridge.core.db import create_all

    create_all()


@pytest.fixture
def make_bridge():
    """Build an isolated bridge with short timeouts; stores are fresh per call."""
    from docbridge.core.config import Settings
    from docbridge.services.bridge import ExecutionBridge, build_bridge_state

    def _make(log_service=None, **overrides):
        values = {
            "result_timeout_seconds": 2.0,
            "result_poll_interval_seconds": 0.02,
            "heartbeat_interval_seconds": 0.05,
        }
        values.update(overrides)
        settings = Settings(**values)
        return ExecutionBridge(build_bridge_state(settings), settings, log_service=log_service)

    return _make


async def wait_for_pending(bridge, count: int = 1, timeout: float = 1.0):
    """Poll the store until `count` tasks are pending (the execute call runs concurrently)."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        tasks = bridge.pending_tasks()
        if len(tasks) >= count:
            return tasks
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} pending task(s), found {len(bridge.pending_tasks())}")
