import sys
from pathlib import Path

import pytest
import pytest_asyncio
import structlog

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from source_ballchasing.config import SourceSettings
from source_ballchasing.fetcher import Fetcher
from tests.mocks import MOCK_TOKEN, MockBallchasing


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for name in ("BALLCHASING_API_ROOT", "BALLCHASING_REQUEST_INTERVAL", "BALLCHASING_REQUEST_TIMEOUT",
                 "BALLCHASING_PAGE_SIZE", "BALLCHASING_JSON_LOGS", "BALLCHASING_VERBOSE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_logging():
    # configure_logging swaps in a new processor list; loggers cached under the
    # old one would no longer be seen by capture_logs in later tests
    saved = structlog.get_config()
    yield
    structlog.configure(**saved)


@pytest.fixture
def settings() -> SourceSettings:
    return SourceSettings(request_interval=0.001)


@pytest.fixture
def api() -> MockBallchasing:
    return MockBallchasing()


@pytest_asyncio.fixture
async def fetcher(api, settings):
    async with Fetcher(MOCK_TOKEN, settings, transport=api.transport()) as client:
        yield client
