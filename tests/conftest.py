import os
import socket
import tempfile

# Keep test runs away from real keys, log files and the working directory
_scratch = tempfile.mkdtemp(prefix="mandalamind-tests-")
os.environ["ASSETS_DIR"] = os.path.join(_scratch, "attached_assets")
os.environ["LOG_DIR"] = os.path.join(_scratch, "logs")
os.environ["AI_PROVIDER"] = "local"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["OPENAI_API_KEY"] = ""
os.environ["OPENAI_API_KEY_ENV_VAR"] = ""
os.environ["GEMINI_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from mandalamind.main import create_app
from mandalamind.services.ai_base import LocalMandalaService
from mandalamind.services.neurosky_service import NeuroSkyConfig, NeuroSkyService
from mandalamind.services.openai_service import OpenAIService
from mandalamind.storage import MemStorage


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def no_sleep(_seconds):
    return None


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def storage():
    return MemStorage()


@pytest.fixture
def neurosky():
    # Nothing listens on this port, so the connector reads as "not running"
    return NeuroSkyService(NeuroSkyConfig(host="127.0.0.1", port=free_port()), probe_timeout=0.5)


@pytest.fixture
def ai_service():
    return LocalMandalaService(sleep=no_sleep)


@pytest.fixture
def make_client(storage, neurosky):
    clients = []

    def _make(ai=None):
        app = create_app(
            storage=storage,
            neurosky=neurosky,
            ai_service=ai if ai is not None else LocalMandalaService(sleep=no_sleep),
            sentiment_service=OpenAIService(api_key=None, sleep=no_sleep),
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()
