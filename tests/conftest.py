import asyncio
import base64
import inspect
import os
import sys
from pathlib import Path

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("MOCK_CREDENTIALS", "testuser:testpass,adminusr:adminpas")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from cmcimock.service.runtime import reset_runtime_for_tests  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


def basic_auth(username: str, password: str) -> dict:
    encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {encoded}"}


@pytest.fixture
def testuser_auth():
    return basic_auth("testuser", "testpass")


@pytest.fixture
def adminusr_auth():
    return basic_auth("adminusr", "adminpas")


@pytest.fixture
def wrong_password_auth():
    return basic_auth("testuser", "wrongpass")


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None
