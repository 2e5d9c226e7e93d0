import os

# must be set before breathewell modules read their config
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["REMOTE_TIMEOUT_SECONDS"] = "2"
os.environ["STREAM_RETRY_BASE_SECONDS"] = "0.01"
os.environ["STREAM_RETRY_MAX_SECONDS"] = "0.05"

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from breathewell.controllers.chat_controller import ChatScreen
from breathewell.controllers.forum_controller import ForumScreen
from breathewell.models.auth import Principal
from breathewell.services.auth_session import AuthSession

from fakes import FakeDocumentStore


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def alice():
    return Principal(uid="uid-alice", display_name="Alice", email="alice@example.com")


@pytest.fixture
def bob():
    return Principal(uid="uid-bob", display_name="Bob", email="bob@example.com")


@pytest.fixture
def profiles():
    return AsyncMongoMockClient()["breathewell_test"]["profiles"]


@pytest_asyncio.fixture
async def forum(store, alice):
    screen = ForumScreen(store, AuthSession(alice))
    yield screen
    await screen.close()


@pytest_asyncio.fixture
async def chat(store, alice):
    screen = ChatScreen(store, AuthSession(alice), page_size=3)
    yield screen
    await screen.close()
