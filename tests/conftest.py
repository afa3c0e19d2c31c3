"""Shared pytest fixtures for the gateway tests."""
from unittest.mock import AsyncMock

import pytest

from gateway.broadcaster import LiveBroadcaster
from gateway.config import Settings
from gateway.models import CredentialStore, MessageStore

from helpers import ClientPool, FakeDatabase


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def sio():
    return AsyncMock()


@pytest.fixture
def broadcaster(sio):
    return LiveBroadcaster(sio)


@pytest.fixture
def store(db):
    return MessageStore(db)


@pytest.fixture
def credentials(db):
    return CredentialStore(db, "wagateway")


@pytest.fixture
def pool():
    return ClientPool()


@pytest.fixture
def settings():
    return Settings(
        webhook_test_url="http://hooks.test/test",
        webhook_prod_url="http://hooks.prod/prod",
        session_reset_delay=0,
        static_dir="/nonexistent-static-dir",
    )
