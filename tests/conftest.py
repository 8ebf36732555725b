# tests/conftest.py
from __future__ import annotations

import pytest

from db import SessionFactory, init_db, make_engine
from services.coordinator import Request, build_coordinator
from services.store import ResourceStore
from services.sync import Synchronizer
from settings import Settings

TEST_SETTINGS = Settings(
    database_url="sqlite://",
    secret="test-secret",
    token_ttl=3600,
)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return ResourceStore(SessionFactory(engine))


@pytest.fixture
def coordinator(engine):
    return build_coordinator(engine, TEST_SETTINGS, iterations=1000)


class Client:
    """Calls the coordinator on behalf of one signed-in user."""

    def __init__(self, coordinator, user: dict, token: str):
        self.coordinator = coordinator
        self.user = user
        self.token = token

    @property
    def id(self) -> int:
        return self.user["id"]

    def call(self, operation, target_id=None, **payload):
        return self.coordinator.execute(Request(operation, target_id, payload, self.token))


@pytest.fixture
def register(coordinator):
    def _register(name: str, email: str = None, password: str = "secret123", admin: bool = False) -> Client:
        email = email or f"{name.lower()}@example.com"
        result = coordinator.execute(Request("auth.register", payload={
            "name": name, "email": email, "password": password,
        }))
        assert result.ok, result.message
        if admin:
            coordinator.store.update_user(result.data["user"]["id"], {"role": "admin"})
            result = coordinator.execute(Request("auth.login", payload={"email": email, "password": password}))
            assert result.ok, result.message
        return Client(coordinator, result.data["user"], result.data["token"])
    return _register


@pytest.fixture
def alice(register):
    return register("Alice")


@pytest.fixture
def bob(register):
    return register("Bob")


@pytest.fixture
def admin(register):
    return register("Root", "admin@example.com", admin=True)


@pytest.fixture
def make_sync(coordinator):
    def _make(email: str, password: str = "secret123", storage=None) -> Synchronizer:
        sync = Synchronizer(coordinator, storage)
        outcome = sync.login(email, password)
        assert outcome.ok, outcome.message
        return sync
    return _make
