"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import pytest

from tests.helpers.directory import FakeRealm, FakeUser, StaticDirectory
from tests.helpers.events import EventFactory, build_event
from tests.helpers.settings import REALM_ID, USER_ID


@pytest.fixture
def make_event() -> EventFactory:
    """Return a factory for raw identity events."""
    return build_event


@pytest.fixture
def directory() -> StaticDirectory:
    """Return a directory with one realm and one user."""
    store = StaticDirectory()
    realm = store.add_realm(FakeRealm(id=REALM_ID, name="acme"))
    store.add_user(
        realm,
        FakeUser(
            id=USER_ID,
            username="ada",
            email="ada@example.test",
            first_name="Ada",
            last_name="Lovelace",
            attributes={
                "department": ["engineering", "research"],
                "phone": ["+44 20 7946 0000"],
            },
        ),
    )
    return store
