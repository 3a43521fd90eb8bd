"""Configuration builders shared by unit and feature tests."""

from __future__ import annotations

import typing as typ

from hooksync.sync import RetryPolicy, SyncConfig

ENDPOINT = "https://hooks.example.test/users"
REALM_ID = "realm-1"
USER_ID = "user-1"


def fast_config(**overrides: typ.Any) -> SyncConfig:  # noqa: ANN401
    """Return a config pointed at the test endpoint with a short retry delay."""
    values: dict[str, typ.Any] = {
        "endpoint": ENDPOINT,
        "auth_token": "s3cret",
        "worker_count": 2,
        "retry": RetryPolicy(enabled=True, max_attempts=3, delay_s=0.01),
    }
    values.update(overrides)
    return SyncConfig(**values)
