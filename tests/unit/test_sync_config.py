"""Unit tests for SyncConfig parsing and snapshot merging."""

from __future__ import annotations

import pytest

from hooksync.sync import (
    AuthType,
    EventType,
    RetryPolicy,
    SyncConfig,
    SyncConfigError,
    load_env_defaults,
    merge_snapshots,
    realm_overrides,
)
from hooksync.sync.config import SNAPSHOT_KEYS, env_var_for


class TestSyncConfigDefaults:
    """Tests for directly constructed configurations."""

    def test_defaults_match_documented_values(self) -> None:
        """A bare config uses the documented defaults and is disabled."""
        config = SyncConfig()

        assert config.endpoint is None
        assert not config.is_enabled
        assert config.auth_type is AuthType.BEARER
        assert config.connect_timeout_s == 10
        assert config.read_timeout_s == 30
        assert config.worker_count == 5
        assert config.retry == RetryPolicy(enabled=True, max_attempts=3, delay_s=5)
        assert config.event_types == frozenset()
        assert config.client_ids == frozenset()

    def test_headers_are_read_only(self) -> None:
        """Static headers cannot be mutated after construction."""
        source = {"X-Tenant": "acme"}
        config = SyncConfig(headers=source)
        source["X-Tenant"] = "changed"

        assert config.headers["X-Tenant"] == "acme"
        with pytest.raises(TypeError):
            config.headers["X-Other"] = "value"  # type: ignore[index]

    def test_blank_endpoint_is_disabled(self) -> None:
        """Whitespace endpoints disable delivery."""
        assert not SyncConfig(endpoint="   ").is_enabled

    @pytest.mark.parametrize(
        "kwargs",
        [
            pytest.param({"worker_count": 0}, id="zero_workers"),
            pytest.param({"connect_timeout_s": 0}, id="zero_connect_timeout"),
            pytest.param({"read_timeout_s": -1}, id="negative_read_timeout"),
        ],
    )
    def test_invalid_values_raise(self, kwargs: dict[str, float]) -> None:
        """Constructed configs enforce their numeric invariants."""
        with pytest.raises(SyncConfigError):
            SyncConfig(**kwargs)  # type: ignore[arg-type]

    def test_negative_retry_budget_raises(self) -> None:
        """Retry policies reject negative attempt counts."""
        with pytest.raises(SyncConfigError):
            RetryPolicy(max_attempts=-1)

    @pytest.mark.parametrize(
        ("policy", "expected"),
        [
            (RetryPolicy(enabled=True, max_attempts=3), 3),
            (RetryPolicy(enabled=False, max_attempts=3), 0),
            (RetryPolicy(enabled=True, max_attempts=0), 0),
        ],
    )
    def test_retry_budget(self, policy: RetryPolicy, expected: int) -> None:
        """Disabled retries leave no budget regardless of max_attempts."""
        assert policy.retry_budget == expected


class TestSyncConfigFromMapping:
    """Tests for lenient snapshot parsing."""

    def test_full_snapshot(self) -> None:
        """Every recognised key is parsed into its typed field."""
        config = SyncConfig.from_mapping(
            {
                "apiEndpoint": " https://hooks.example.test/users ",
                "apiToken": "tok",
                "apiAuthType": "Bearer",
                "clientIds": "web-app, mobile ,,",
                "eventTypes": "login, update_profile",
                "additionalAttributes": "department,phone,department",
                "apiHeaders": "X-Tenant: acme, X-Trace:on:off",
                "connectionTimeout": "3",
                "readTimeout": "7",
                "threadPoolSize": "8",
                "retryEnabled": "false",
                "maxRetries": "2",
                "retryDelay": "1",
            }
        )

        assert config.endpoint == "https://hooks.example.test/users"
        assert config.auth_token == "tok"
        assert config.client_ids == frozenset({"web-app", "mobile"})
        assert config.event_types == frozenset(
            {EventType.LOGIN, EventType.UPDATE_PROFILE}
        )
        assert config.extra_attributes == ("department", "phone")
        assert dict(config.headers) == {"X-Tenant": "acme", "X-Trace": "on:off"}
        assert config.connect_timeout_s == 3
        assert config.read_timeout_s == 7
        assert config.worker_count == 8
        assert config.retry == RetryPolicy(enabled=False, max_attempts=2, delay_s=1)

    def test_unknown_event_types_are_ignored(self) -> None:
        """Unrecognised event type names are dropped, not errors."""
        config = SyncConfig.from_mapping({"eventTypes": "REGISTER,NOT_A_TYPE"})
        assert config.event_types == frozenset({EventType.REGISTER})

    def test_malformed_headers_are_ignored(self) -> None:
        """Header entries without a colon or name are skipped."""
        config = SyncConfig.from_mapping({"apiHeaders": "novalue, :empty, A:1"})
        assert dict(config.headers) == {"A": "1"}

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            pytest.param("abc", 5, id="non_integer"),
            pytest.param("0", 5, id="below_minimum"),
            pytest.param("", 5, id="blank"),
            pytest.param(None, 5, id="missing"),
            pytest.param("12", 12, id="valid"),
        ],
    )
    def test_thread_pool_size_falls_back_to_default(
        self, raw: str | None, expected: int
    ) -> None:
        """Invalid worker counts fall back to the default instead of raising."""
        config = SyncConfig.from_mapping({"threadPoolSize": raw})
        assert config.worker_count == expected

    def test_zero_retries_are_allowed(self) -> None:
        """A retry count of zero is within range."""
        config = SyncConfig.from_mapping({"maxRetries": "0"})
        assert config.retry.max_attempts == 0

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("TRUE", True),
            ("no", False),
            ("0", False),
            ("maybe", False),
            ("  ", True),
        ],
    )
    def test_retry_enabled_parsing(self, raw: str, *, expected: bool) -> None:
        """Booleans are case-insensitive; blank keeps the default, garbage is false."""
        config = SyncConfig.from_mapping({"retryEnabled": raw})
        assert config.retry.enabled is expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, AuthType.BEARER),
            ("bearer", AuthType.BEARER),
            ("None", AuthType.NONE),
            ("Basic", AuthType.RAW),
            ("raw", AuthType.RAW),
        ],
    )
    def test_auth_type_parsing(self, raw: str | None, expected: AuthType) -> None:
        """Non-bearer, non-none auth types present the token verbatim."""
        assert SyncConfig.from_mapping({"apiAuthType": raw}).auth_type is expected


class TestSnapshotSources:
    """Tests for environment defaults and realm overrides."""

    def test_env_var_names(self) -> None:
        """Snapshot keys map to upper snake case variables."""
        assert env_var_for("apiEndpoint") == "HOOKSYNC_API_ENDPOINT"
        assert env_var_for("threadPoolSize") == "HOOKSYNC_THREAD_POOL_SIZE"

    def test_load_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables feed the default snapshot."""
        for key in SNAPSHOT_KEYS:
            monkeypatch.delenv(env_var_for(key), raising=False)
        monkeypatch.setenv("HOOKSYNC_API_ENDPOINT", "https://env.example.test")
        monkeypatch.setenv("HOOKSYNC_MAX_RETRIES", "1")

        defaults = load_env_defaults()
        config = SyncConfig.from_env()

        assert set(defaults) == set(SNAPSHOT_KEYS)
        assert defaults["apiEndpoint"] == "https://env.example.test"
        assert config.retry.max_attempts == 1

    def test_realm_overrides_win(self) -> None:
        """Realm attributes override defaults; unset attributes do not."""
        defaults = {"apiEndpoint": "https://default.test", "maxRetries": "3"}
        overrides = realm_overrides(
            {
                "hooksync.apiEndpoint": "https://tenant.test",
                "hooksync.maxRetries": None,
                "unrelated": "ignored",
            }
        )

        merged = merge_snapshots(defaults, overrides)

        assert overrides == {"apiEndpoint": "https://tenant.test"}
        assert merged == {"apiEndpoint": "https://tenant.test", "maxRetries": "3"}
