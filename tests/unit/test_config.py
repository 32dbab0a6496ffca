"""
Unit tests for configuration.
"""

import pytest

from whistle.config import (
    DEFAULT_DENOMINATIONS,
    LAMPORTS_PER_SOL,
    WhistleConfig,
    get_global_config,
    set_global_config,
)
from whistle.errors import ConfigurationError
from whistle.logging import (
    LogConfig,
    LogLevel,
    MemoryHandler,
    get_logger,
    get_manager,
    setup_logging,
    shutdown_logging,
)

ENV_VARS = (
    "WHISTLE_MERKLE_DEPTH",
    "WHISTLE_ROOT_HISTORY",
    "WHISTLE_NULLIFIER_CAPACITY",
    "WHISTLE_CIRCUIT_NAME",
    "WHISTLE_MAX_ARTIFACT_SIZE",
    "WHISTLE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    set_global_config(None)
    shutdown_logging()


class TestWhistleConfig:
    """Test the WhistleConfig class."""

    def test_defaults(self):
        """Test default values."""
        config = WhistleConfig()
        config.validate()
        assert config.merkle_depth == 20
        assert config.root_history_size == 30
        assert config.nullifier_capacity == 256
        assert config.allowed_denominations == DEFAULT_DENOMINATIONS
        assert DEFAULT_DENOMINATIONS == (LAMPORTS_PER_SOL, 10 * LAMPORTS_PER_SOL, 100 * LAMPORTS_PER_SOL)
        assert config.circuit_name == "withdraw_merkle"
        assert config.max_artifact_size == 50 * 1024 * 1024
        assert config.tree_capacity == 2**20

    def test_environment_overrides(self, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("WHISTLE_MERKLE_DEPTH", "10")
        monkeypatch.setenv("WHISTLE_LOG_LEVEL", "debug")
        config = WhistleConfig()
        assert config.merkle_depth == 10
        assert config.log_level == "debug"
        assert config.environment_overrides == {"WHISTLE_MERKLE_DEPTH": 10, "WHISTLE_LOG_LEVEL": "debug"}

    def test_invalid_environment_value(self, monkeypatch):
        """Test a non-integer override is a configuration error."""
        monkeypatch.setenv("WHISTLE_NULLIFIER_CAPACITY", "many")
        with pytest.raises(ConfigurationError) as exc_info:
            WhistleConfig()
        assert exc_info.value.config_key == "WHISTLE_NULLIFIER_CAPACITY"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"merkle_depth": 0},
            {"merkle_depth": 33},
            {"root_history_size": 0},
            {"nullifier_capacity": 0},
            {"nullifier_capacity": 65536},
            {"allowed_denominations": ()},
            {"allowed_denominations": (0,)},
            {"allowed_denominations": (2**64,)},
            {"circuit_name": "../etc"},
            {"artifact_extension": "zkey"},
            {"max_artifact_size": 0},
            {"log_level": "loud"},
        ],
    )
    def test_validation(self, overrides):
        """Test out-of-range values are rejected."""
        with pytest.raises(ConfigurationError):
            WhistleConfig(**overrides).validate()

    def test_dict_roundtrip(self):
        """Test conversion to and from a dictionary."""
        config = WhistleConfig(merkle_depth=8, allowed_denominations=[5, 6])
        restored = WhistleConfig.from_dict(config.to_dict())
        assert restored.merkle_depth == 8
        assert restored.allowed_denominations == (5, 6)

    def test_log_config(self):
        """Test deriving the logging configuration."""
        log_config = WhistleConfig(log_level="INFO").to_log_config(handlers=["memory"])
        assert log_config.level == LogLevel.INFO
        assert log_config.handlers == ["memory"]


class TestGlobalConfig:
    """Test the process-wide configuration."""

    def test_get_default(self):
        """Test the global config defaults."""
        assert get_global_config().merkle_depth == 20

    def test_set_and_reset(self):
        """Test replacing and resetting the global config."""
        set_global_config(WhistleConfig(merkle_depth=5))
        assert get_global_config().merkle_depth == 5
        set_global_config(None)
        assert get_global_config().merkle_depth == 20

    def test_set_invalid(self):
        """Test an invalid config is refused."""
        with pytest.raises(ConfigurationError):
            set_global_config(WhistleConfig(merkle_depth=0))


class TestLogLevelSetting:
    """Test the configured log level reaches the log manager."""

    def test_environment_level_applies_to_default_manager(self, monkeypatch):
        """Test WHISTLE_LOG_LEVEL sets the threshold of the lazily built manager."""
        monkeypatch.setenv("WHISTLE_LOG_LEVEL", "debug")
        set_global_config(None)
        shutdown_logging()

        manager = get_manager()
        manager.add_handler("memory", MemoryHandler())
        get_logger("whistle.env").debug("visible")

        assert manager.config.level == LogLevel.DEBUG
        messages = [log["message"] for log in manager.handlers["memory"].get_logs()]
        assert messages == ["visible"]

    def test_default_level_hides_debug(self):
        """Test the default configuration keeps debug entries out."""
        set_global_config(None)
        shutdown_logging()
        manager = get_manager()
        manager.add_handler("memory", MemoryHandler())
        get_logger("whistle.env").debug("hidden")
        assert manager.handlers["memory"].get_logs() == []

    def test_set_global_config_updates_running_manager(self):
        """Test replacing the global config changes the current threshold."""
        manager = setup_logging(LogConfig(level=LogLevel.WARNING, handlers=["memory"]))
        set_global_config(WhistleConfig(log_level="info"))

        get_logger("whistle.env").info("shown")

        assert manager.config.level == LogLevel.INFO
        assert [log["message"] for log in manager.handlers["memory"].get_logs()] == ["shown"]
