"""
Configuration for Whistle.

One dataclass holds the sizing of every fixed-capacity store (tree depth,
root history window, nullifier account) together with the ceremony archive
limits. Values can be overridden from the environment.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple
import os
import re

from .errors import ConfigurationError
from .logging import LogConfig, LogLevel, set_level

LAMPORTS_PER_SOL = 1_000_000_000

DEFAULT_DENOMINATIONS: Tuple[int, ...] = (
    1 * LAMPORTS_PER_SOL,
    10 * LAMPORTS_PER_SOL,
    100 * LAMPORTS_PER_SOL,
)

MAX_MERKLE_DEPTH = 32
U64_MAX = 2**64 - 1
U16_MAX = 2**16 - 1

_CIRCUIT_NAME = re.compile(r"^[A-Za-z0-9_]+$")


@dataclass
class WhistleConfig:
    """Protocol configuration."""

    # Merkle accumulator
    merkle_depth: int = 20
    root_history_size: int = 30

    # Nullifier registry
    nullifier_capacity: int = 256

    # Pool
    allowed_denominations: Tuple[int, ...] = DEFAULT_DENOMINATIONS

    # Ceremony archive
    circuit_name: str = "withdraw_merkle"
    artifact_extension: str = ".zkey"
    max_artifact_size: int = 50 * 1024 * 1024

    # Logging
    log_level: str = "warning"

    # Environment overrides
    environment_overrides: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Apply environment variable overrides."""
        self.allowed_denominations = tuple(self.allowed_denominations)
        self._apply_environment_overrides()

    def _apply_environment_overrides(self):
        """Apply environment variable overrides."""
        env_mappings = {
            'WHISTLE_MERKLE_DEPTH': ('merkle_depth', int),
            'WHISTLE_ROOT_HISTORY': ('root_history_size', int),
            'WHISTLE_NULLIFIER_CAPACITY': ('nullifier_capacity', int),
            'WHISTLE_CIRCUIT_NAME': ('circuit_name', str),
            'WHISTLE_MAX_ARTIFACT_SIZE': ('max_artifact_size', int),
            'WHISTLE_LOG_LEVEL': ('log_level', str),
        }

        for env_var, (attr_name, attr_type) in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                try:
                    value = attr_type(env_value)
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(
                        f"Invalid environment variable {env_var}={env_value}: {e}",
                        config_key=env_var,
                        config_value=env_value,
                    ) from e
                setattr(self, attr_name, value)
                self.environment_overrides[env_var] = value

    def validate(self) -> None:
        """Validate configuration parameters."""
        if not 1 <= self.merkle_depth <= MAX_MERKLE_DEPTH:
            raise ConfigurationError(
                f"merkle_depth must be between 1 and {MAX_MERKLE_DEPTH}",
                config_key="merkle_depth", config_value=self.merkle_depth,
            )
        if self.root_history_size < 1:
            raise ConfigurationError(
                "root_history_size must be positive",
                config_key="root_history_size", config_value=self.root_history_size,
            )
        # The persisted nullifier account stores its count as a u16
        if not 1 <= self.nullifier_capacity <= U16_MAX:
            raise ConfigurationError(
                f"nullifier_capacity must be between 1 and {U16_MAX}",
                config_key="nullifier_capacity", config_value=self.nullifier_capacity,
            )
        if not self.allowed_denominations:
            raise ConfigurationError("allowed_denominations cannot be empty",
                                     config_key="allowed_denominations")
        for amount in self.allowed_denominations:
            if not isinstance(amount, int) or not 0 < amount <= U64_MAX:
                raise ConfigurationError(
                    "denominations must be positive u64 integers",
                    config_key="allowed_denominations", config_value=amount,
                )
        if not _CIRCUIT_NAME.match(self.circuit_name or ""):
            raise ConfigurationError(
                "circuit_name may only contain letters, digits and underscores",
                config_key="circuit_name", config_value=self.circuit_name,
            )
        if not self.artifact_extension.startswith(".") or "/" in self.artifact_extension:
            raise ConfigurationError(
                "artifact_extension must look like '.zkey'",
                config_key="artifact_extension", config_value=self.artifact_extension,
            )
        if self.max_artifact_size <= 0:
            raise ConfigurationError(
                "max_artifact_size must be positive",
                config_key="max_artifact_size", config_value=self.max_artifact_size,
            )
        try:
            LogLevel.from_name(self.log_level)
        except ValueError as e:
            raise ConfigurationError(str(e), config_key="log_level",
                                     config_value=self.log_level) from e

    @property
    def tree_capacity(self) -> int:
        """Number of leaves the accumulator can hold."""
        return 2 ** self.merkle_depth

    def to_log_config(self, handlers=None) -> LogConfig:
        """Build a logging configuration at the configured level."""
        return LogConfig(level=LogLevel.from_name(self.log_level), handlers=handlers)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'merkle_depth': self.merkle_depth,
            'root_history_size': self.root_history_size,
            'nullifier_capacity': self.nullifier_capacity,
            'allowed_denominations': list(self.allowed_denominations),
            'circuit_name': self.circuit_name,
            'artifact_extension': self.artifact_extension,
            'max_artifact_size': self.max_artifact_size,
            'log_level': self.log_level,
            'environment_overrides': self.environment_overrides,
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'WhistleConfig':
        """Create configuration from dictionary."""
        data = dict(config_dict)
        data.pop('environment_overrides', None)
        if 'allowed_denominations' in data:
            data['allowed_denominations'] = tuple(data['allowed_denominations'])
        return cls(**data)


# Global configuration instance
_global_config: Optional[WhistleConfig] = None


def get_global_config() -> WhistleConfig:
    """Get the global configuration, validating it on first use."""
    global _global_config
    if _global_config is None:
        config = WhistleConfig()
        config.validate()
        _global_config = config
    return _global_config


def set_global_config(config: Optional[WhistleConfig]) -> None:
    """Replace the global configuration; ``None`` resets to defaults.

    A running log manager picks up the new configuration's log level.
    """
    global _global_config
    if config is not None:
        config.validate()
    _global_config = config
    if config is not None:
        set_level(LogLevel.from_name(config.log_level))
