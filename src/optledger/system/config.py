"""
System configuration for OptLedger.

One configuration for the whole system, loaded from YAML and merged over
built-in defaults:

    engine:
      price_precision: 6
      percentage_precision: 6
      default_exit_strategy: auto
      zero_result_status: winner
      validate_average_price: true

    logging:
      level: INFO
      format: console
      file_path: ${OPTLEDGER_LOG_DIR:-logs}/optledger.log

Search order for the file:
1. Explicit path passed to SystemConfig.load()
2. $OPTLEDGER_CONFIG
3. config/system.yaml in the working directory

Missing files fall back to defaults. ${VAR} and ${VAR:-default} references
in string values are substituted from the environment.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from optledger.system.log_system import LoggingConfig as LoggerConfig

if TYPE_CHECKING:
    from optledger.services.positions.config import PositionEngineConfig

DEFAULT_CONFIG_PATH = Path("config/system.yaml")
CONFIG_ENV_VAR = "OPTLEDGER_CONFIG"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


@dataclass
class EngineConfig:
    """Position engine settings (mirrors PositionEngineConfig)."""

    price_precision: int = 6
    percentage_precision: int = 6
    default_exit_strategy: str = "auto"
    zero_result_status: str = "winner"
    validate_average_price: bool = True

    def to_engine_config(self) -> "PositionEngineConfig":
        """Convert to the engine's own configuration object."""
        from optledger.services.positions.config import PositionEngineConfig

        return PositionEngineConfig(
            price_precision=self.price_precision,
            percentage_precision=self.percentage_precision,
            default_exit_strategy=self.default_exit_strategy,
            zero_result_status=self.zero_result_status,
            validate_average_price=self.validate_average_price,
        )


@dataclass
class LoggingConfig:
    """Logging section of the system configuration."""

    level: str = "INFO"
    format: str = "console"
    timestamp_format: str = "compact"
    enable_file: bool = True
    file_path: str = "logs/optledger.log"
    file_level: str = "WARNING"
    file_rotation: bool = True
    max_file_size_mb: int = 10
    backup_count: int = 3

    def to_logger_config(self) -> LoggerConfig:
        """Convert to log_system.LoggingConfig used by LoggerFactory."""
        return LoggerConfig(
            level=self.level,  # type: ignore[arg-type]
            format=self.format,  # type: ignore[arg-type]
            timestamp_format=self.timestamp_format,  # type: ignore[arg-type]
            enable_file=self.enable_file,
            file_path=Path(self.file_path),
            file_level=self.file_level,  # type: ignore[arg-type]
            file_rotation=self.file_rotation,
            max_file_size_mb=self.max_file_size_mb,
            backup_count=self.backup_count,
        )


@dataclass
class SystemConfig:
    """Complete system configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "SystemConfig":
        """
        Load configuration from YAML, merged over defaults.

        Args:
            path: Optional explicit config path

        Returns:
            SystemConfig instance

        Raises:
            ValueError: If the file does not contain a mapping
            yaml.YAMLError: If YAML parsing fails
        """
        config_path = cls._resolve_path(path)
        if config_path is None or not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValueError(f"System config must be a mapping, got {type(raw).__name__}: {config_path}")

        merged = _deep_merge(cls._defaults_dict(), _substitute_env_vars(raw))
        return cls._from_dict(merged)

    @staticmethod
    def _resolve_path(path: Path | str | None) -> Path | None:
        if path is not None:
            return Path(path)
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return Path(env_path)
        return DEFAULT_CONFIG_PATH

    @staticmethod
    def _defaults_dict() -> dict[str, Any]:
        return {
            "engine": dict(EngineConfig().__dict__),
            "logging": dict(LoggingConfig().__dict__),
        }

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "SystemConfig":
        """Build SystemConfig from a (merged) dictionary."""
        engine_data = data.get("engine") or {}
        logging_data = data.get("logging") or {}

        unknown = set(engine_data) - set(EngineConfig.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown engine config keys: {sorted(unknown)}")
        unknown = set(logging_data) - set(LoggingConfig.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown logging config keys: {sorted(unknown)}")

        return cls(
            engine=EngineConfig(**engine_data),
            logging=LoggingConfig(**logging_data),
        )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _substitute_env_vars(value: Any) -> Any:
    """Replace ${VAR} and ${VAR:-default} in strings, recursively."""
    if isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            return os.environ.get(name, default if default is not None else "")

        return _ENV_PATTERN.sub(replace, value)
    return value


_system_config: SystemConfig | None = None


def get_system_config() -> SystemConfig:
    """Get the system configuration singleton (loaded on first use)."""
    global _system_config
    if _system_config is None:
        _system_config = SystemConfig.load()
    return _system_config


def reload_system_config(path: Path | str | None = None) -> SystemConfig:
    """Force reload of the system configuration."""
    global _system_config
    _system_config = SystemConfig.load(path)
    return _system_config
