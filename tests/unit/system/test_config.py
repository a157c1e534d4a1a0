"""
Unit tests for system/config.py - OptLedger system configuration.

Tests:
- EngineConfig: Position engine section and conversion to PositionEngineConfig
- LoggingConfig: Logging section and conversion to log_system.LoggingConfig
- SystemConfig: Container with load(), _from_dict(), merge, env substitution
- Singleton functions: get_system_config(), reload_system_config()
"""

from pathlib import Path

import pytest

from optledger.services.positions import ExitStrategy, OperationStatus
from optledger.system.config import (
    EngineConfig,
    LoggingConfig,
    SystemConfig,
    _deep_merge,
    _substitute_env_vars,
    get_system_config,
    reload_system_config,
)


class TestEngineConfig:
    """Test EngineConfig dataclass."""

    def test_create_with_defaults(self):
        """Test EngineConfig uses correct defaults."""
        # Arrange & Act
        config = EngineConfig()

        # Assert
        assert config.price_precision == 6
        assert config.percentage_precision == 6
        assert config.default_exit_strategy == "auto"
        assert config.zero_result_status == "winner"
        assert config.validate_average_price is True

    def test_to_engine_config(self):
        """Test conversion normalizes strings into engine enums."""
        # Arrange
        config = EngineConfig(price_precision=4, default_exit_strategy="lifo", zero_result_status="loser")

        # Act
        engine_config = config.to_engine_config()

        # Assert
        assert engine_config.price_precision == 4
        assert engine_config.exit_strategy == ExitStrategy.LIFO
        assert engine_config.zero_status == OperationStatus.LOSER

    def test_to_engine_config_rejects_invalid_strategy(self):
        """Test invalid values surface when the engine config is built."""
        # Arrange
        config = EngineConfig(default_exit_strategy="newest")

        # Act & Assert
        with pytest.raises(ValueError, match="default_exit_strategy must be one of"):
            config.to_engine_config()


class TestLoggingConfig:
    """Test LoggingConfig dataclass."""

    def test_create_with_defaults(self):
        """Test LoggingConfig uses correct defaults."""
        # Arrange & Act
        config = LoggingConfig()

        # Assert
        assert config.level == "INFO"
        assert config.format == "console"
        assert config.enable_file is True
        assert config.file_path == "logs/optledger.log"
        assert config.file_level == "WARNING"

    def test_to_logger_config(self):
        """Test conversion to the LoggerFactory configuration model."""
        # Arrange
        config = LoggingConfig(level="DEBUG", format="json", file_path="out/engine.log", enable_file=False)

        # Act
        logger_config = config.to_logger_config()

        # Assert
        assert logger_config.level == "DEBUG"
        assert logger_config.format == "json"
        assert logger_config.enable_file is False
        assert logger_config.file_path == Path("out/engine.log")


class TestSystemConfigLoad:
    """Test SystemConfig.load() file loading."""

    def test_load_with_defaults_when_no_file(self, tmp_path):
        """Test load() uses built-in defaults when no config file exists."""
        # Arrange
        nonexistent = tmp_path / "nonexistent.yaml"

        # Act
        config = SystemConfig.load(nonexistent)

        # Assert
        assert config == SystemConfig()

    def test_load_merges_partial_config(self, tmp_path):
        """Test load() merges partial config with defaults."""
        # Arrange
        config_file = tmp_path / "partial.yaml"
        config_file.write_text(
            """
engine:
  default_exit_strategy: fifo

logging:
  level: DEBUG
"""
        )

        # Act
        config = SystemConfig.load(config_file)

        # Assert - Specified values
        assert config.engine.default_exit_strategy == "fifo"
        assert config.logging.level == "DEBUG"

        # Assert - Unspecified values use defaults
        assert config.engine.price_precision == 6
        assert config.logging.file_path == "logs/optledger.log"

    def test_load_handles_empty_file(self, tmp_path):
        """Test load() handles empty YAML file gracefully."""
        # Arrange
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        # Act
        config = SystemConfig.load(config_file)

        # Assert
        assert config == SystemConfig()

    def test_load_rejects_non_mapping(self, tmp_path):
        """Test a YAML list is not a configuration."""
        # Arrange
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- engine\n- logging\n")

        # Act & Assert
        with pytest.raises(ValueError, match="must be a mapping"):
            SystemConfig.load(config_file)

    def test_load_rejects_unknown_keys(self, tmp_path):
        """Test misspelled keys are reported instead of ignored."""
        # Arrange
        config_file = tmp_path / "typo.yaml"
        config_file.write_text("engine:\n  price_precison: 4\n")

        # Act & Assert
        with pytest.raises(ValueError, match="Unknown engine config keys"):
            SystemConfig.load(config_file)

    def test_load_from_env_var(self, tmp_path, monkeypatch):
        """Test $OPTLEDGER_CONFIG is used when no path is given."""
        # Arrange
        config_file = tmp_path / "env.yaml"
        config_file.write_text("engine:\n  zero_result_status: loser\n")
        monkeypatch.setenv("OPTLEDGER_CONFIG", str(config_file))

        # Act
        config = SystemConfig.load()

        # Assert
        assert config.engine.zero_result_status == "loser"

    def test_load_substitutes_env_vars(self, tmp_path, monkeypatch):
        """Test ${VAR:-default} references are expanded."""
        # Arrange
        config_file = tmp_path / "vars.yaml"
        config_file.write_text("logging:\n  file_path: ${OPTLEDGER_LOG_DIR:-logs}/optledger.log\n")
        monkeypatch.setenv("OPTLEDGER_LOG_DIR", "/var/log/optledger")

        # Act
        config = SystemConfig.load(config_file)

        # Assert
        assert config.logging.file_path == "/var/log/optledger/optledger.log"

    def test_shipped_config_loads(self):
        """Test config/system.yaml in the repository is valid."""
        # Arrange
        shipped = Path(__file__).parents[3] / "config" / "system.yaml"

        # Act
        config = SystemConfig.load(shipped)

        # Assert
        assert config.engine.to_engine_config().exit_strategy == ExitStrategy.AUTO


class TestSystemConfigFromDict:
    """Test SystemConfig._from_dict() construction."""

    def test_from_dict_with_partial_config_uses_defaults(self):
        """Test _from_dict() fills in defaults for missing keys."""
        # Arrange & Act
        config = SystemConfig._from_dict({"engine": {"price_precision": 2}})

        # Assert
        assert config.engine.price_precision == 2
        assert config.engine.percentage_precision == 6
        assert config.logging.level == "INFO"

    def test_from_dict_with_empty_dict_uses_all_defaults(self):
        """Test _from_dict() uses all defaults for empty dict."""
        assert SystemConfig._from_dict({}) == SystemConfig()


class TestDeepMerge:
    """Test _deep_merge() helper function."""

    def test_merge_nested_dicts(self):
        """Test merging nested dictionaries."""
        # Arrange
        base = {"engine": {"price_precision": 6, "default_exit_strategy": "auto"}, "logging": {"level": "INFO"}}
        override = {"engine": {"default_exit_strategy": "fifo"}, "extra": {"x": 1}}

        # Act
        result = _deep_merge(base, override)

        # Assert
        assert result["engine"] == {"price_precision": 6, "default_exit_strategy": "fifo"}
        assert result["logging"]["level"] == "INFO"
        assert result["extra"] == {"x": 1}

    def test_merge_does_not_mutate_base(self):
        """Test the base dictionary is left untouched."""
        # Arrange
        base = {"a": {"b": 1}}

        # Act
        _deep_merge(base, {"a": {"b": 2}})

        # Assert
        assert base == {"a": {"b": 1}}


class TestSubstituteEnvVars:
    """Test _substitute_env_vars() helper function."""

    def test_substitutes_set_variable(self, monkeypatch):
        """Test ${VAR} is replaced by its value."""
        monkeypatch.setenv("OPTLEDGER_TEST_VAR", "value")

        assert _substitute_env_vars("prefix-${OPTLEDGER_TEST_VAR}") == "prefix-value"

    def test_default_for_unset_variable(self, monkeypatch):
        """Test ${VAR:-default} falls back to the default."""
        monkeypatch.delenv("OPTLEDGER_UNSET", raising=False)

        assert _substitute_env_vars("${OPTLEDGER_UNSET:-fallback}") == "fallback"
        assert _substitute_env_vars("${OPTLEDGER_UNSET}") == ""

    def test_recurses_and_keeps_non_strings(self, monkeypatch):
        """Test nested containers are walked and other values kept."""
        monkeypatch.setenv("OPTLEDGER_TEST_VAR", "x")

        result = _substitute_env_vars({"a": ["${OPTLEDGER_TEST_VAR}", 1], "b": True})

        assert result == {"a": ["x", 1], "b": True}


class TestSingleton:
    """Test get_system_config() and reload_system_config()."""

    def test_reload_replaces_singleton(self, tmp_path):
        """Test reload_system_config() swaps the cached configuration."""
        # Arrange
        config_file = tmp_path / "reload.yaml"
        config_file.write_text("engine:\n  price_precision: 3\n")

        # Act
        reloaded = reload_system_config(config_file)

        # Assert
        assert reloaded.engine.price_precision == 3
        assert get_system_config() is reloaded

        # Cleanup
        reload_system_config(tmp_path / "missing.yaml")

    def test_get_returns_same_instance(self):
        """Test repeated calls return the cached instance."""
        assert get_system_config() is get_system_config()
