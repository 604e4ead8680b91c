"""
Tests for codeledger.core.config — LedgerConfig.
"""

import logging

import pytest

from codeledger import health
from codeledger.core.config import DEFAULT_DB_PATH, DEFAULT_EXCLUDE_DIRS, LedgerConfig
from codeledger.exceptions import CodeLedgerError, ConfigError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("CODELEDGER_DB", "CODELEDGER_FILE_PATTERNS", "CODELEDGER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# =============================================================================
# Defaults
# =============================================================================

class TestDefaults:
    """Values a bare LedgerConfig starts with."""

    def test_default_db_path(self):
        assert LedgerConfig().db_path == DEFAULT_DB_PATH
        assert DEFAULT_DB_PATH.endswith("codeledger.sqlite")

    def test_default_patterns(self):
        assert LedgerConfig().default_file_patterns == ("*.ts", "*.js")

    def test_exclude_dirs_has_common_entries(self):
        for d in (".git", "node_modules", ".codeledger"):
            assert d in DEFAULT_EXCLUDE_DIRS


# =============================================================================
# from_env
# =============================================================================

class TestFromEnv:
    """Environment variable snapshot."""

    def test_no_env_gives_defaults(self, clean_env):
        config = LedgerConfig.from_env()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.log_level == "INFO"

    def test_db_path_from_env(self, clean_env, tmp_path):
        clean_env.setenv("CODELEDGER_DB", str(tmp_path / "x.sqlite"))
        assert LedgerConfig.from_env().db_path == str(tmp_path / "x.sqlite")

    def test_patterns_are_comma_separated(self, clean_env):
        clean_env.setenv("CODELEDGER_FILE_PATTERNS", " *.ts, *.tsx ,,")
        assert LedgerConfig.from_env().default_file_patterns == ("*.ts", "*.tsx")

    def test_blank_patterns_fall_back(self, clean_env):
        clean_env.setenv("CODELEDGER_FILE_PATTERNS", " , ")
        assert LedgerConfig.from_env().default_file_patterns == ("*.ts", "*.js")

    def test_log_level_is_upper_cased(self, clean_env):
        clean_env.setenv("CODELEDGER_LOG_LEVEL", "debug")
        config = LedgerConfig.from_env()
        assert config.log_level == "DEBUG"
        assert config.get_log_level() == logging.DEBUG


# =============================================================================
# Validation and accessors
# =============================================================================

class TestValidation:
    """validate() and the path helper."""

    def test_valid_config(self):
        assert LedgerConfig().validate() is True

    def test_unknown_log_level(self):
        with pytest.raises(ConfigError, match="Unknown log level"):
            LedgerConfig(log_level="CHATTY").validate()

    def test_empty_patterns(self):
        with pytest.raises(ConfigError):
            LedgerConfig(default_file_patterns=()).validate()

    def test_empty_db_path(self):
        with pytest.raises(ConfigError):
            LedgerConfig(db_path="  ").validate()

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, CodeLedgerError)
        assert issubclass(ConfigError, ValueError)

    def test_get_db_path_creates_parent(self, tmp_path):
        path = LedgerConfig(db_path=str(tmp_path / "a" / "b" / "db.sqlite")).get_db_path()
        assert path.parent.is_dir()

    def test_memory_db_path_untouched(self):
        assert str(LedgerConfig(db_path=":memory:").get_db_path()) == ":memory:"


class TestHealth:
    """Package-level health() never opens the store."""

    def test_health_reports_config(self, tmp_path):
        config = LedgerConfig(db_path=str(tmp_path / "never.sqlite"))
        status = health(config)
        assert status["db_path"] == str(tmp_path / "never.sqlite")
        assert status["default_file_patterns"] == ["*.ts", "*.js"]
        assert not (tmp_path / "never.sqlite").exists()
