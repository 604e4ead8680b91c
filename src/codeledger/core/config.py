"""
CodeLedger Configuration Module

Centralized configuration for the knowledge-base store, the source
scanner and logging.  A :class:`LedgerConfig` instance is passed through
the call stack explicitly; nothing here reads global state after
construction.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from codeledger.exceptions import ConfigError

DEFAULT_DB_PATH = os.path.join(".", "data", "codeledger.sqlite")
DEFAULT_FILE_PATTERNS: Tuple[str, ...] = ("*.ts", "*.js")

# Version-control, dependency-manager and tool-state folders are never walked.
DEFAULT_EXCLUDE_DIRS = frozenset((
    ".git", ".hg", ".svn",
    "node_modules", "bower_components",
    ".codeledger",
))


@dataclass
class LedgerConfig:
    """
    Instance-based configuration for CodeLedger.

    Create from environment variables::

        config = LedgerConfig.from_env()

    Or with explicit values::

        config = LedgerConfig(db_path="/tmp/ledger.sqlite")
    """

    # ── Store ─────────────────────────────────────────────────────
    db_path: str = DEFAULT_DB_PATH

    # ── Scanning ──────────────────────────────────────────────────
    default_file_patterns: Tuple[str, ...] = DEFAULT_FILE_PATTERNS
    exclude_dirs: frozenset = DEFAULT_EXCLUDE_DIRS

    # ── Logging ───────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # ── Factory ───────────────────────────────────────────────────

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Build a config snapshot from current environment variables.

        Reads :envvar:`CODELEDGER_DB`, :envvar:`CODELEDGER_FILE_PATTERNS`
        (comma separated, e.g. ``*.ts,*.tsx``) and
        :envvar:`CODELEDGER_LOG_LEVEL`.
        """
        patterns_raw = os.getenv("CODELEDGER_FILE_PATTERNS", "")
        patterns = tuple(p.strip() for p in patterns_raw.split(",") if p.strip())
        return cls(
            db_path=os.getenv("CODELEDGER_DB", DEFAULT_DB_PATH),
            default_file_patterns=patterns or DEFAULT_FILE_PATTERNS,
            log_level=os.getenv("CODELEDGER_LOG_LEVEL", "INFO").upper(),
        )

    # ── Validation & Accessors ────────────────────────────────────

    def validate(self) -> bool:
        """
        Check the config for values that would fail later at runtime.

        Raises :class:`~codeledger.exceptions.ConfigError` on failure.
        """
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(
                f"Unknown log level '{self.log_level}'. "
                "Use one of DEBUG, INFO, WARNING, ERROR, CRITICAL.\n"
                "  Set via: export CODELEDGER_LOG_LEVEL=INFO"
            )
        if not self.default_file_patterns:
            raise ConfigError("default_file_patterns must contain at least one glob.")
        if not str(self.db_path).strip():
            raise ConfigError("db_path must not be empty.")
        return True

    def get_db_path(self) -> Path:
        """Return the database path, creating its parent directory if needed."""
        path = Path(self.db_path)
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def get_log_level(self) -> int:
        """Return the numeric logging level for :attr:`log_level`."""
        return getattr(logging, self.log_level.upper(), logging.INFO)
