"""
CodeLedger: a knowledge base of the projects, API endpoints and functions
in your codebases, served to AI coding assistants over MCP.

Quick start (programmatic API)::

    from codeledger import CodeLedger

    ledger = CodeLedger()                                   # reads env vars
    project = ledger.create_project("shop", "/src/shop", "Storefront API")
    ledger.scan_project(project.id)                         # *.ts / *.js
    hits = ledger.queries.query("function", name_pattern="^get")

Quick start (CLI)::

    codeledger create-project shop /src/shop "Storefront API"
    codeledger scan <project-id>
    codeledger mcp

Configuration override::

    from codeledger import CodeLedger, LedgerConfig

    ledger = CodeLedger(config=LedgerConfig(db_path="/tmp/ledger.sqlite"))
"""

__version__ = "1.0.0"

# Primary public API
from codeledger.client import CodeLedger

# Configuration
from codeledger.core.config import LedgerConfig

# Core data types that callers interact with
from codeledger.core.indexer import ScanResult
from codeledger.core.models import ApiEndpoint, Function, Parameter, Project, Schema

# Exception hierarchy
from codeledger.exceptions import (
    CodeLedgerError,
    ConfigError,
    InvalidInputError,
    NotFoundError,
    PatternError,
    StoreError,
)


def health(config: LedgerConfig | None = None) -> dict:
    """
    Return a small status dict without opening the store.

    When *config* is None, uses :meth:`LedgerConfig.from_env()` for the snapshot.
    """
    cfg = config or LedgerConfig.from_env()
    return {
        "version": __version__,
        "db_path": str(cfg.db_path),
        "default_file_patterns": list(cfg.default_file_patterns),
    }


__all__ = [
    "__version__",
    # Facade
    "CodeLedger",
    # Config
    "LedgerConfig",
    # Data types
    "ApiEndpoint",
    "Function",
    "Parameter",
    "Project",
    "Schema",
    "ScanResult",
    # Exceptions
    "CodeLedgerError",
    "ConfigError",
    "InvalidInputError",
    "NotFoundError",
    "PatternError",
    "StoreError",
    # Status
    "health",
]
