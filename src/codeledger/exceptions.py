"""
CodeLedger Exception Hierarchy

Structured exceptions for clear error handling across the CLI, the
client facade and the MCP server.  Each exception type maps to one
failure mode so that callers can branch on the type instead of parsing
message strings.

The tool boundary (:meth:`codeledger.client.CodeLedger.execute_tool`)
converts every one of these into a ``{"success": False, "error": ...}``
result, so MCP clients only ever see the message text.

Usage::

    from codeledger.exceptions import CodeLedgerError, NotFoundError

    try:
        ledger.queries.get_function(function_id)
    except NotFoundError:
        print("Track the function first.")
    except CodeLedgerError as exc:
        print(f"CodeLedger error: {exc}")
"""


class CodeLedgerError(Exception):
    """Base exception for all CodeLedger errors."""


class ConfigError(CodeLedgerError, ValueError):
    """Configuration is invalid (unknown log level, empty pattern list, ...).

    Inherits from ``ValueError`` so callers of ``LedgerConfig.validate()``
    can catch it without importing this module.
    """


class InvalidInputError(CodeLedgerError, ValueError):
    """A tool argument is missing or malformed.

    Raised before any store access takes place.
    """


class NotFoundError(CodeLedgerError, LookupError):
    """A referenced project, endpoint or function id does not exist."""


class PatternError(CodeLedgerError, ValueError):
    """A ``pathPattern`` / ``namePattern`` filter is not a valid regex."""


class StoreError(CodeLedgerError):
    """The underlying SQLite store failed (connection, I/O, schema)."""
