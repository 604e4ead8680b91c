"""
CodeLedger Core: configuration, ids, storage, relationships, queries and scanning.

Re-exports the primary classes for convenience::

    from codeledger.core import EntityStore, QueryEngine, SourceScanner
"""

from codeledger.core.config import LedgerConfig
from codeledger.core.ids import api_endpoint_id, derive_id, function_id, project_id
from codeledger.core.indexer import ScanPipeline, ScanResult
from codeledger.core.query import QueryEngine
from codeledger.core.relations import RelationshipMaintainer
from codeledger.core.scanner import SourceScanner
from codeledger.core.store import EntityStore
from codeledger.core.walker import find_files, match_pattern

__all__ = [
    "LedgerConfig",
    "derive_id",
    "project_id",
    "api_endpoint_id",
    "function_id",
    "EntityStore",
    "RelationshipMaintainer",
    "QueryEngine",
    "SourceScanner",
    "ScanPipeline",
    "ScanResult",
    "find_files",
    "match_pattern",
]
