"""
CodeLedger Client Facade

Single entry point for programmatic use of CodeLedger.  Owns the store
handle, exposes the tracking/scanning operations as plain methods that
raise :mod:`codeledger.exceptions`, and provides the tool boundary used by
the MCP server: :meth:`CodeLedger.execute_tool` and
:meth:`CodeLedger.access_resource` never raise, they return
``{"success": False, "error": "..."}`` instead.

Usage::

    from codeledger import CodeLedger

    with CodeLedger() as ledger:                      # reads env vars
        project = ledger.create_project("shop", "/src/shop", "Storefront API")
        result = ledger.scan_project(project.id)
        print(f"{len(result.function_ids)} functions tracked")

    # Tool-style call, as an MCP client would make it
    ledger.execute_tool("query", {"type": "function", "namePattern": "^get"})

    # Async variants (run the sync call in a worker thread)
    await ledger.aexecute_tool("get_project", {"projectId": project.id})
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from codeledger.core.config import LedgerConfig
from codeledger.core.indexer import ScanPipeline, ScanResult
from codeledger.core.models import ApiEndpoint, Function, Project, new_api_endpoint, new_function, new_project, utc_now
from codeledger.core.query import QueryEngine
from codeledger.core.store import EntityStore
from codeledger.exceptions import CodeLedgerError, NotFoundError
from codeledger.schemas import (
    AddUsageExampleInput,
    CreateProjectInput,
    EndpointIdInput,
    FunctionIdInput,
    NoInput,
    ProjectIdInput,
    QueryInput,
    ScanFileInput,
    ScanProjectInput,
    ToolInput,
    TrackApiInput,
    TrackFunctionInput,
    UpdateFunctionPurposeInput,
    parse_tool_input,
)

logger = logging.getLogger(__name__)

RESOURCE_SCHEME = "codeledger://"


def _dicts(entities) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in entities]


class CodeLedger:
    """
    High-level CodeLedger client.

    Args:
        config: Explicit configuration.  Defaults to
            :meth:`LedgerConfig.from_env`.
        store: An already-open :class:`EntityStore`.  When omitted the
            client opens one at ``config.db_path`` and owns it.

    Raises:
        StoreError: The database cannot be opened.
    """

    def __init__(self, config: LedgerConfig | None = None, *, store: EntityStore | None = None):
        self._config = config or LedgerConfig.from_env()
        self._owns_store = store is None
        self._store = store if store is not None else EntityStore(self._config.get_db_path())
        self.queries = QueryEngine(self._store)
        logger.debug(f"CodeLedger ready (store: {self._store.db_path})")

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def store(self) -> EntityStore:
        return self._store

    def close(self) -> None:
        """Close the store if this client opened it."""
        if self._owns_store:
            self._store.close()

    def __enter__(self) -> "CodeLedger":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Projects ──────────────────────────────────────────────────

    def create_project(self, name: str, path: str, description: str) -> Project:
        """Register a project; re-registering the same name and path updates it."""
        project = self._store.save_project(new_project(name, path, description))
        logger.info(f"Project {project.name} tracked as {project.id}")
        return project

    def _require_project(self, project_id: str) -> Project:
        return self.queries.get_project(project_id)

    # ── Endpoints ─────────────────────────────────────────────────

    def track_api(self, params: TrackApiInput) -> ApiEndpoint:
        self._require_project(params.project_id)
        endpoint = new_api_endpoint(
            project_id=params.project_id,
            method=params.method,
            path=params.path,
            description=params.description,
            implementation_path=params.implementation_path,
            request_schema=params.request_schema.to_schema() if params.request_schema else None,
            response_schema=params.response_schema.to_schema() if params.response_schema else None,
            tags=params.tags,
            related_functions=params.related_functions,
        )
        return self._store.save_api_endpoint(endpoint)

    def scan_file_for_apis(self, project_id: str, file_path: str) -> List[str]:
        """Scan one file for route declarations; return the stored endpoint ids."""
        project = self._require_project(project_id)
        path = self._resolve_file(project, file_path)
        return ScanPipeline(self._store, project).index_endpoints(path)

    # ── Functions ─────────────────────────────────────────────────

    def track_function(self, params: TrackFunctionInput) -> Function:
        self._require_project(params.project_id)
        function = new_function(
            project_id=params.project_id,
            name=params.name,
            description=params.description,
            parameters=[p.to_parameter() for p in params.parameters],
            return_type=params.return_type,
            return_description=params.return_description,
            implementation=params.implementation,
            implementation_path=params.implementation_path,
            start_line=params.start_line,
            end_line=params.end_line,
            purpose=params.purpose,
            tags=params.tags,
            related_api_endpoints=params.related_api_endpoints,
            related_functions=params.related_functions,
            usage_examples=params.usage_examples,
        )
        return self._store.save_function(function)

    def scan_file_for_functions(self, project_id: str, file_path: str) -> List[str]:
        """Scan one file for function declarations; return the stored function ids."""
        project = self._require_project(project_id)
        path = self._resolve_file(project, file_path)
        return ScanPipeline(self._store, project).index_functions(path)

    def add_usage_example(self, function_id: str, example: str) -> Function:
        function = self.queries.get_function(function_id)
        function.usage_examples.append(example)
        function.updated_at = utc_now()
        return self._store.save_function(function)

    def update_function_purpose(self, function_id: str, purpose: str) -> Function:
        function = self.queries.get_function(function_id)
        function.purpose = purpose
        function.updated_at = utc_now()
        return self._store.save_function(function)

    # ── Scanning ──────────────────────────────────────────────────

    def scan_project(
        self,
        project_id: str,
        file_patterns: Optional[Sequence[str]] = None,
        *,
        show_progress: bool = False,
    ) -> ScanResult:
        """
        Scan every matching file under the project's path.

        Args:
            project_id: Tracked project to scan.
            file_patterns: Filename globs; defaults to
                ``config.default_file_patterns`` (``*.ts``, ``*.js``).
            show_progress: Show a tqdm progress bar.

        Raises:
            NotFoundError: Unknown *project_id*.
        """
        project = self._require_project(project_id)
        pipeline = ScanPipeline(
            self._store,
            project,
            file_patterns=file_patterns or self._config.default_file_patterns,
            exclude_dirs=self._config.exclude_dirs,
            show_progress=show_progress,
        )
        return pipeline.run()

    # ── Statistics & health ───────────────────────────────────────

    def stats(self) -> Dict[str, int]:
        return self.queries.get_stats()

    def health(self) -> Dict[str, object]:
        """Small status dict for agents or readiness probes."""
        from codeledger import __version__

        return {
            "status": "ok",
            "version": __version__,
            "dbPath": str(self._store.db_path),
            "counts": self.stats(),
        }

    # ==================================================================
    # Tool boundary
    # ==================================================================

    def list_tools(self) -> List[Dict[str, Any]]:
        """Name, description and JSON input schema of every tool."""
        return [
            {
                "name": name,
                "description": description,
                "inputSchema": model.model_json_schema(by_alias=True),
            }
            for name, (model, _, description) in _TOOL_REGISTRY.items()
        ]

    def execute_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate *arguments* for tool *name* and run it.

        Always returns a dict with ``success``; on failure it carries
        ``error`` with the message of whatever went wrong.
        """
        entry = _TOOL_REGISTRY.get(name)
        if entry is None:
            return {"success": False, "error": f"Unknown tool: {name}"}
        model, handler, _ = entry
        try:
            params = parse_tool_input(model, arguments)
            payload = handler(self, params)
        except CodeLedgerError as exc:
            logger.debug(f"Tool {name} failed: {exc}")
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            logger.exception(f"Tool {name} raised an unexpected error")
            return {"success": False, "error": str(exc) or type(exc).__name__}
        return {"success": True, **payload}

    def access_resource(self, uri: str) -> Dict[str, Any]:
        """
        Read a ``codeledger://`` resource.

        Supported URIs::

            codeledger://projects
            codeledger://projects/{projectId}
            codeledger://projects/{projectId}/api-endpoints
            codeledger://projects/{projectId}/functions
            codeledger://api-endpoints/{endpointId}
            codeledger://functions/{functionId}
        """
        try:
            return {"success": True, "data": self._read_resource(uri)}
        except CodeLedgerError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            logger.exception(f"Resource {uri} raised an unexpected error")
            return {"success": False, "error": str(exc) or type(exc).__name__}

    def _read_resource(self, uri: str) -> Any:
        if not uri.startswith(RESOURCE_SCHEME):
            raise _invalid_uri(uri)
        parts = uri[len(RESOURCE_SCHEME):].strip("/").split("/")

        if parts[0] == "projects":
            if len(parts) == 1:
                return _dicts(self._store.get_all_projects())
            project = self.queries.get_project(parts[1])
            if len(parts) == 2:
                return project.to_dict()
            if len(parts) == 3 and parts[2] == "api-endpoints":
                return _dicts(self._store.get_api_endpoints(project.id))
            if len(parts) == 3 and parts[2] == "functions":
                return _dicts(self._store.get_functions(project.id))
        elif parts[0] == "api-endpoints" and len(parts) == 2:
            return self.queries.get_api_endpoint(parts[1]).to_dict()
        elif parts[0] == "functions" and len(parts) == 2:
            return self.queries.get_function(parts[1]).to_dict()
        raise _invalid_uri(uri)

    # ── Async variants ────────────────────────────────────────────
    # asyncio.to_thread() keeps store I/O off the event loop; the worker
    # thread shares the store's single locked connection.

    async def aexecute_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Async variant of :meth:`execute_tool`."""
        return await asyncio.to_thread(self.execute_tool, name, arguments)

    async def aaccess_resource(self, uri: str) -> Dict[str, Any]:
        """Async variant of :meth:`access_resource`."""
        return await asyncio.to_thread(self.access_resource, uri)

    async def ascan_project(
        self, project_id: str, file_patterns: Optional[Sequence[str]] = None,
    ) -> ScanResult:
        """Async variant of :meth:`scan_project`. Raises same exceptions as sync."""
        return await asyncio.to_thread(self.scan_project, project_id, file_patterns)

    # ── Internal helpers ──────────────────────────────────────────

    @staticmethod
    def _resolve_file(project: Project, file_path: str) -> Path:
        """Absolute path for *file_path*; relative paths are taken from the project root."""
        path = Path(file_path)
        if not path.is_absolute():
            path = Path(project.path) / path
        if not path.is_file():
            raise NotFoundError(f"File {path} not found")
        return path


def _invalid_uri(uri: str) -> CodeLedgerError:
    return CodeLedgerError(f"Invalid resource URI: {uri}")


# =============================================================================
# Tool registry: name -> (input model, handler, description)
# =============================================================================

_Handler = Callable[[CodeLedger, Any], Dict[str, Any]]

_TOOL_REGISTRY: Dict[str, Tuple[Type[ToolInput], _Handler, str]] = {
    "create_project": (
        CreateProjectInput,
        lambda lg, p: {"projectId": lg.create_project(p.name, p.path, p.description).id},
        "Create (or update) a tracked project",
    ),
    "track_api": (
        TrackApiInput,
        lambda lg, p: {"endpointId": lg.track_api(p).id},
        "Track an API endpoint",
    ),
    "scan_file_for_apis": (
        ScanFileInput,
        lambda lg, p: {"endpointIds": lg.scan_file_for_apis(p.project_id, p.file_path)},
        "Scan a file for API endpoint declarations",
    ),
    "track_function": (
        TrackFunctionInput,
        lambda lg, p: {"functionId": lg.track_function(p).id},
        "Track a function",
    ),
    "scan_file_for_functions": (
        ScanFileInput,
        lambda lg, p: {"functionIds": lg.scan_file_for_functions(p.project_id, p.file_path)},
        "Scan a file for function declarations",
    ),
    "add_usage_example": (
        AddUsageExampleInput,
        lambda lg, p: {"functionId": lg.add_usage_example(p.function_id, p.example).id},
        "Append a usage example to a function",
    ),
    "update_function_purpose": (
        UpdateFunctionPurposeInput,
        lambda lg, p: {"functionId": lg.update_function_purpose(p.function_id, p.purpose).id},
        "Update the purpose of a function",
    ),
    "query": (
        QueryInput,
        lambda lg, p: {"results": _dicts(lg.queries.query(
            p.type,
            project_id=p.project_id,
            query=p.query,
            tags=p.tags,
            path_pattern=p.path_pattern,
            method=p.method,
            name_pattern=p.name_pattern,
            implementation_path=p.implementation_path,
        ))},
        "Query projects, API endpoints and functions",
    ),
    "get_project": (
        ProjectIdInput,
        lambda lg, p: {"results": [lg.queries.get_project(p.project_id).to_dict()]},
        "Get a project by ID",
    ),
    "get_api_endpoint": (
        EndpointIdInput,
        lambda lg, p: {"results": [lg.queries.get_api_endpoint(p.endpoint_id).to_dict()]},
        "Get an API endpoint by ID",
    ),
    "get_function": (
        FunctionIdInput,
        lambda lg, p: {"results": [lg.queries.get_function(p.function_id).to_dict()]},
        "Get a function by ID",
    ),
    "get_api_endpoints_for_project": (
        ProjectIdInput,
        lambda lg, p: {"results": _dicts(lg.queries.get_api_endpoints_for_project(p.project_id))},
        "Get all API endpoints of a project",
    ),
    "get_functions_for_project": (
        ProjectIdInput,
        lambda lg, p: {"results": _dicts(lg.queries.get_functions_for_project(p.project_id))},
        "Get all functions of a project",
    ),
    "get_related_api_endpoints": (
        FunctionIdInput,
        lambda lg, p: {"results": _dicts(lg.queries.get_related_api_endpoints(p.function_id))},
        "Get the API endpoints related to a function",
    ),
    "get_related_functions": (
        EndpointIdInput,
        lambda lg, p: {"results": _dicts(lg.queries.get_related_functions(p.endpoint_id))},
        "Get the functions related to an API endpoint",
    ),
    "scan_project": (
        ScanProjectInput,
        lambda lg, p: lg.scan_project(p.project_id, p.file_patterns).to_dict(),
        "Scan a project for API endpoints and functions",
    ),
    "health": (
        NoInput,
        lambda lg, p: lg.health(),
        "Report server version and store counts",
    ),
}

TOOL_NAMES = tuple(_TOOL_REGISTRY)
