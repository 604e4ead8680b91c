"""
CodeLedger MCP Server

Exposes the CodeLedger knowledge base as tools that AI agents (Claude,
Cursor, Windsurf) can invoke natively via the Model Context Protocol.

Also exposes read-only **resources** under ``codeledger://`` and
**prompt templates** for common documentation workflows.

Start with::

    codeledger mcp                  # stdio transport (default for Cursor)
    codeledger mcp --transport sse  # SSE transport

Or programmatically::

    from codeledger.mcp.server import create_server
    server = create_server()
    server.run()

Every tool returns a JSON object with ``success``; failures carry an
``error`` message instead of raising into the transport.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from pydantic import Field

from codeledger.client import CodeLedger
from codeledger.core.config import LedgerConfig

logger = logging.getLogger(__name__)


def _compact(arguments: dict[str, Any]) -> dict[str, Any]:
    """Drop unset optional arguments so defaults apply downstream."""
    return {k: v for k, v in arguments.items() if v is not None}


def create_server(config: LedgerConfig | None = None, ledger: CodeLedger | None = None):
    """
    Build and return a configured FastMCP server instance.

    All tool invocations share one :class:`CodeLedger` (and therefore one
    store).  Pass *ledger* to control its lifecycle yourself; otherwise one
    is opened from *config* (default: ``LedgerConfig.from_env()``) and
    lives as long as the process.

    Raises:
        StoreError: The database cannot be opened.
    """
    from fastmcp import FastMCP

    cfg = config or LedgerConfig.from_env()
    lg = ledger or CodeLedger(cfg)

    mcp = FastMCP("CodeLedger")

    def _call(tool: str, **arguments: Any) -> str:
        return json.dumps(lg.execute_tool(tool, _compact(arguments)))

    # ==================================================================
    # Tools: tracking
    # ==================================================================

    @mcp.tool()
    def create_project(
        name: Annotated[str, Field(description="Project name")],
        path: Annotated[str, Field(description="Absolute path to the project root")],
        description: Annotated[str, Field(description="What the project is")],
    ) -> str:
        """Create a tracked project. Returns {success, projectId}.

        The id is derived from name and path, so calling again with the
        same pair updates the existing project instead of duplicating it.
        """
        return _call("create_project", name=name, path=path, description=description)

    @mcp.tool()
    def track_api(
        projectId: Annotated[str, Field(description="Owning project ID")],
        method: Annotated[str, Field(description="HTTP method: GET, POST, PUT, PATCH, DELETE, OPTIONS or HEAD")],
        path: Annotated[str, Field(description="Route path, e.g. '/api/users/:id'")],
        description: Annotated[str, Field(description="What the endpoint does")],
        implementationPath: Annotated[str, Field(description="File implementing the endpoint")],
        requestSchema: Annotated[
            dict | None,
            Field(default=None, description="{contentType, definition, example?} of the request body"),
        ] = None,
        responseSchema: Annotated[
            dict | None,
            Field(default=None, description="{contentType, definition, example?} of the response body"),
        ] = None,
        tags: Annotated[list[str] | None, Field(default=None, description="Tags or categories")] = None,
        relatedFunctions: Annotated[
            list[str] | None, Field(default=None, description="IDs of functions implementing this endpoint"),
        ] = None,
    ) -> str:
        """Track an API endpoint. Returns {success, endpointId}.

        Same project, method and path always map to the same endpoint id;
        tracking it again overwrites its fields and merges relatedFunctions.
        """
        return _call(
            "track_api", projectId=projectId, method=method, path=path,
            description=description, implementationPath=implementationPath,
            requestSchema=requestSchema, responseSchema=responseSchema,
            tags=tags, relatedFunctions=relatedFunctions,
        )

    @mcp.tool()
    def scan_file_for_apis(
        projectId: Annotated[str, Field(description="Owning project ID")],
        filePath: Annotated[str, Field(description="File to scan; relative paths are resolved against the project path")],
    ) -> str:
        """Detect Express/Fastify/router calls and @Get-style decorators in a file
        and track each as an endpoint. Returns {success, endpointIds}."""
        return _call("scan_file_for_apis", projectId=projectId, filePath=filePath)

    @mcp.tool()
    def track_function(
        projectId: Annotated[str, Field(description="Owning project ID")],
        name: Annotated[str, Field(description="Function name")],
        description: Annotated[str, Field(description="What the function does")],
        parameters: Annotated[
            list[dict], Field(description="List of {name, type, description, isOptional, defaultValue?}"),
        ],
        returnType: Annotated[str, Field(description="Return type")],
        returnDescription: Annotated[str, Field(description="What the return value means")],
        implementation: Annotated[str, Field(description="Source code of the function")],
        implementationPath: Annotated[str, Field(description="File containing the function")],
        startLine: Annotated[int, Field(description="1-based first line")],
        endLine: Annotated[int, Field(description="1-based last line (inclusive)")],
        purpose: Annotated[str, Field(description="Why the function exists")],
        tags: Annotated[list[str] | None, Field(default=None, description="Tags or categories")] = None,
        relatedApiEndpoints: Annotated[
            list[str] | None,
            Field(default=None, description="Endpoint IDs this function implements; each endpoint gets this function added to its relatedFunctions"),
        ] = None,
        relatedFunctions: Annotated[
            list[str] | None, Field(default=None, description="IDs of related functions"),
        ] = None,
        usageExamples: Annotated[
            list[str] | None, Field(default=None, description="Free-text usage examples"),
        ] = None,
    ) -> str:
        """Track a function. Returns {success, functionId}."""
        return _call(
            "track_function", projectId=projectId, name=name, description=description,
            parameters=parameters, returnType=returnType, returnDescription=returnDescription,
            implementation=implementation, implementationPath=implementationPath,
            startLine=startLine, endLine=endLine, purpose=purpose, tags=tags,
            relatedApiEndpoints=relatedApiEndpoints, relatedFunctions=relatedFunctions,
            usageExamples=usageExamples,
        )

    @mcp.tool()
    def scan_file_for_functions(
        projectId: Annotated[str, Field(description="Owning project ID")],
        filePath: Annotated[str, Field(description="File to scan; relative paths are resolved against the project path")],
    ) -> str:
        """Detect function, arrow-function and method declarations in a file and
        track each. Returns {success, functionIds}. Heuristic: call sites can
        be reported as methods."""
        return _call("scan_file_for_functions", projectId=projectId, filePath=filePath)

    @mcp.tool()
    def add_usage_example(
        functionId: Annotated[str, Field(description="Function ID")],
        example: Annotated[str, Field(description="Usage example text or code")],
    ) -> str:
        """Append a usage example to a function. Returns {success, functionId}."""
        return _call("add_usage_example", functionId=functionId, example=example)

    @mcp.tool()
    def update_function_purpose(
        functionId: Annotated[str, Field(description="Function ID")],
        purpose: Annotated[str, Field(description="New purpose text")],
    ) -> str:
        """Replace the purpose of a function. Returns {success, functionId}."""
        return _call("update_function_purpose", functionId=functionId, purpose=purpose)

    @mcp.tool()
    def scan_project(
        projectId: Annotated[str, Field(description="Project ID")],
        filePatterns: Annotated[
            list[str] | None,
            Field(default=None, description="Filename globs to scan (default: ['*.ts', '*.js'])"),
        ] = None,
    ) -> str:
        """Scan every matching file under the project path for endpoints and
        functions. Returns {success, scannedFiles, apiEndpoints, functions,
        apiEndpointIds, functionIds}."""
        return _call("scan_project", projectId=projectId, filePatterns=filePatterns)

    # ==================================================================
    # Tools: queries
    # ==================================================================

    @mcp.tool()
    def query(
        type: Annotated[str, Field(description="'project', 'api-endpoint', 'function' or 'all'")],
        projectId: Annotated[str | None, Field(default=None, description="Restrict to one project")] = None,
        query: Annotated[
            str | None,
            Field(default=None, description="Case-insensitive text (projects: name/description; endpoints: path/description/method; functions: name/description/purpose/implementation)"),
        ] = None,
        tags: Annotated[list[str] | None, Field(default=None, description="Match entities carrying any of these tags")] = None,
        pathPattern: Annotated[str | None, Field(default=None, description="Regex searched in endpoint paths")] = None,
        method: Annotated[str | None, Field(default=None, description="HTTP method of endpoints")] = None,
        namePattern: Annotated[str | None, Field(default=None, description="Regex searched in function names, e.g. '^get'")] = None,
        implementationPath: Annotated[str | None, Field(default=None, description="Substring of the implementation path")] = None,
    ) -> str:
        """Search tracked entities; all given filters must match. Returns {success, results}."""
        return _call(
            "query", type=type, projectId=projectId, query=query, tags=tags,
            pathPattern=pathPattern, method=method, namePattern=namePattern,
            implementationPath=implementationPath,
        )

    @mcp.tool()
    def get_project(projectId: Annotated[str, Field(description="Project ID")]) -> str:
        """Get a project by ID. Returns {success, results: [project]}."""
        return _call("get_project", projectId=projectId)

    @mcp.tool()
    def get_api_endpoint(endpointId: Annotated[str, Field(description="API endpoint ID")]) -> str:
        """Get an API endpoint by ID. Returns {success, results: [endpoint]}."""
        return _call("get_api_endpoint", endpointId=endpointId)

    @mcp.tool()
    def get_function(functionId: Annotated[str, Field(description="Function ID")]) -> str:
        """Get a function by ID. Returns {success, results: [function]}."""
        return _call("get_function", functionId=functionId)

    @mcp.tool()
    def get_api_endpoints_for_project(projectId: Annotated[str, Field(description="Project ID")]) -> str:
        """List the endpoints recorded on a project. Returns {success, results}."""
        return _call("get_api_endpoints_for_project", projectId=projectId)

    @mcp.tool()
    def get_functions_for_project(projectId: Annotated[str, Field(description="Project ID")]) -> str:
        """List the functions recorded on a project. Returns {success, results}."""
        return _call("get_functions_for_project", projectId=projectId)

    @mcp.tool()
    def get_related_api_endpoints(functionId: Annotated[str, Field(description="Function ID")]) -> str:
        """List the endpoints a function is related to. Returns {success, results}."""
        return _call("get_related_api_endpoints", functionId=functionId)

    @mcp.tool()
    def get_related_functions(endpointId: Annotated[str, Field(description="API endpoint ID")]) -> str:
        """List the functions related to an endpoint. Returns {success, results}."""
        return _call("get_related_functions", endpointId=endpointId)

    @mcp.tool()
    def health() -> str:
        """Report server version, database path and entity counts."""
        return _call("health")

    # ==================================================================
    # Resources
    # ==================================================================

    def _read(uri: str) -> str:
        return json.dumps(lg.access_resource(uri))

    @mcp.resource("codeledger://projects")
    def projects_resource() -> str:
        """All tracked projects."""
        return _read("codeledger://projects")

    @mcp.resource("codeledger://projects/{project_id}")
    def project_resource(project_id: str) -> str:
        """One project."""
        return _read(f"codeledger://projects/{project_id}")

    @mcp.resource("codeledger://projects/{project_id}/api-endpoints")
    def project_endpoints_resource(project_id: str) -> str:
        """API endpoints owned by a project."""
        return _read(f"codeledger://projects/{project_id}/api-endpoints")

    @mcp.resource("codeledger://projects/{project_id}/functions")
    def project_functions_resource(project_id: str) -> str:
        """Functions owned by a project."""
        return _read(f"codeledger://projects/{project_id}/functions")

    @mcp.resource("codeledger://api-endpoints/{endpoint_id}")
    def endpoint_resource(endpoint_id: str) -> str:
        """One API endpoint."""
        return _read(f"codeledger://api-endpoints/{endpoint_id}")

    @mcp.resource("codeledger://functions/{function_id}")
    def function_resource(function_id: str) -> str:
        """One function."""
        return _read(f"codeledger://functions/{function_id}")

    # ==================================================================
    # Prompts
    # ==================================================================

    @mcp.prompt()
    def document_project(path: str, name: str = "") -> str:
        """Register a codebase and build its knowledge base."""
        label = name or path
        return (
            f"Document the project '{label}' at {path}:\n"
            f"1. Call create_project with name='{label}', path='{path}' and a one-line description.\n"
            "2. Call scan_project with the returned projectId.\n"
            "3. For the most important endpoints, call track_api again with request/response "
            "schemas, and link implementing functions via track_function(relatedApiEndpoints=[...]).\n"
            "4. Use update_function_purpose and add_usage_example to refine what the scanner guessed."
        )

    @mcp.prompt()
    def trace_endpoint(endpoint_id: str) -> str:
        """Explain how an endpoint is implemented."""
        return (
            f"Explain how API endpoint {endpoint_id} is implemented:\n"
            f"1. Call get_api_endpoint(endpointId='{endpoint_id}').\n"
            f"2. Call get_related_functions(endpointId='{endpoint_id}').\n"
            "3. For each related function, call get_function and summarise its purpose, "
            "parameters and usage examples.\n"
            "If no functions are related yet, search with query(type='function', "
            "implementationPath=<the endpoint's implementationPath>)."
        )

    logger.debug("MCP server configured")
    return mcp
