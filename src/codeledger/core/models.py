"""
Entity records tracked by CodeLedger: projects, API endpoints and functions.

Attributes are snake_case; :meth:`to_dict` emits the camelCase shape that
MCP clients send and receive (``projectId``, ``relatedFunctions`` ...).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from codeledger.core import ids

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD")


def utc_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _unique(values) -> List[str]:
    seen = set()
    out: List[str] = []
    for v in values or ():
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


# =============================================================================
# Value types
# =============================================================================

@dataclass
class Schema:
    """Request or response body description for an endpoint."""
    content_type: str
    definition: str
    example: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"contentType": self.content_type, "definition": self.definition}
        if self.example is not None:
            d["example"] = self.example
        return d

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Schema"]:
        if not data:
            return None
        return cls(
            content_type=data.get("contentType", data.get("content_type", "")),
            definition=data.get("definition", ""),
            example=data.get("example"),
        )


@dataclass
class Parameter:
    """One entry of a function's parameter list."""
    name: str
    type: str = "any"
    description: str = ""
    is_optional: bool = False
    default_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "isOptional": self.is_optional,
        }
        if self.default_value is not None:
            d["defaultValue"] = self.default_value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Parameter":
        return cls(
            name=data["name"],
            type=data.get("type") or "any",
            description=data.get("description", ""),
            is_optional=bool(data.get("isOptional", data.get("is_optional", False))),
            default_value=data.get("defaultValue", data.get("default_value")),
        )


# =============================================================================
# Entities
# =============================================================================

@dataclass
class Project:
    id: str
    name: str
    path: str
    description: str
    created_at: str
    updated_at: str
    api_endpoints: List[str] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "apiEndpoints": list(self.api_endpoints),
            "functions": list(self.functions),
        }


@dataclass
class ApiEndpoint:
    id: str
    project_id: str
    method: str
    path: str
    description: str
    implementation_path: str
    created_at: str
    updated_at: str
    request_schema: Optional[Schema] = None
    response_schema: Optional[Schema] = None
    tags: List[str] = field(default_factory=list)
    related_functions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "method": self.method,
            "path": self.path,
            "description": self.description,
            "implementationPath": self.implementation_path,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
            "relatedFunctions": list(self.related_functions),
        }
        if self.request_schema is not None:
            d["requestSchema"] = self.request_schema.to_dict()
        if self.response_schema is not None:
            d["responseSchema"] = self.response_schema.to_dict()
        return d


@dataclass
class Function:
    id: str
    project_id: str
    name: str
    description: str
    parameters: List[Parameter]
    return_type: str
    return_description: str
    implementation: str
    implementation_path: str
    start_line: int
    end_line: int
    purpose: str
    created_at: str
    updated_at: str
    tags: List[str] = field(default_factory=list)
    related_api_endpoints: List[str] = field(default_factory=list)
    related_functions: List[str] = field(default_factory=list)
    usage_examples: List[str] = field(default_factory=list)

    def __post_init__(self):
        # A function is never related to itself.
        self.related_functions = [f for f in self.related_functions if f != self.id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "description": self.description,
            "parameters": [p.to_dict() for p in self.parameters],
            "returnType": self.return_type,
            "returnDescription": self.return_description,
            "implementation": self.implementation,
            "implementationPath": self.implementation_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "purpose": self.purpose,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
            "relatedApiEndpoints": list(self.related_api_endpoints),
            "relatedFunctions": list(self.related_functions),
            "usageExamples": list(self.usage_examples),
        }


# =============================================================================
# Factories
# =============================================================================

def new_project(name: str, path: str, description: str) -> Project:
    now = utc_now()
    return Project(
        id=ids.project_id(name, path),
        name=name,
        path=path,
        description=description,
        created_at=now,
        updated_at=now,
    )


def new_api_endpoint(
    project_id: str,
    method: str,
    path: str,
    description: str,
    implementation_path: str,
    request_schema: Optional[Schema] = None,
    response_schema: Optional[Schema] = None,
    tags: Optional[List[str]] = None,
    related_functions: Optional[List[str]] = None,
) -> ApiEndpoint:
    method = method.upper()
    now = utc_now()
    return ApiEndpoint(
        id=ids.api_endpoint_id(project_id, method, path),
        project_id=project_id,
        method=method,
        path=path,
        description=description,
        implementation_path=implementation_path,
        created_at=now,
        updated_at=now,
        request_schema=request_schema,
        response_schema=response_schema,
        tags=_unique(tags),
        related_functions=_unique(related_functions),
    )


def new_function(
    project_id: str,
    name: str,
    description: str,
    parameters: List[Parameter],
    return_type: str,
    return_description: str,
    implementation: str,
    implementation_path: str,
    start_line: int,
    end_line: int,
    purpose: str,
    tags: Optional[List[str]] = None,
    related_api_endpoints: Optional[List[str]] = None,
    related_functions: Optional[List[str]] = None,
    usage_examples: Optional[List[str]] = None,
) -> Function:
    now = utc_now()
    return Function(
        id=ids.function_id(project_id, name, implementation_path),
        project_id=project_id,
        name=name,
        description=description,
        parameters=list(parameters),
        return_type=return_type,
        return_description=return_description,
        implementation=implementation,
        implementation_path=implementation_path,
        start_line=start_line,
        end_line=end_line,
        purpose=purpose,
        created_at=now,
        updated_at=now,
        tags=_unique(tags),
        related_api_endpoints=_unique(related_api_endpoints),
        related_functions=_unique(related_functions),
        usage_examples=list(usage_examples or []),
    )
