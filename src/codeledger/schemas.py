"""
Typed inputs for every CodeLedger tool.

Each tool name maps to exactly one model (see the tool registry in
:mod:`codeledger.client`).  Models accept the camelCase keys MCP clients
send (``projectId``) as well as snake_case, and :func:`parse_tool_input`
turns pydantic validation errors into one short :class:`InvalidInputError`
message such as ``"Project ID is required"``.
"""

import re
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from codeledger.core.models import HTTP_METHODS, Parameter, Schema
from codeledger.exceptions import InvalidInputError

# Labels for fields whose humanised alias reads badly.
_FIELD_LABELS = {
    "projectId": "Project ID",
    "functionId": "Function ID",
    "endpointId": "Endpoint ID",
    "method": "HTTP method",
    "filePath": "File path",
    "implementationPath": "Implementation path",
}


class ToolInput(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Nested records
# =============================================================================

class SchemaInput(ToolInput):
    content_type: str
    definition: str
    example: Optional[str] = None

    def to_schema(self) -> Schema:
        return Schema(self.content_type, self.definition, self.example)


class ParameterInput(ToolInput):
    name: str = Field(min_length=1)
    type: str = "any"
    description: str = ""
    is_optional: bool = False
    default_value: Optional[str] = None

    def to_parameter(self) -> Parameter:
        return Parameter(
            name=self.name,
            type=self.type or "any",
            description=self.description,
            is_optional=self.is_optional,
            default_value=self.default_value,
        )


# =============================================================================
# Tool inputs
# =============================================================================

class CreateProjectInput(ToolInput):
    name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    description: str


class TrackApiInput(ToolInput):
    project_id: str = Field(min_length=1)
    method: str = Field(min_length=1)
    path: str = Field(min_length=1)
    description: str
    implementation_path: str = Field(min_length=1)
    request_schema: Optional[SchemaInput] = None
    response_schema: Optional[SchemaInput] = None
    tags: Optional[List[str]] = None
    related_functions: Optional[List[str]] = None

    @field_validator("method")
    @classmethod
    def _known_method(cls, value: str) -> str:
        upper = value.upper()
        if upper not in HTTP_METHODS:
            raise ValueError(f"must be one of {', '.join(HTTP_METHODS)}")
        return upper


class ScanFileInput(ToolInput):
    project_id: str = Field(min_length=1)
    file_path: str = Field(min_length=1)


class TrackFunctionInput(ToolInput):
    project_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str
    parameters: List[ParameterInput]
    return_type: str
    return_description: str
    implementation: str
    implementation_path: str = Field(min_length=1)
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    purpose: str
    tags: Optional[List[str]] = None
    related_api_endpoints: Optional[List[str]] = None
    related_functions: Optional[List[str]] = None
    usage_examples: Optional[List[str]] = None

    @model_validator(mode="after")
    def _line_order(self) -> "TrackFunctionInput":
        if self.end_line < self.start_line:
            raise ValueError("endLine must not be before startLine")
        return self


class AddUsageExampleInput(ToolInput):
    function_id: str = Field(min_length=1)
    example: str = Field(min_length=1)


class UpdateFunctionPurposeInput(ToolInput):
    function_id: str = Field(min_length=1)
    purpose: str = Field(min_length=1)


class QueryInput(ToolInput):
    type: Literal["project", "api-endpoint", "function", "all"]
    project_id: Optional[str] = None
    query: Optional[str] = None
    tags: Optional[List[str]] = None
    path_pattern: Optional[str] = None
    method: Optional[str] = None
    name_pattern: Optional[str] = None
    implementation_path: Optional[str] = None


class ProjectIdInput(ToolInput):
    project_id: str = Field(min_length=1)


class EndpointIdInput(ToolInput):
    endpoint_id: str = Field(min_length=1)


class FunctionIdInput(ToolInput):
    function_id: str = Field(min_length=1)


class ScanProjectInput(ToolInput):
    project_id: str = Field(min_length=1)
    file_patterns: Optional[List[str]] = None


class NoInput(ToolInput):
    pass


# =============================================================================
# Error conversion
# =============================================================================

def _label(alias: str) -> str:
    if "_" in alias:
        head, *rest = alias.split("_")
        alias = head + "".join(w.title() for w in rest)
    if alias in _FIELD_LABELS:
        return _FIELD_LABELS[alias]
    words = re.sub(r"(?<!^)(?=[A-Z])", " ", alias).lower()
    return words[:1].upper() + words[1:]


def _describe(error: Dict[str, Any]) -> str:
    loc = [str(part) for part in error.get("loc", ()) if not isinstance(part, int)]
    alias = loc[-1] if loc else ""
    kind = error.get("type", "")
    if kind in ("missing", "string_too_short") and alias:
        return f"{_label(alias)} is required"
    message = error.get("msg", "invalid value")
    message = re.sub(r"^Value error, ", "", message)
    if not alias:
        return message
    return f"Invalid {'.'.join(loc)}: {message}"


def parse_tool_input(model: Type[ToolInput], arguments: Optional[Dict[str, Any]]) -> ToolInput:
    """Validate *arguments* against *model*.

    Raises :class:`InvalidInputError` carrying the first problem found.
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as exc:
        errors = exc.errors()
        raise InvalidInputError(_describe(errors[0]) if errors else str(exc)) from exc
