"""
CodeLedger Query Engine

Filtered search over stored projects, endpoints and functions, plus the
point lookups behind the ``get_*`` tools and resources.

Filters combine with AND; within ``tags`` any one tag is enough.  Regex
filters (``path_pattern``, ``name_pattern``) use ``re.search`` so they
match anywhere unless the pattern anchors itself.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Union

from codeledger.core.models import ApiEndpoint, Function, Project
from codeledger.core.store import EntityStore
from codeledger.exceptions import InvalidInputError, NotFoundError, PatternError

logger = logging.getLogger(__name__)

QUERY_TYPES = ("project", "api-endpoint", "function", "all")

Entity = Union[Project, ApiEndpoint, Function]


def compile_pattern(pattern: Optional[str], label: str) -> Optional[Pattern]:
    """Compile a user-supplied regex, raising :class:`PatternError` if malformed."""
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise PatternError(f"Invalid {label} '{pattern}': {exc}") from exc


@dataclass
class QueryFilters:
    """Normalised filter set for :meth:`QueryEngine.query`."""
    project_id: Optional[str] = None
    query: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    path_pattern: Optional[Pattern] = None
    method: Optional[str] = None
    name_pattern: Optional[Pattern] = None
    implementation_path: Optional[str] = None

    # ── Shared predicates ─────────────────────────────────────────

    def _text_hit(self, *fields: str) -> bool:
        if not self.query:
            return True
        needle = self.query.lower()
        return any(needle in (f or "").lower() for f in fields)

    def _tags_hit(self, entity_tags: Iterable[str]) -> bool:
        if not self.tags:
            return True
        return any(t in entity_tags for t in self.tags)

    def _impl_hit(self, stored_path: str) -> bool:
        if not self.implementation_path:
            return True
        return self.implementation_path in (stored_path or "")

    # ── Per-kind matchers ─────────────────────────────────────────

    def match_project(self, project: Project) -> bool:
        return (
            self._text_hit(project.name, project.description)
            and self._impl_hit(project.path)
        )

    def match_endpoint(self, endpoint: ApiEndpoint) -> bool:
        if not self._text_hit(endpoint.path, endpoint.description, endpoint.method):
            return False
        if not self._tags_hit(endpoint.tags):
            return False
        if self.path_pattern is not None and not self.path_pattern.search(endpoint.path):
            return False
        if self.method and endpoint.method != self.method.upper():
            return False
        return self._impl_hit(endpoint.implementation_path)

    def match_function(self, function: Function) -> bool:
        if not self._text_hit(function.name, function.description,
                              function.purpose, function.implementation):
            return False
        if not self._tags_hit(function.tags):
            return False
        if self.name_pattern is not None and not self.name_pattern.search(function.name):
            return False
        return self._impl_hit(function.implementation_path)


class QueryEngine:
    """
    Read-only access to the entity store.

    Args:
        store: The shared :class:`EntityStore` handle.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    # ==================================================================
    # Filtered query
    # ==================================================================

    def query(
        self,
        type: str,
        *,
        project_id: Optional[str] = None,
        query: Optional[str] = None,
        tags: Optional[List[str]] = None,
        path_pattern: Optional[str] = None,
        method: Optional[str] = None,
        name_pattern: Optional[str] = None,
        implementation_path: Optional[str] = None,
    ) -> List[Entity]:
        """
        Return every entity of *type* that passes all given filters.

        Args:
            type: ``'project'`` | ``'api-endpoint'`` | ``'function'`` | ``'all'``.
            project_id: Only scan this project's children (and the project itself).
            query: Case-insensitive substring over kind-specific text fields.
            tags: Match when any of these tags is present.
            path_pattern: Regex searched in endpoint paths.
            method: HTTP method, compared upper-cased.
            name_pattern: Regex searched in function names.
            implementation_path: Substring of the stored path.

        Raises:
            InvalidInputError: Unknown *type*.
            PatternError: A regex filter does not compile.
        """
        if type not in QUERY_TYPES:
            raise InvalidInputError(
                f"Invalid query type '{type}'. Expected one of: {', '.join(QUERY_TYPES)}"
            )

        filters = QueryFilters(
            project_id=project_id,
            query=query,
            tags=list(tags or []),
            path_pattern=compile_pattern(path_pattern, "pathPattern"),
            method=method,
            name_pattern=compile_pattern(name_pattern, "namePattern"),
            implementation_path=implementation_path,
        )

        if project_id:
            project = self.store.get_project(project_id)
            projects = [project] if project is not None else []
        else:
            projects = self.store.get_all_projects()

        results: List[Entity] = []
        if type in ("project", "all"):
            results.extend(p for p in projects if filters.match_project(p))

        if type in ("api-endpoint", "all"):
            for pid in self._scope_ids(projects, project_id):
                results.extend(e for e in self.store.get_api_endpoints(pid)
                               if filters.match_endpoint(e))

        if type in ("function", "all"):
            for pid in self._scope_ids(projects, project_id):
                results.extend(f for f in self.store.get_functions(pid)
                               if filters.match_function(f))

        logger.debug(f"query type={type} project={project_id} -> {len(results)} result(s)")
        return results

    @staticmethod
    def _scope_ids(projects: List[Project], project_id: Optional[str]) -> List[str]:
        # An explicit project id scopes children even if the project row is gone.
        if project_id:
            return [project_id]
        return [p.id for p in projects]

    # ==================================================================
    # Point lookups
    # ==================================================================

    def get_project(self, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project with ID {project_id} not found")
        return project

    def get_api_endpoint(self, endpoint_id: str) -> ApiEndpoint:
        endpoint = self.store.get_api_endpoint(endpoint_id)
        if endpoint is None:
            raise NotFoundError(f"API endpoint with ID {endpoint_id} not found")
        return endpoint

    def get_function(self, function_id: str) -> Function:
        function = self.store.get_function(function_id)
        if function is None:
            raise NotFoundError(f"Function with ID {function_id} not found")
        return function

    def get_api_endpoints_for_project(self, project_id: str) -> List[ApiEndpoint]:
        project = self.get_project(project_id)
        return self._resolve(project.api_endpoints, self.store.get_api_endpoint)

    def get_functions_for_project(self, project_id: str) -> List[Function]:
        project = self.get_project(project_id)
        return self._resolve(project.functions, self.store.get_function)

    def get_related_api_endpoints(self, function_id: str) -> List[ApiEndpoint]:
        function = self.get_function(function_id)
        return self._resolve(function.related_api_endpoints, self.store.get_api_endpoint)

    def get_related_functions(self, endpoint_id: str) -> List[Function]:
        endpoint = self.get_api_endpoint(endpoint_id)
        return self._resolve(endpoint.related_functions, self.store.get_function)

    def get_stats(self) -> Dict[str, int]:
        return self.store.get_stats()

    @staticmethod
    def _resolve(entity_ids: List[str], getter) -> list:
        """Load each id in order, dropping ids that no longer resolve."""
        resolved = []
        for entity_id in entity_ids:
            entity = getter(entity_id)
            if entity is None:
                logger.debug(f"Skipping dangling reference {entity_id}")
                continue
            resolved.append(entity)
        return resolved
