"""
Relationship maintenance for the entity store.

Keeps the two sides of each link in step after every endpoint/function
write:

* endpoint saved  -> listed on its project
* function saved  -> listed on its project, and on every endpoint in its
  ``relatedApiEndpoints`` (one hop only, the endpoint update does not
  cascade again)
* function deleted -> removed from its project and from every endpoint in
  its ``relatedApiEndpoints``
* endpoint deleted -> removed from its project only.  The functions that
  list it keep the stale id; readers skip ids that no longer resolve and
  the next save of such a function re-syncs the surviving links.

A missing owner project is skipped silently; the entity write itself has
already succeeded by the time the maintainer runs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from codeledger.core.models import ApiEndpoint, Function, utc_now

if TYPE_CHECKING:
    from codeledger.core.store import EntityStore

logger = logging.getLogger(__name__)


class RelationshipMaintainer:
    """Runs the link updates that follow an endpoint or function write."""

    def __init__(self, store: EntityStore):
        self.store = store

    # ── Saves ─────────────────────────────────────────────────────

    def on_endpoint_saved(self, endpoint: ApiEndpoint) -> None:
        project = self.store.get_project(endpoint.project_id)
        if project is None:
            logger.debug(f"Endpoint {endpoint.id}: owner project {endpoint.project_id} not found")
            return
        if endpoint.id not in project.api_endpoints:
            project.api_endpoints.append(endpoint.id)
            project.updated_at = utc_now()
            self.store._write_project_lists(project)

    def on_function_saved(self, function: Function) -> None:
        project = self.store.get_project(function.project_id)
        if project is None:
            logger.debug(f"Function {function.id}: owner project {function.project_id} not found")
        elif function.id not in project.functions:
            project.functions.append(function.id)
            project.updated_at = utc_now()
            self.store._write_project_lists(project)

        for endpoint_id in function.related_api_endpoints:
            endpoint = self.store.get_api_endpoint(endpoint_id)
            if endpoint is None:
                logger.debug(f"Function {function.id}: related endpoint {endpoint_id} not found")
                continue
            if function.id not in endpoint.related_functions:
                self.store._write_endpoint_links(
                    endpoint.id, endpoint.related_functions + [function.id], touch=True,
                )

    # ── Deletes ───────────────────────────────────────────────────

    def on_endpoint_deleted(self, endpoint: ApiEndpoint) -> None:
        project = self.store.get_project(endpoint.project_id)
        if project is None or endpoint.id not in project.api_endpoints:
            return
        project.api_endpoints = [e for e in project.api_endpoints if e != endpoint.id]
        project.updated_at = utc_now()
        self.store._write_project_lists(project)

    def on_function_deleted(self, function: Function) -> None:
        project = self.store.get_project(function.project_id)
        if project is not None and function.id in project.functions:
            project.functions = [f for f in project.functions if f != function.id]
            project.updated_at = utc_now()
            self.store._write_project_lists(project)

        for endpoint_id in function.related_api_endpoints:
            endpoint = self.store.get_api_endpoint(endpoint_id)
            if endpoint is None or function.id not in endpoint.related_functions:
                continue
            self.store._write_endpoint_links(
                endpoint.id,
                [f for f in endpoint.related_functions if f != function.id],
                touch=True,
            )
