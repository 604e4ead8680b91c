"""
Tests for the SQLite entity store and the relationship cascades it runs
(codeledger.core.store, codeledger.core.relations).
"""

import sqlite3
import threading

import pytest

from codeledger.core.models import (
    Parameter,
    Schema,
    new_api_endpoint,
    new_function,
    new_project,
)
from codeledger.core.store import EntityStore
from codeledger.exceptions import StoreError


# Older than any timestamp utc_now() can produce.
STALE = "2000-01-01T00:00:00.000Z"


def _make_stale(store, table, entity_id):
    conn = store._get_connection()
    conn.execute(f"UPDATE {table} SET updated_at = ? WHERE id = ?", (STALE, entity_id))
    conn.commit()


def _function(project_id, name="getUser", path="src/users.ts", **kwargs):
    return new_function(
        project_id=project_id,
        name=name,
        description=f"Function {name}",
        parameters=[Parameter("id", "string", "Parameter id")],
        return_type="User",
        return_description="Returns User",
        implementation=f"function {name}(id: string) {{}}",
        implementation_path=path,
        start_line=1,
        end_line=1,
        purpose="testing",
        **kwargs,
    )


@pytest.fixture
def project(store):
    return store.save_project(new_project("shop", "/src/shop", "Storefront"))


# =============================================================================
# Projects
# =============================================================================


class TestProjects:
    """Project CRUD."""

    def test_get_missing_returns_none(self, store):
        assert store.get_project("project_missing") is None

    def test_save_and_get(self, store, project):
        loaded = store.get_project(project.id)
        assert loaded.name == "shop"
        assert loaded.path == "/src/shop"
        assert loaded.api_endpoints == []
        assert loaded.functions == []

    def test_resave_overwrites_scalars_keeps_created_at(self, store, project):
        again = new_project("shop", "/src/shop", "Storefront v2")
        saved = store.save_project(again)
        assert saved.description == "Storefront v2"
        assert saved.created_at == project.created_at
        assert len(store.get_all_projects()) == 1

    def test_delete(self, store, project):
        assert store.delete_project(project.id) is True
        assert store.get_project(project.id) is None
        assert store.delete_project(project.id) is False


# =============================================================================
# Endpoints
# =============================================================================


class TestEndpoints:
    """Endpoint upsert and project listing."""

    def test_same_key_twice_is_one_row_with_second_description(self, store, project):
        store.save_api_endpoint(new_api_endpoint(project.id, "GET", "/users", "first", "a.ts"))
        store.save_api_endpoint(new_api_endpoint(project.id, "GET", "/users", "second", "a.ts"))

        endpoints = store.get_api_endpoints(project.id)
        assert len(endpoints) == 1
        assert endpoints[0].description == "second"
        assert store.get_project(project.id).api_endpoints == [endpoints[0].id]

    def test_schemas_and_tags_persist(self, store, project):
        ep = new_api_endpoint(
            project.id, "post", "/users", "create", "a.ts",
            request_schema=Schema("application/json", "{ name: string }", '{"name": "x"}'),
            response_schema=Schema("application/json", "User"),
            tags=["users", "write", "users"],
        )
        saved = store.save_api_endpoint(ep)
        assert saved.method == "POST"
        assert saved.request_schema.example == '{"name": "x"}'
        assert saved.response_schema.example is None
        assert saved.tags == ["users", "write"]

    def test_related_functions_merge_on_resave(self, store, project):
        base = new_api_endpoint(project.id, "GET", "/u", "d", "a.ts", related_functions=["function_a"])
        store.save_api_endpoint(base)
        again = new_api_endpoint(project.id, "GET", "/u", "d", "a.ts", related_functions=["function_b"])
        saved = store.save_api_endpoint(again)
        assert saved.related_functions == ["function_a", "function_b"]

    def test_endpoint_without_project_is_stored_as_orphan(self, store):
        ep = store.save_api_endpoint(new_api_endpoint("project_ghost", "GET", "/x", "d", "a.ts"))
        assert store.get_api_endpoint(ep.id) is not None
        assert store.get_api_endpoints("project_ghost")[0].id == ep.id

    def test_updated_at_bumped_when_listed(self, store, project):
        _make_stale(store, "projects", project.id)
        store.save_api_endpoint(new_api_endpoint(project.id, "GET", "/x", "d", "a.ts"))
        assert store.get_project(project.id).updated_at > STALE


# =============================================================================
# Functions
# =============================================================================


class TestFunctions:
    """Function upsert and field round-trips."""

    def test_save_and_get_roundtrip(self, store, project):
        fn = _function(project.id, usage_examples=["getUser('1')"], tags=["users"])
        saved = store.save_function(fn)
        assert saved.parameters[0].name == "id"
        assert saved.parameters[0].type == "string"
        assert saved.usage_examples == ["getUser('1')"]
        assert saved.tags == ["users"]
        assert store.get_project(project.id).functions == [saved.id]

    def test_self_reference_dropped(self, store, project):
        fn = _function(project.id)
        fn.related_functions = [fn.id, "function_other"]
        saved = store.save_function(fn)
        assert saved.related_functions == ["function_other"]

    def test_default_value_persists(self, store, project):
        fn = _function(project.id)
        fn.parameters = [Parameter("n", "number", "Parameter n", True, "10")]
        saved = store.save_function(fn)
        assert saved.parameters[0].default_value == "10"
        assert saved.parameters[0].to_dict()["defaultValue"] == "10"


# =============================================================================
# Relationship cascades
# =============================================================================


class TestRelationships:
    """Bidirectional links between endpoints and functions."""

    @pytest.fixture
    def endpoint(self, store, project):
        return store.save_api_endpoint(new_api_endpoint(project.id, "GET", "/users/:id", "d", "a.ts"))

    def test_function_save_links_endpoint(self, store, project, endpoint):
        fn = store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        assert fn.id in store.get_api_endpoint(endpoint.id).related_functions

    def test_function_save_bumps_endpoint_updated_at(self, store, project, endpoint):
        _make_stale(store, "api_endpoints", endpoint.id)
        store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        assert store.get_api_endpoint(endpoint.id).updated_at > STALE

    def test_link_not_duplicated_on_resave(self, store, project, endpoint):
        store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        fn = store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        assert store.get_api_endpoint(endpoint.id).related_functions == [fn.id]

    def test_missing_related_endpoint_is_skipped(self, store, project):
        fn = store.save_function(_function(project.id, related_api_endpoints=["endpoint_gone"]))
        assert fn.related_api_endpoints == ["endpoint_gone"]

    def test_endpoint_save_does_not_touch_functions(self, store, project):
        fn = store.save_function(_function(project.id))
        store.save_api_endpoint(
            new_api_endpoint(project.id, "GET", "/x", "d", "a.ts", related_functions=[fn.id])
        )
        assert store.get_function(fn.id).related_api_endpoints == []

    def test_function_delete_cleans_endpoints_and_project(self, store, project, endpoint):
        fn = store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        assert store.delete_function(fn.id) is True

        assert store.get_function(fn.id) is None
        assert fn.id not in store.get_api_endpoint(endpoint.id).related_functions
        assert fn.id not in store.get_project(project.id).functions

    def test_function_delete_bumps_project_and_endpoint_updated_at(self, store, project, endpoint):
        fn = store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        _make_stale(store, "projects", project.id)
        _make_stale(store, "api_endpoints", endpoint.id)

        store.delete_function(fn.id)
        assert store.get_project(project.id).updated_at > STALE
        assert store.get_api_endpoint(endpoint.id).updated_at > STALE

    def test_function_delete_leaves_unlinked_endpoint_alone(self, store, project, endpoint):
        fn = store.save_function(_function(project.id))
        _make_stale(store, "api_endpoints", endpoint.id)

        store.delete_function(fn.id)
        assert store.get_api_endpoint(endpoint.id).updated_at == STALE

    def test_endpoint_delete_leaves_function_side(self, store, project, endpoint):
        fn = store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        assert store.delete_api_endpoint(endpoint.id) is True

        assert endpoint.id not in store.get_project(project.id).api_endpoints
        # The function keeps its reference to the deleted endpoint.
        assert store.get_function(fn.id).related_api_endpoints == [endpoint.id]

    def test_endpoint_recreated_is_relinked_on_function_resave(self, store, project, endpoint):
        fn = store.save_function(_function(project.id, related_api_endpoints=[endpoint.id]))
        store.delete_api_endpoint(endpoint.id)
        store.save_api_endpoint(new_api_endpoint(project.id, "GET", "/users/:id", "d", "a.ts"))
        assert store.get_api_endpoint(endpoint.id).related_functions == []

        store.save_function(store.get_function(fn.id))
        assert store.get_api_endpoint(endpoint.id).related_functions == [fn.id]

    def test_delete_missing_returns_false(self, store):
        assert store.delete_function("function_missing") is False
        assert store.delete_api_endpoint("endpoint_missing") is False

    def test_function_relations_persist_in_order(self, store, project):
        fn = _function(project.id, related_functions=["function_b", "function_a"])
        saved = store.save_function(fn)
        assert saved.related_functions == ["function_b", "function_a"]


# =============================================================================
# Stats and errors
# =============================================================================


class TestStoreMisc:
    """Statistics, connection lifecycle and error wrapping."""

    def test_stats_counts(self, store, project):
        ep = store.save_api_endpoint(new_api_endpoint(project.id, "GET", "/x", "d", "a.ts"))
        store.save_function(_function(project.id, related_api_endpoints=[ep.id]))
        stats = store.get_stats()
        assert stats["projects"] == 1
        assert stats["api_endpoints"] == 1
        assert stats["functions"] == 1
        # One row on each side of the link.
        assert stats["endpoint_function_links"] == 2

    def test_close_is_idempotent_and_reopens(self, store, project):
        store.close()
        store.close()
        assert store.get_project(project.id) is not None

    def test_memory_store_is_shared_across_threads(self):
        store = EntityStore(":memory:")
        saved, errors = [], []

        def worker():
            try:
                saved.append(store.save_project(new_project("shop", "/src/shop", "d")))
            except Exception as exc:
                errors.append(exc)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        try:
            assert errors == []
            assert store.get_project(saved[0].id).name == "shop"
        finally:
            store.close()

    def test_close_releases_connection_used_by_other_threads(self, store, project):
        thread = threading.Thread(target=store.get_all_projects)
        thread.start()
        thread.join()
        store.close()
        assert store._conn is None

    def test_unopenable_path_raises_store_error(self, tmp_path):
        with pytest.raises(StoreError):
            EntityStore(tmp_path / "missing-dir" / "nested" / "db.sqlite")

    def test_sqlite_errors_are_wrapped(self, store, project):
        store._get_connection().execute("DROP TABLE functions")
        with pytest.raises(StoreError, match="no such table"):
            store.get_function("function_x")
        assert issubclass(StoreError, Exception)
        assert not issubclass(StoreError, sqlite3.Error)
