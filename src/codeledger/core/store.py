"""
CodeLedger Entity Store

SQLite persistence for projects, API endpoints and functions plus the two
association tables behind their relationship lists.

Every ``save_*`` is an upsert keyed by the entity's derived id:
scalar fields are overwritten (last write wins) while relationship lists
are merged, existing ids first.  Every endpoint/function write then runs
through the :class:`~codeledger.core.relations.RelationshipMaintainer` so
both sides of a link stay in step.

Statements commit one at a time; a crash in the middle of a cascade can
leave a relationship list stale, which later saves repair.
"""

import functools
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from codeledger.core.models import ApiEndpoint, Function, Parameter, Project, Schema, utc_now
from codeledger.core.relations import RelationshipMaintainer
from codeledger.exceptions import StoreError

logger = logging.getLogger(__name__)

# Which entity's list an endpoint<->function row belongs to.
LISTED_ON_ENDPOINT = "api_endpoint"
LISTED_ON_FUNCTION = "function"


def _store_op(method):
    """
    Run *method* holding the store lock and re-raise ``sqlite3.Error`` as
    :class:`StoreError` with the native message.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except sqlite3.Error as exc:
                raise StoreError(f"{type(exc).__name__}: {exc}") from exc
    return wrapper


def _merge(existing: Iterable[str], incoming: Iterable[str]) -> List[str]:
    merged = list(existing)
    seen = set(merged)
    for item in incoming:
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


class EntityStore:
    """
    SQLite-backed store for all tracked entities.

    One connection shared by every thread that touches the store (FastMCP
    worker threads, ``asyncio.to_thread``), opened with
    ``check_same_thread=False``.  Each public operation holds a re-entrant
    lock for its whole duration, cascades included, so statements from
    different threads never interleave.  A ``:memory:`` database therefore
    behaves like a file: every thread sees the same tables.

    Raises :class:`StoreError` when the database cannot be opened.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self.relations = RelationshipMaintainer(self)
        try:
            self._get_connection()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open store at {self.db_path}: {exc}") from exc

    def _get_connection(self) -> sqlite3.Connection:
        """Return the shared SQLite connection, opening it (and the schema) on first use."""
        with self._lock:
            if self._conn is None:
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._init_db(conn)
                self._conn = conn
            return self._conn

    def close(self) -> None:
        """Close the shared connection. Idempotent; the next operation reopens it."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug(f"Closed store at {self.db_path}")

    @staticmethod
    def _init_db(conn: sqlite3.Connection):
        """Create the schema if it does not exist yet."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                path TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                api_endpoint_ids TEXT NOT NULL DEFAULT '[]',
                function_ids TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS api_endpoints (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL REFERENCES projects(id),
                method TEXT NOT NULL,
                path TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                request_content_type TEXT,
                request_definition TEXT,
                request_example TEXT,
                response_content_type TEXT,
                response_definition TEXT,
                response_example TEXT,
                implementation_path TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS functions (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL REFERENCES projects(id),
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                parameters TEXT NOT NULL DEFAULT '[]',
                return_type TEXT NOT NULL DEFAULT 'void',
                return_description TEXT NOT NULL DEFAULT '',
                implementation TEXT NOT NULL DEFAULT '',
                implementation_path TEXT NOT NULL DEFAULT '',
                start_line INTEGER NOT NULL DEFAULT 0,
                end_line INTEGER NOT NULL DEFAULT 0,
                purpose TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                usage_examples TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS api_endpoint_function (
                api_endpoint_id TEXT NOT NULL,
                function_id TEXT NOT NULL,
                listed_on TEXT NOT NULL CHECK (listed_on IN ('api_endpoint', 'function')),
                position INTEGER NOT NULL,
                PRIMARY KEY (api_endpoint_id, function_id, listed_on)
            );

            CREATE TABLE IF NOT EXISTS function_relation (
                function_id TEXT NOT NULL,
                related_function_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (function_id, related_function_id)
            );

            CREATE INDEX IF NOT EXISTS idx_endpoints_project ON api_endpoints(project_id);
            CREATE INDEX IF NOT EXISTS idx_functions_project ON functions(project_id);
            CREATE INDEX IF NOT EXISTS idx_link_function ON api_endpoint_function(function_id);
        """)
        conn.commit()

    # ==================================================================
    # Projects
    # ==================================================================

    @_store_op
    def get_all_projects(self) -> List[Project]:
        conn = self._get_connection()
        rows = conn.execute("SELECT * FROM projects ORDER BY created_at, id").fetchall()
        return [self._row_to_project(r) for r in rows]

    @_store_op
    def get_project(self, project_id: str) -> Optional[Project]:
        """Return the project or ``None`` when *project_id* is unknown."""
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return self._row_to_project(row) if row else None

    @_store_op
    def save_project(self, project: Project) -> Project:
        existing = self.get_project(project.id)
        if existing is not None:
            project.created_at = existing.created_at
            project.api_endpoints = _merge(existing.api_endpoints, project.api_endpoints)
            project.functions = _merge(existing.functions, project.functions)
        conn = self._get_connection()
        conn.execute("""
            INSERT OR REPLACE INTO projects
            (id, name, path, description, created_at, updated_at, api_endpoint_ids, function_ids)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (project.id, project.name, project.path, project.description,
              project.created_at, project.updated_at,
              json.dumps(project.api_endpoints), json.dumps(project.functions)))
        conn.commit()
        logger.debug(f"Saved project {project.id} ({project.name})")
        return self.get_project(project.id)

    @_store_op
    def delete_project(self, project_id: str) -> bool:
        """Delete the project row.  Its endpoints and functions stay as orphans."""
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        conn.commit()
        return cursor.rowcount > 0

    # ==================================================================
    # API endpoints
    # ==================================================================

    @_store_op
    def get_api_endpoints(self, project_id: str) -> List[ApiEndpoint]:
        """All endpoints whose ``project_id`` column equals *project_id*."""
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM api_endpoints WHERE project_id = ? ORDER BY created_at, id",
            (project_id,),
        ).fetchall()
        return [self._row_to_endpoint(r) for r in rows]

    @_store_op
    def get_api_endpoint(self, endpoint_id: str) -> Optional[ApiEndpoint]:
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM api_endpoints WHERE id = ?", (endpoint_id,)).fetchone()
        return self._row_to_endpoint(row) if row else None

    @_store_op
    def save_api_endpoint(self, endpoint: ApiEndpoint) -> ApiEndpoint:
        existing = self.get_api_endpoint(endpoint.id)
        if existing is not None:
            endpoint.created_at = existing.created_at
        endpoint.related_functions = _merge(
            existing.related_functions if existing else (), endpoint.related_functions,
        )

        req = endpoint.request_schema
        resp = endpoint.response_schema
        conn = self._get_connection()
        conn.execute("""
            INSERT OR REPLACE INTO api_endpoints
            (id, project_id, method, path, description,
             request_content_type, request_definition, request_example,
             response_content_type, response_definition, response_example,
             implementation_path, created_at, updated_at, tags)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (endpoint.id, endpoint.project_id, endpoint.method, endpoint.path,
              endpoint.description,
              req.content_type if req else None,
              req.definition if req else None,
              req.example if req else None,
              resp.content_type if resp else None,
              resp.definition if resp else None,
              resp.example if resp else None,
              endpoint.implementation_path, endpoint.created_at, endpoint.updated_at,
              json.dumps(endpoint.tags)))
        conn.commit()
        self._write_endpoint_links(endpoint.id, endpoint.related_functions)

        stored = self.get_api_endpoint(endpoint.id)
        self.relations.on_endpoint_saved(stored)
        logger.debug(f"Saved endpoint {stored.method} {stored.path} ({stored.id})")
        return stored

    @_store_op
    def delete_api_endpoint(self, endpoint_id: str) -> bool:
        endpoint = self.get_api_endpoint(endpoint_id)
        if endpoint is None:
            return False
        conn = self._get_connection()
        conn.execute("DELETE FROM api_endpoints WHERE id = ?", (endpoint_id,))
        conn.execute(
            "DELETE FROM api_endpoint_function WHERE api_endpoint_id = ? AND listed_on = ?",
            (endpoint_id, LISTED_ON_ENDPOINT),
        )
        conn.commit()
        self.relations.on_endpoint_deleted(endpoint)
        return True

    # ==================================================================
    # Functions
    # ==================================================================

    @_store_op
    def get_functions(self, project_id: str) -> List[Function]:
        """All functions whose ``project_id`` column equals *project_id*."""
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM functions WHERE project_id = ? ORDER BY created_at, id",
            (project_id,),
        ).fetchall()
        return [self._row_to_function(r) for r in rows]

    @_store_op
    def get_function(self, function_id: str) -> Optional[Function]:
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM functions WHERE id = ?", (function_id,)).fetchone()
        return self._row_to_function(row) if row else None

    @_store_op
    def save_function(self, function: Function) -> Function:
        existing = self.get_function(function.id)
        if existing is not None:
            function.created_at = existing.created_at
        function.related_api_endpoints = _merge(
            existing.related_api_endpoints if existing else (), function.related_api_endpoints,
        )
        function.related_functions = _merge(
            existing.related_functions if existing else (), function.related_functions,
        )
        function.related_functions = [f for f in function.related_functions if f != function.id]

        conn = self._get_connection()
        conn.execute("""
            INSERT OR REPLACE INTO functions
            (id, project_id, name, description, parameters, return_type,
             return_description, implementation, implementation_path,
             start_line, end_line, purpose, created_at, updated_at,
             tags, usage_examples)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (function.id, function.project_id, function.name, function.description,
              json.dumps([p.to_dict() for p in function.parameters]),
              function.return_type, function.return_description,
              function.implementation, function.implementation_path,
              function.start_line, function.end_line, function.purpose,
              function.created_at, function.updated_at,
              json.dumps(function.tags), json.dumps(function.usage_examples)))
        conn.execute(
            "DELETE FROM api_endpoint_function WHERE function_id = ? AND listed_on = ?",
            (function.id, LISTED_ON_FUNCTION),
        )
        conn.executemany(
            "INSERT INTO api_endpoint_function (api_endpoint_id, function_id, listed_on, position) "
            "VALUES (?, ?, ?, ?)",
            [(eid, function.id, LISTED_ON_FUNCTION, pos)
             for pos, eid in enumerate(function.related_api_endpoints)],
        )
        conn.execute("DELETE FROM function_relation WHERE function_id = ?", (function.id,))
        conn.executemany(
            "INSERT INTO function_relation (function_id, related_function_id, position) "
            "VALUES (?, ?, ?)",
            [(function.id, fid, pos) for pos, fid in enumerate(function.related_functions)],
        )
        conn.commit()

        stored = self.get_function(function.id)
        self.relations.on_function_saved(stored)
        logger.debug(f"Saved function {stored.name} ({stored.id})")
        return stored

    @_store_op
    def delete_function(self, function_id: str) -> bool:
        function = self.get_function(function_id)
        if function is None:
            return False
        conn = self._get_connection()
        conn.execute("DELETE FROM functions WHERE id = ?", (function_id,))
        conn.execute(
            "DELETE FROM api_endpoint_function WHERE function_id = ? AND listed_on = ?",
            (function_id, LISTED_ON_FUNCTION),
        )
        conn.execute("DELETE FROM function_relation WHERE function_id = ?", (function_id,))
        conn.commit()
        self.relations.on_function_deleted(function)
        return True

    # ==================================================================
    # Statistics
    # ==================================================================

    @_store_op
    def get_stats(self) -> Dict[str, int]:
        """Row counts for each table."""
        conn = self._get_connection()
        counts = {}
        for key, table in (
            ("projects", "projects"),
            ("api_endpoints", "api_endpoints"),
            ("functions", "functions"),
            ("endpoint_function_links", "api_endpoint_function"),
            ("function_relations", "function_relation"),
        ):
            counts[key] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return counts

    # ==================================================================
    # Link writes (used by RelationshipMaintainer; never cascade)
    # ==================================================================

    def _write_project_lists(self, project: Project) -> None:
        conn = self._get_connection()
        conn.execute(
            "UPDATE projects SET api_endpoint_ids = ?, function_ids = ?, updated_at = ? WHERE id = ?",
            (json.dumps(project.api_endpoints), json.dumps(project.functions),
             project.updated_at, project.id),
        )
        conn.commit()

    def _write_endpoint_links(self, endpoint_id: str, function_ids: List[str],
                              touch: bool = False) -> None:
        """Replace an endpoint's ``relatedFunctions`` list, optionally bumping ``updatedAt``."""
        conn = self._get_connection()
        conn.execute(
            "DELETE FROM api_endpoint_function WHERE api_endpoint_id = ? AND listed_on = ?",
            (endpoint_id, LISTED_ON_ENDPOINT),
        )
        conn.executemany(
            "INSERT INTO api_endpoint_function (api_endpoint_id, function_id, listed_on, position) "
            "VALUES (?, ?, ?, ?)",
            [(endpoint_id, fid, LISTED_ON_ENDPOINT, pos) for pos, fid in enumerate(function_ids)],
        )
        if touch:
            conn.execute(
                "UPDATE api_endpoints SET updated_at = ? WHERE id = ?",
                (utc_now(), endpoint_id),
            )
        conn.commit()

    def _linked_ids(self, sql: str, key: str) -> List[str]:
        rows = self._get_connection().execute(sql, (key,)).fetchall()
        return [r[0] for r in rows]

    # ==================================================================
    # Row mapping
    # ==================================================================

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            path=row["path"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            api_endpoints=json.loads(row["api_endpoint_ids"]),
            functions=json.loads(row["function_ids"]),
        )

    def _row_to_endpoint(self, row: sqlite3.Row) -> ApiEndpoint:
        request_schema = None
        if row["request_content_type"] is not None:
            request_schema = Schema(row["request_content_type"], row["request_definition"] or "",
                                    row["request_example"])
        response_schema = None
        if row["response_content_type"] is not None:
            response_schema = Schema(row["response_content_type"], row["response_definition"] or "",
                                     row["response_example"])
        return ApiEndpoint(
            id=row["id"],
            project_id=row["project_id"],
            method=row["method"],
            path=row["path"],
            description=row["description"],
            implementation_path=row["implementation_path"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            request_schema=request_schema,
            response_schema=response_schema,
            tags=json.loads(row["tags"]),
            related_functions=self._linked_ids(
                "SELECT function_id FROM api_endpoint_function "
                f"WHERE api_endpoint_id = ? AND listed_on = '{LISTED_ON_ENDPOINT}' ORDER BY position",
                row["id"],
            ),
        )

    def _row_to_function(self, row: sqlite3.Row) -> Function:
        return Function(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            description=row["description"],
            parameters=[Parameter.from_dict(p) for p in json.loads(row["parameters"])],
            return_type=row["return_type"],
            return_description=row["return_description"],
            implementation=row["implementation"],
            implementation_path=row["implementation_path"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            purpose=row["purpose"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            tags=json.loads(row["tags"]),
            related_api_endpoints=self._linked_ids(
                "SELECT api_endpoint_id FROM api_endpoint_function "
                f"WHERE function_id = ? AND listed_on = '{LISTED_ON_FUNCTION}' ORDER BY position",
                row["id"],
            ),
            related_functions=self._linked_ids(
                "SELECT related_function_id FROM function_relation "
                "WHERE function_id = ? ORDER BY position",
                row["id"],
            ),
            usage_examples=json.loads(row["usage_examples"]),
        )
