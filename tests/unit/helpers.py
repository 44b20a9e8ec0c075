"""Shared helpers for unit tests — in-memory database and control-plane fakes."""

from __future__ import annotations

import asyncio
import json
import re

import asyncpg
import httpx

_CREATE_RE = re.compile(r'^CREATE TABLE IF NOT EXISTS "(\w+)" \((.*)\)$', re.S)
_ALTER_RE = re.compile(r'^ALTER TABLE "(\w+)" ADD COLUMN IF NOT EXISTS "(\w+)" (\w+)$')
_INSERT_RE = re.compile(r'^INSERT INTO "(\w+)" \((.*)\) VALUES \((.*)\)$')

# DDL type → information_schema.columns.data_type
_DATA_TYPES = {
    "BIGSERIAL": "bigint",
    "TIMESTAMPTZ": "timestamp with time zone",
    "JSONB": "jsonb",
    "TEXT": "text",
    "INTEGER": "integer",
    "REAL": "real",
    "BOOLEAN": "boolean",
}


class FakeDatabase:
    """Understands exactly the SQL that LogTableProvisioner/ExecutionLogger emit.

    ``race=True`` yields to the event loop inside every catalog read so two
    concurrent ensure_table calls both observe the table as absent, and a
    losing CREATE raises DuplicateTableError like a real catalog race can.
    """

    def __init__(self, dsn: str = "postgresql://fake/db", *, race: bool = False):
        self.dsn = dsn
        self.race = race
        self.tables: dict[str, dict[str, str]] = {}
        self.rows: dict[str, list[dict]] = {}
        self.statements: list[str] = []
        self.catalog_reads = 0

    def add_table(self, name: str, columns: dict[str, str]) -> None:
        self.tables[name] = {
            "id": "bigint",
            "created_at": "timestamp with time zone",
            "updated_at": "timestamp with time zone",
            "execution_result": "jsonb",
            **columns,
        }
        self.rows[name] = []

    def create_statements(self) -> list[str]:
        return [s for s in self.statements if s.startswith("CREATE TABLE")]

    async def fetch(self, query: str, *args, timeout=None):
        if "information_schema.columns" in query:
            self.catalog_reads += 1
            columns = dict(self.tables.get(args[0], {}))
            if self.race:
                await asyncio.sleep(0)
            return [{"column_name": k, "data_type": v} for k, v in columns.items()]
        if query.startswith("SELECT * FROM"):
            table = re.search(r'FROM "(\w+)"', query).group(1)
            return list(reversed(self.rows.get(table, [])))[: args[0]]
        raise AssertionError(f"unexpected query: {query}")

    async def execute(self, query: str, *args, timeout=None):
        self.statements.append(query)
        if m := _CREATE_RE.match(query):
            table, body = m.groups()
            if table in self.tables:
                if self.race:
                    raise asyncpg.exceptions.DuplicateTableError(f'relation "{table}" already exists')
                return "CREATE TABLE"
            columns = {}
            for definition in body.split(", "):
                name, ddl_type = definition.split(" ")[:2]
                columns[name.strip('"')] = _DATA_TYPES[ddl_type]
            self.tables[table] = columns
            self.rows[table] = []
            return "CREATE TABLE"
        if m := _ALTER_RE.match(query):
            table, column, ddl_type = m.groups()
            self.tables[table].setdefault(column, _DATA_TYPES[ddl_type])
            return "ALTER TABLE"
        if m := _INSERT_RE.match(query):
            table, names, _ = m.groups()
            if table not in self.tables:
                raise asyncpg.exceptions.UndefinedTableError(f'relation "{table}" does not exist')
            columns = [n.strip().strip('"') for n in names.split(",")]
            for column in columns:
                if column not in self.tables[table]:
                    raise asyncpg.exceptions.UndefinedColumnError(f'column "{column}" does not exist')
            self.rows[table].append(dict(zip(columns, args)))
            return "INSERT 0 1"
        raise AssertionError(f"unexpected statement: {query}")


class FakeRegistry:
    """DatabaseRegistry stand-in handing out FakeDatabase per connection string."""

    def __init__(self, system: FakeDatabase | None = None):
        self.system = system or FakeDatabase("postgresql://system/db")
        self.databases: dict[str, FakeDatabase] = {}

    async def get(self, dsn: str | None = None):
        if dsn is None:
            return self.system
        return self.databases.setdefault(dsn, FakeDatabase(dsn))

    async def close_all(self):
        pass


class FakeControlPlane:
    """In-memory control-plane API served through httpx.MockTransport."""

    def __init__(self, projects: list[dict] | None = None):
        self.projects: list[dict] = list(projects or [])
        self.requests: list[httpx.Request] = []
        self.create_status: int | None = None  # force a status on POST /projects
        self.list_delay = 0.0

    def count(self, method: str, suffix: str = "") -> int:
        return sum(
            1 for r in self.requests if r.method == method and r.url.path.endswith(suffix)
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path.endswith("/projects"):
            if self.list_delay:
                await asyncio.sleep(self.list_delay)
            search = request.url.params.get("search", "")
            matches = [p for p in self.projects if search in p["name"]]
            return httpx.Response(200, json={"projects": matches, "pagination": {"cursor": None}})
        if request.method == "POST" and path.endswith("/projects"):
            name = json.loads(request.content)["project"]["name"]
            if self.create_status is not None:
                return httpx.Response(self.create_status, text="forced")
            if any(p["name"] == name for p in self.projects):
                return httpx.Response(409, json={"message": "project already exists"})
            project = {"id": f"proj-{len(self.projects) + 1}", "name": name}
            self.projects.append(project)
            return httpx.Response(201, json={"project": project})
        if request.method == "GET" and path.endswith("/connection_uri"):
            project_id = path.split("/")[-2]
            db = request.url.params.get("database_name")
            role = request.url.params.get("role_name")
            return httpx.Response(
                200, json={"connection_uri": f"postgresql://{role}:pw@{project_id}.host/{db}"}
            )
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
