"""
Practice database for running learner SQL.

Wraps a SQLAlchemy engine. The default URL is an in-memory SQLite database
seeded with a small company schema (departments, employees, projects) that
every catalogue item is written against.

Only single read statements (SELECT / WITH) are executed. Any failure is
returned as a QueryResult with an error message; a broken query is simply
an incorrect attempt, not a crash.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    insert,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

metadata = MetaData()

departments = Table(
    "departments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50), nullable=False),
    Column("location", String(50), nullable=False),
)

employees = Table(
    "employees",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50), nullable=False),
    Column("department_id", Integer, ForeignKey("departments.id"), nullable=True),
    Column("salary", Integer, nullable=False),
    Column("hire_year", Integer, nullable=False),
    Column("manager_id", Integer, ForeignKey("employees.id"), nullable=True),
)

projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50), nullable=False),
    Column("department_id", Integer, ForeignKey("departments.id"), nullable=False),
    Column("budget", Integer, nullable=False),
)

SEED_DATA = {
    departments: [
        {"id": 1, "name": "Engineering", "location": "Berlin"},
        {"id": 2, "name": "Sales", "location": "Paris"},
        {"id": 3, "name": "Support", "location": "Berlin"},
        {"id": 4, "name": "Research", "location": "Oslo"},
    ],
    employees: [
        {"id": 1, "name": "Ada", "department_id": 1, "salary": 7200, "hire_year": 2015, "manager_id": None},
        {"id": 2, "name": "Linus", "department_id": 1, "salary": 6100, "hire_year": 2018, "manager_id": 1},
        {"id": 3, "name": "Grace", "department_id": 1, "salary": 6600, "hire_year": 2017, "manager_id": 1},
        {"id": 4, "name": "Edsger", "department_id": 2, "salary": 4800, "hire_year": 2019, "manager_id": None},
        {"id": 5, "name": "Barbara", "department_id": 2, "salary": 5100, "hire_year": 2016, "manager_id": 4},
        {"id": 6, "name": "Ken", "department_id": 3, "salary": 3900, "hire_year": 2021, "manager_id": None},
        {"id": 7, "name": "Margaret", "department_id": 3, "salary": 4200, "hire_year": 2020, "manager_id": 6},
        {"id": 8, "name": "Dennis", "department_id": None, "salary": 3500, "hire_year": 2022, "manager_id": None},
    ],
    projects: [
        {"id": 1, "name": "Compiler", "department_id": 1, "budget": 120000},
        {"id": 2, "name": "Query Engine", "department_id": 1, "budget": 95000},
        {"id": 3, "name": "Outreach", "department_id": 2, "budget": 40000},
        {"id": 4, "name": "Helpdesk", "department_id": 3, "budget": 25000},
    ],
}

_READ_STATEMENT = re.compile(r"^\s*(select|with)\b", re.IGNORECASE)


@dataclass
class QueryResult:
    """Rows returned by a learner query, or the reason it failed."""

    rows: list[tuple[str, ...]] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_single_read_statement(sql: str) -> bool:
    body = sql.strip().rstrip(";").strip()
    return bool(body) and ";" not in body and bool(_READ_STATEMENT.match(body))


class PracticeDatabase:
    """Runs learner queries against the practice schema."""

    def __init__(self, url: str = "sqlite://", seed: bool = True):
        self.url = url
        self.engine: Engine = self._create_engine(url)
        if seed:
            self.ensure_seeded()

    @staticmethod
    def _create_engine(url: str) -> Engine:
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each checkout sees an empty database
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, pool_pre_ping=True)

    def ensure_seeded(self) -> None:
        """Create the practice tables and load seed rows if they are missing."""
        existing = set(inspect(self.engine).get_table_names())
        if {t.name for t in SEED_DATA} <= existing:
            return
        metadata.create_all(self.engine)
        with self.engine.begin() as conn:
            for table, rows in SEED_DATA.items():
                conn.execute(insert(table), rows)
        logger.info(f"Seeded practice database ({', '.join(t.name for t in SEED_DATA)})")

    def run_query(self, sql: str) -> QueryResult:
        """Execute one read-only statement and return its rows as strings."""
        if not _is_single_read_statement(sql or ""):
            return QueryResult(error="Only a single SELECT (or WITH ... SELECT) statement is allowed")

        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql.strip().rstrip(";")))
                columns = list(result.keys())
                rows = [tuple("NULL" if v is None else str(v) for v in row) for row in result]
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            logger.debug(f"Learner query failed: {message}")
            return QueryResult(error=message)

        return QueryResult(rows=rows, columns=columns)

    def dispose(self) -> None:
        self.engine.dispose()
