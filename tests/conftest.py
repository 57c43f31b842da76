"""Shared fixtures: a file-backed SQLite store per test."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import Connection, Engine, text

from enrollment_schema.factory import create_store_engine

LEGACY_TEACHER_ASSIGNMENTS = """
CREATE TABLE teacher_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    teacher TEXT NOT NULL,
    subject TEXT NOT NULL,
    section TEXT NOT NULL,
    grade_level TEXT,
    created_at TIMESTAMP
)
"""

CURRENT_TEACHER_ASSIGNMENTS = """
CREATE TABLE teacher_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    teacher_id INTEGER NOT NULL,
    subject_id INTEGER NOT NULL,
    section_id INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP,
    FOREIGN KEY (teacher_id) REFERENCES users(id),
    FOREIGN KEY (subject_id) REFERENCES subjects(id),
    FOREIGN KEY (section_id) REFERENCES sections(id),
    UNIQUE (teacher_id, subject_id, section_id)
)
"""

LEGACY_USERS = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username VARCHAR(50) NOT NULL UNIQUE,
    password VARCHAR(255) NOT NULL,
    full_name VARCHAR(100) NOT NULL,
    email VARCHAR(100),
    role VARCHAR(20) NOT NULL CHECK (role IN ('ADMIN', 'REGISTRAR', 'STAFF')),
    is_active BOOLEAN NOT NULL DEFAULT 1,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP
)
"""


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "enrollment.db"


@pytest.fixture
def engine(db_path: Path) -> Iterator[Engine]:
    engine = create_store_engine(f"sqlite:///{db_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def connection(engine: Engine) -> Iterator[Connection]:
    with engine.connect() as conn:
        yield conn


# ------------------------------------------------------------------
# Table helpers
# ------------------------------------------------------------------


def execute(connection: Connection, *statements: str) -> None:
    """Run statements in their own committed transaction."""
    if connection.in_transaction():
        connection.commit()
    with connection.begin():
        for sql in statements:
            connection.execute(text(sql))


def count_rows(connection: Connection, table_name: str) -> int:
    count = connection.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar()
    connection.commit()
    return count


def create_legacy_teacher_assignments(connection: Connection, rows: int = 0) -> None:
    inserts = [
        "INSERT INTO teacher_assignments (teacher, subject, section, grade_level, created_at) "
        f"VALUES ('Teacher {i}', 'Math', 'A', 'Grade 7', CURRENT_TIMESTAMP)"
        for i in range(rows)
    ]
    execute(connection, LEGACY_TEACHER_ASSIGNMENTS, *inserts)


def create_current_teacher_assignments(connection: Connection, rows: int = 0) -> None:
    inserts = [
        "INSERT INTO teacher_assignments (teacher_id, subject_id, section_id, created_at) "
        f"VALUES ({i + 1}, 1, 1, CURRENT_TIMESTAMP)"
        for i in range(rows)
    ]
    execute(connection, CURRENT_TEACHER_ASSIGNMENTS, *inserts)


def create_legacy_users(connection: Connection, rows: int = 0) -> None:
    inserts = [
        "INSERT INTO users (username, password, full_name, role, created_at) "
        f"VALUES ('user{i}', 'hash', 'User {i}', 'STAFF', CURRENT_TIMESTAMP)"
        for i in range(rows)
    ]
    execute(connection, LEGACY_USERS, *inserts)


def table_exists(connection: Connection, table_name: str) -> bool:
    found = connection.execute(
        text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
        {"name": table_name},
    ).scalar()
    connection.commit()
    return found is not None
