from __future__ import annotations

from rostersync.infra.registry.sqlite_engine import SqliteEngine, storage_errors

SCHEMA_VERSION = 2

# Порядок колонок общий для employees и employees_history.
EMPLOYEE_COLUMNS = (
    "national_id",
    "name",
    "job_title",
    "admission_date",
    "hours_worked",
    "classification",
    "executing_function",
    "company",
    "tax_id",
    "matricula",
    "cost_center",
    "situation_code",
    "situation_label",
    "updated_at",
    "project",
    "team",
    "coordinator",
    "supervisor",
    "team_lead",
)

_EMPLOYEE_COLUMNS_DDL = """
    name TEXT NOT NULL CHECK (length(trim(name)) > 0),
    job_title TEXT,
    admission_date TEXT,
    hours_worked INTEGER NOT NULL DEFAULT 8,
    classification TEXT,
    executing_function TEXT,
    company TEXT,
    tax_id TEXT,
    matricula TEXT,
    cost_center TEXT,
    situation_code TEXT,
    situation_label TEXT,
    updated_at TEXT,
    project TEXT NOT NULL DEFAULT '',
    team TEXT NOT NULL DEFAULT '',
    coordinator TEXT NOT NULL DEFAULT '',
    supervisor TEXT NOT NULL DEFAULT '',
    team_lead TEXT NOT NULL DEFAULT ''
"""


def ensure_registry_schema(engine: SqliteEngine) -> int:
    """
    Назначение:
        Создать базовую schema (meta) и применить миграции.
    """
    _create_meta(engine)
    current_version = get_schema_version(engine) or 0

    if current_version == 0:
        _create_employee_tables(engine)
        _create_snapshot_cache(engine)
        _set_schema_version(engine, SCHEMA_VERSION)
        return SCHEMA_VERSION

    if current_version < SCHEMA_VERSION:
        if current_version < 2:
            _migrate_to_v2(engine)
        _set_schema_version(engine, SCHEMA_VERSION)
        return SCHEMA_VERSION

    return current_version


def ensure_registry_ready(engine: SqliteEngine) -> int:
    """
    Назначение:
        Инициализирует схему реестра в одной транзакции.
    """
    with storage_errors():
        with engine.transaction():
            return ensure_registry_schema(engine)


def get_meta(engine: SqliteEngine, key: str) -> str | None:
    return engine.scalar("SELECT value FROM meta WHERE key=?", (key,))


def set_meta(engine: SqliteEngine, key: str, value: str | None) -> None:
    engine.execute(
        """
        INSERT INTO meta(key, value)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def _create_meta(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )


def get_schema_version(engine: SqliteEngine) -> int | None:
    value = get_meta(engine, "schema_version")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _set_schema_version(engine: SqliteEngine, version: int) -> None:
    set_meta(engine, "schema_version", str(version))


def _create_employee_tables(engine: SqliteEngine) -> None:
    engine.execute(
        f"""
        CREATE TABLE IF NOT EXISTS employees (
            national_id TEXT PRIMARY KEY CHECK (length(national_id) = 11),
            {_EMPLOYEE_COLUMNS_DDL}
        )
        """
    )
    engine.execute(
        f"""
        CREATE TABLE IF NOT EXISTS employees_history (
            history_id INTEGER PRIMARY KEY AUTOINCREMENT,
            record_date TEXT NOT NULL,
            national_id TEXT NOT NULL,
            {_EMPLOYEE_COLUMNS_DDL}
        )
        """
    )
    engine.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_history_record_date
        ON employees_history(record_date)
        """
    )


def _create_snapshot_cache(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS snapshot_cache (
            session_id TEXT PRIMARY KEY,
            stored_at TEXT NOT NULL,
            payload TEXT NOT NULL
        )
        """
    )


def _migrate_to_v2(engine: SqliteEngine) -> None:
    """
    Миграция с v1: добавляем таблицу snapshot_cache для общих сессий parse/export.
    """
    _create_snapshot_cache(engine)
