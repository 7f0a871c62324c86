from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Iterator

from rostersync.common.time import Clock, systemClock
from rostersync.domain.employees import CURATED_FIELDS, PersistedEmployee
from rostersync.domain.exceptions import ApplyInProgressError
from rostersync.domain.planning.diff_models import RegistryDiff
from rostersync.domain.ports.registry import (
    ApplyResult,
    ApplyStrategy,
    DiffPlanner,
    KeyFailure,
    KeyOperation,
    RegistryStatus,
)
from rostersync.infra.registry.schema import EMPLOYEE_COLUMNS, get_meta, set_meta, get_schema_version
from rostersync.infra.registry.sqlite_engine import SqliteEngine, storage_errors

# Один apply на процесс; второй вызов не ждёт, а получает ApplyInProgressError.
APPLY_LOCK = threading.Lock()

_COLUMN_LIST = ", ".join(EMPLOYEE_COLUMNS)
_PLACEHOLDERS = ", ".join("?" for _ in EMPLOYEE_COLUMNS)
# Курируемые колонки UPDATE не пишет; project только заполняется, если пуст.
_UPDATE_COLUMNS = [c for c in EMPLOYEE_COLUMNS if c != "national_id" and c not in CURATED_FIELDS]

_INSERT_SQL = f"INSERT INTO employees ({_COLUMN_LIST}) VALUES ({_PLACEHOLDERS})"
_UPDATE_SQL = (
    "UPDATE employees SET "
    + ", ".join(f"{c} = ?" for c in _UPDATE_COLUMNS)
    + ", project = CASE WHEN COALESCE(project, '') = '' THEN ? ELSE project END"
    + " WHERE national_id = ?"
)
_SELECT_ALL_SQL = f"SELECT {_COLUMN_LIST} FROM employees ORDER BY national_id"
_DELETE_SQL = "DELETE FROM employees WHERE national_id = ?"
_ARCHIVE_SQL = (
    f"INSERT INTO employees_history (record_date, {_COLUMN_LIST}) "
    f"SELECT ?, {_COLUMN_LIST} FROM employees"
)


def employee_to_row(employee: PersistedEmployee) -> dict[str, Any]:
    return {
        "national_id": employee.national_id,
        "name": employee.name,
        "job_title": employee.job_title,
        "admission_date": employee.admission_date.isoformat() if employee.admission_date else None,
        "hours_worked": employee.hours_worked,
        "classification": employee.classification,
        "executing_function": employee.executing_function,
        "company": employee.company,
        "tax_id": employee.tax_id,
        "matricula": employee.matricula,
        "cost_center": employee.cost_center,
        "situation_code": employee.situation_code,
        "situation_label": employee.situation_label,
        "updated_at": employee.updated_at.isoformat() if employee.updated_at else None,
        "project": employee.project or "",
        "team": employee.team or "",
        "coordinator": employee.coordinator or "",
        "supervisor": employee.supervisor or "",
        "team_lead": employee.team_lead or "",
    }


def row_to_employee(row: sqlite3.Row | dict[str, Any]) -> PersistedEmployee:
    admission = row["admission_date"]
    updated_at = row["updated_at"]
    hours = row["hours_worked"]
    return PersistedEmployee(
        national_id=row["national_id"],
        name=row["name"],
        job_title=row["job_title"],
        admission_date=date.fromisoformat(admission) if admission else None,
        hours_worked=int(hours) if hours is not None else 8,
        classification=row["classification"],
        executing_function=row["executing_function"],
        company=row["company"],
        tax_id=row["tax_id"],
        matricula=row["matricula"],
        cost_center=row["cost_center"],
        situation_code=row["situation_code"],
        situation_label=row["situation_label"],
        updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        project=row["project"] or "",
        team=row["team"] or "",
        coordinator=row["coordinator"] or "",
        supervisor=row["supervisor"] or "",
        team_lead=row["team_lead"] or "",
    )


class SqliteEmployeeRegistry:
    """
    Назначение/ответственность:
        Реестр сотрудников в SQLite: чтение, применение диффа, архив, статус.
    Взаимодействия:
        Реализует EmployeeRegistryProtocol; SQL только параметризованный.
    Ограничения:
        apply_diff/reconcile_and_apply не реентерабельны (APPLY_LOCK); запись берёт блокировку
        БД сразу через BEGIN IMMEDIATE.
    """

    def __init__(self, engine: SqliteEngine, clock: Clock = systemClock) -> None:
        self.engine = engine
        self.clock = clock

    def load_all(self) -> list[PersistedEmployee]:
        with storage_errors():
            rows = self.engine.query(_SELECT_ALL_SQL)
        return [row_to_employee(row) for row in rows]

    def count(self) -> int:
        with storage_errors():
            return int(self.engine.scalar("SELECT COUNT(*) FROM employees"))

    def apply_diff(self, diff: RegistryDiff, strategy: ApplyStrategy = ApplyStrategy.SET_BASED) -> ApplyResult:
        """Применяет готовый дифф без перечитывания реестра."""
        with self._exclusive_apply():
            return self._apply(lambda _persisted: diff, strategy, load=False)[1]

    def reconcile_and_apply(
        self,
        plan: DiffPlanner,
        strategy: ApplyStrategy = ApplyStrategy.SET_BASED,
    ) -> tuple[RegistryDiff, ApplyResult]:
        """
        Назначение:
            Чтение реестра, построение диффа и запись в одной транзакции
            BEGIN IMMEDIATE под APPLY_LOCK: между чтением и записью реестр
            никто не меняет.

        Входные данные:
            plan: Callable[[list[PersistedEmployee]], RegistryDiff]
                Строит дифф по строкам реестра. Исключение из plan откатывает
                транзакцию и пробрасывается как есть.
        """
        with self._exclusive_apply():
            return self._apply(plan, strategy, load=True)

    @contextmanager
    def _exclusive_apply(self) -> Iterator[None]:
        if not APPLY_LOCK.acquire(blocking=False):
            raise ApplyInProgressError()
        try:
            with storage_errors():
                yield
        finally:
            APPLY_LOCK.release()

    def _apply(self, plan: DiffPlanner, strategy: ApplyStrategy, load: bool) -> tuple[RegistryDiff, ApplyResult]:
        if strategy == ApplyStrategy.FULL_REPLACE:
            return self._apply_full_replace(plan, load)
        return self._apply_set_based(plan, load)

    def _load_for_plan(self, plan: DiffPlanner, load: bool) -> RegistryDiff:
        persisted = [row_to_employee(row) for row in self.engine.query(_SELECT_ALL_SQL)] if load else []
        return plan(persisted)

    def _apply_set_based(self, plan: DiffPlanner, load: bool) -> tuple[RegistryDiff, ApplyResult]:
        result = ApplyResult(strategy=ApplyStrategy.SET_BASED)
        with self.engine.transaction(immediate=True):
            diff = self._load_for_plan(plan, load)
            for employee in diff.inserts:
                params = _insert_params(employee)
                if self._apply_key(result, employee.national_id, KeyOperation.INSERT, _INSERT_SQL, params):
                    result.inserted += 1
            for update in diff.updates:
                params = _update_params(update.employee)
                if self._apply_key(result, update.employee.national_id, KeyOperation.UPDATE, _UPDATE_SQL, params):
                    result.updated += 1
            for key in diff.deletes:
                if self._apply_key(result, key, KeyOperation.DELETE, _DELETE_SQL, (key,)):
                    result.deleted += 1
            set_meta(self.engine, "last_sync_at", self.clock().isoformat())
        return diff, result

    def _apply_key(self, result: ApplyResult, key: str, op: KeyOperation, sql: str, params: tuple) -> bool:
        try:
            with self.engine.savepoint():
                changed = self.engine.execute(sql, params)
                if op != KeyOperation.INSERT and changed == 0:
                    raise LookupError("row not found in registry")
        except (sqlite3.IntegrityError, sqlite3.DataError, sqlite3.InterfaceError, LookupError) as exc:
            result.failures.append(KeyFailure(key=key, op=op, reason=str(exc), applied=False))
            return False
        return True

    def _apply_full_replace(self, plan: DiffPlanner, load: bool) -> tuple[RegistryDiff, ApplyResult]:
        """
        Назначение:
            Очистка таблицы и повторная вставка всех строк снимка.
            Любой сбой откатывает транзакцию целиком: реестр остаётся прежним,
            все ключи отчитываются как неприменённые, причина пишется
            в rollback_reason (в том числе для сбоев вне ключей).
        """
        result = ApplyResult(strategy=ApplyStrategy.FULL_REPLACE)
        diff = RegistryDiff()
        current: tuple[str, KeyOperation] | None = None
        try:
            with self.engine.transaction(immediate=True):
                diff = self._load_for_plan(plan, load)
                self.engine.execute("DELETE FROM employees")
                for employee in diff.inserts:
                    current = (employee.national_id, KeyOperation.INSERT)
                    self.engine.execute(_INSERT_SQL, _insert_params(employee))
                for update in diff.updates:
                    current = (update.employee.national_id, KeyOperation.UPDATE)
                    self.engine.execute(_INSERT_SQL, _insert_params(update.employee))
                current = None
                set_meta(self.engine, "last_sync_at", self.clock().isoformat())
        except (sqlite3.IntegrityError, sqlite3.DataError, sqlite3.InterfaceError) as exc:
            result.rolled_back = True
            result.rollback_reason = str(exc)
            result.failures = _all_keys_unapplied(diff, current, str(exc))
            return diff, result

        result.inserted = len(diff.inserts)
        result.updated = len(diff.updates)
        result.deleted = len(diff.deletes)
        return diff, result

    def archive(self, record_date: date) -> int:
        """
        Назначение:
            Копирует все строки реестра в employees_history с датой record_date.

        Выходные данные:
            int
                Количество скопированных строк.
        """
        with storage_errors():
            with self.engine.transaction(immediate=True):
                copied = self.engine.execute(_ARCHIVE_SQL, (record_date.isoformat(),))
                set_meta(self.engine, "last_archive_date", record_date.isoformat())
        return copied

    def history_count(self, record_date: date | None = None) -> int:
        with storage_errors():
            if record_date is None:
                return int(self.engine.scalar("SELECT COUNT(*) FROM employees_history"))
            return int(
                self.engine.scalar(
                    "SELECT COUNT(*) FROM employees_history WHERE record_date = ?",
                    (record_date.isoformat(),),
                )
            )

    def status(self) -> RegistryStatus:
        with storage_errors():
            cached = self.engine.scalar("SELECT COUNT(*) FROM snapshot_cache")
            return RegistryStatus(
                schema_version=get_schema_version(self.engine) or 0,
                employees=self.count(),
                history=self.history_count(),
                cached_snapshots=int(cached),
                last_archive_date=get_meta(self.engine, "last_archive_date"),
            )


def _insert_params(employee: PersistedEmployee) -> tuple:
    row = employee_to_row(employee)
    return tuple(row[c] for c in EMPLOYEE_COLUMNS)


def _update_params(employee: PersistedEmployee) -> tuple:
    row = employee_to_row(employee)
    return tuple(row[c] for c in _UPDATE_COLUMNS) + (row["project"], employee.national_id)


def _all_keys_unapplied(
    diff: RegistryDiff,
    failed: tuple[str, KeyOperation] | None,
    reason: str,
) -> list[KeyFailure]:
    failures: list[KeyFailure] = []
    keyed_ops = (
        [(e.national_id, KeyOperation.INSERT) for e in diff.inserts]
        + [(u.employee.national_id, KeyOperation.UPDATE) for u in diff.updates]
        + [(key, KeyOperation.DELETE) for key in diff.deletes]
    )
    for key, op in keyed_ops:
        message = reason if (key, op) == failed else "rolled back"
        failures.append(KeyFailure(key=key, op=op, reason=message, applied=False))
    return failures
