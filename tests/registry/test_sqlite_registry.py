from datetime import date, datetime, timezone
from pathlib import Path

import sqlite3

import pytest

from rostersync.common.time import fixedClock
from rostersync.domain.employees import EmployeeSnapshot, PersistedEmployee
from rostersync.domain.exceptions import ApplyInProgressError, RegistryUnavailableError, SnapshotBelowFloorError
from rostersync.domain.planning.diff_models import ProtectedUpdate, RegistryDiff
from rostersync.domain.planning.reconciler import Reconciler
from rostersync.domain.ports.registry import ApplyStrategy, KeyOperation
from rostersync.infra.registry.db import getRegistryDbPath, openRegistryDb
from rostersync.infra.registry.repository import APPLY_LOCK, SqliteEmployeeRegistry
from rostersync.infra.registry.schema import SCHEMA_VERSION, ensure_registry_ready
from rostersync.infra.registry.sqlite_engine import SqliteEngine

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def open_registry(tmp_path: Path):
    conn = openRegistryDb(getRegistryDbPath(str(tmp_path / "registry")))
    engine = SqliteEngine(conn)
    ensure_registry_ready(engine)
    return conn, SqliteEmployeeRegistry(engine, clock=fixedClock(NOW))


def employee(n, **fields):
    values = {
        "name": f"EMPLOYEE {n}",
        "job_title": "MOTORISTA",
        "admission_date": date(2023, 3, 15),
        "executing_function": "MOTORISTA",
        "company": "DS3 FLORESTAL LTDA",
        "matricula": f"4{n:04d}",
        "updated_at": NOW,
    }
    values.update(fields)
    return PersistedEmployee(national_id=f"{n:011d}", **values)


def seed(registry, *employees):
    result = registry.apply_diff(RegistryDiff(inserts=list(employees)))
    assert not result.failures


def test_schema_created(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"meta", "employees", "employees_history", "snapshot_cache"}.issubset(tables)
        assert registry.status().schema_version == SCHEMA_VERSION
    finally:
        conn.close()


def test_set_based_apply_round_trip(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1), employee(2, team="T2"))
        diff = RegistryDiff(
            inserts=[employee(3)],
            updates=[ProtectedUpdate(employee=employee(2, name="RENAMED", team="T2"))],
            deletes=[f"{1:011d}"],
        )

        result = registry.apply_diff(diff)

        assert (result.inserted, result.updated, result.deleted, result.failed) == (1, 1, 1, 0)
        rows = {e.national_id: e for e in registry.load_all()}
        assert sorted(rows) == [f"{2:011d}", f"{3:011d}"]
        assert rows[f"{2:011d}"].name == "RENAMED"
        assert rows[f"{2:011d}"].team == "T2"
        assert rows[f"{3:011d}"].admission_date == date(2023, 3, 15)
        assert rows[f"{3:011d}"].updated_at == NOW
    finally:
        conn.close()


def test_set_based_failure_is_isolated_per_key(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1))
        bad = PersistedEmployee(national_id="123", name="SHORT ID")
        diff = RegistryDiff(
            inserts=[employee(2), bad, employee(1)],
            deletes=[f"{9:011d}"],
        )

        result = registry.apply_diff(diff, ApplyStrategy.SET_BASED)

        assert result.inserted == 1
        assert not result.rolled_back
        failed = {(f.key, f.op) for f in result.failures}
        assert failed == {
            ("123", KeyOperation.INSERT),
            (f"{1:011d}", KeyOperation.INSERT),
            (f"{9:011d}", KeyOperation.DELETE),
        }
        assert all(not f.applied for f in result.failures)
        assert sorted(e.national_id for e in registry.load_all()) == [f"{1:011d}", f"{2:011d}"]
    finally:
        conn.close()


def test_full_replace_rebuilds_registry(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1), employee(2))
        diff = RegistryDiff(
            inserts=[employee(3)],
            updates=[ProtectedUpdate(employee=employee(2, project="P2"))],
            deletes=[f"{1:011d}"],
        )

        result = registry.apply_diff(diff, ApplyStrategy.FULL_REPLACE)

        assert (result.inserted, result.updated, result.deleted) == (1, 1, 1)
        rows = {e.national_id: e for e in registry.load_all()}
        assert sorted(rows) == [f"{2:011d}", f"{3:011d}"]
        assert rows[f"{2:011d}"].project == "P2"
    finally:
        conn.close()


def test_full_replace_failure_rolls_back_everything(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1), employee(2))
        before = registry.load_all()
        diff = RegistryDiff(
            inserts=[employee(3), PersistedEmployee(national_id="123", name="SHORT ID")],
            updates=[ProtectedUpdate(employee=employee(2))],
            deletes=[f"{1:011d}"],
        )

        result = registry.apply_diff(diff, ApplyStrategy.FULL_REPLACE)

        assert result.rolled_back
        assert (result.inserted, result.updated, result.deleted) == (0, 0, 0)
        assert len(result.failures) == 4
        assert all(not f.applied for f in result.failures)
        assert registry.load_all() == before
    finally:
        conn.close()


def test_apply_is_not_reentrant(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        with APPLY_LOCK:
            with pytest.raises(ApplyInProgressError) as exc:
                registry.apply_diff(RegistryDiff(inserts=[employee(1)]))
        assert exc.value.retryable
        assert registry.load_all() == []
    finally:
        conn.close()


def test_locked_database_is_reported_as_unavailable(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    other = openRegistryDb(getRegistryDbPath(str(tmp_path / "registry")))
    other.execute("PRAGMA busy_timeout = 0")
    other_engine = SqliteEngine(other)
    try:
        conn.execute("BEGIN IMMEDIATE")
        other_registry = SqliteEmployeeRegistry(other_engine, clock=fixedClock(NOW))
        with pytest.raises(RegistryUnavailableError) as exc:
            other_registry.apply_diff(RegistryDiff(inserts=[employee(1)]))
        assert exc.value.retryable
    finally:
        conn.rollback()
        other.close()
        conn.close()


def test_archive_copies_registry_into_history(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1, team="T1"), employee(2))

        copied = registry.archive(date(2026, 3, 2))

        assert copied == 2
        assert registry.history_count(date(2026, 3, 2)) == 2
        row = conn.execute(
            "SELECT record_date, team FROM employees_history WHERE national_id = ?",
            (f"{1:011d}",),
        ).fetchone()
        assert tuple(row) == ("2026-03-02", "T1")
        status = registry.status()
        assert status.employees == 2
        assert status.history == 2
        assert status.last_archive_date == "2026-03-02"
    finally:
        conn.close()


def snapshot(n, name=None):
    return EmployeeSnapshot(
        line_no=n + 2,
        employee_code=n,
        national_id=f"{n:011d}",
        name=name or f"EMPLOYEE {n}",
        job_title_raw="MOTORISTA",
        job_title="MOTORISTA",
        admission_date=date(2023, 3, 15),
        classification="MOT",
        executing_function="MOTORISTA",
        company="DS3 FLORESTAL LTDA",
        tax_id="46.002.274/0001-10",
        matricula=f"4{n:04d}",
        cost_center="12A3",
        project_guess="12",
        situation_code="1",
        situation_label="Trabalhando",
        processed_at=NOW,
    )


def test_reconcile_reads_registry_under_the_write_lock(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    other = openRegistryDb(getRegistryDbPath(str(tmp_path / "registry")))
    other.execute("PRAGMA busy_timeout = 0")
    try:
        seed(registry, employee(1), employee(2), employee(3))
        seen = []

        def plan(persisted):
            seen.extend(e.national_id for e in persisted)
            with pytest.raises(sqlite3.OperationalError):
                other.execute(
                    "INSERT INTO employees (national_id, name) VALUES (?, ?)",
                    (f"{4:011d}", "CONCURRENT"),
                )
            return Reconciler(min_snapshot_size=1).reconcile([snapshot(1), snapshot(2)], persisted)

        diff, result = registry.reconcile_and_apply(plan)

        assert seen == [f"{n:011d}" for n in (1, 2, 3)]
        assert diff.deletes == [f"{3:011d}"]
        assert (result.updated, result.deleted, result.failed) == (2, 1, 0)
        assert sorted(e.national_id for e in registry.load_all()) == [f"{1:011d}", f"{2:011d}"]
        assert not APPLY_LOCK.locked()
    finally:
        other.close()
        conn.close()


def test_reconcile_sees_rows_written_before_the_apply(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1), employee(2), employee(3))
        stale_keys = [e.national_id for e in registry.load_all()]
        seed(registry, employee(4))

        diff, _ = registry.reconcile_and_apply(
            lambda persisted: Reconciler(min_snapshot_size=1).reconcile([snapshot(1), snapshot(2)], persisted)
        )

        assert f"{4:011d}" not in stale_keys
        assert sorted(diff.deletes) == [f"{3:011d}", f"{4:011d}"]
        assert sorted(e.national_id for e in registry.load_all()) == [f"{1:011d}", f"{2:011d}"]
    finally:
        conn.close()


def test_floor_inside_apply_leaves_registry_untouched(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1), employee(2))
        before = registry.load_all()

        with pytest.raises(SnapshotBelowFloorError):
            registry.reconcile_and_apply(
                lambda persisted: Reconciler(min_snapshot_size=5).reconcile([snapshot(1)], persisted)
            )

        assert registry.load_all() == before
        assert not APPLY_LOCK.locked()
    finally:
        conn.close()


def test_update_keeps_curated_fields_edited_after_planning(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1, team="T-OLD"), employee(2))
        diff = Reconciler(min_snapshot_size=1).reconcile(
            [snapshot(1, name="RENAMED"), snapshot(2)],
            registry.load_all(),
        )
        conn.execute(
            "UPDATE employees SET team = ?, coordinator = ?, project = ? WHERE national_id = ?",
            ("T-NEW", "ANA", "P-HUMAN", f"{1:011d}"),
        )

        result = registry.apply_diff(diff)

        assert result.updated == 2
        rows = {e.national_id: e for e in registry.load_all()}
        edited = rows[f"{1:011d}"]
        assert edited.name == "RENAMED"
        assert (edited.team, edited.coordinator, edited.project) == ("T-NEW", "ANA", "P-HUMAN")
        assert rows[f"{2:011d}"].project == "12"
    finally:
        conn.close()


def test_full_replace_failure_outside_a_key_reports_reason(tmp_path: Path):
    conn, registry = open_registry(tmp_path)
    try:
        seed(registry, employee(1), employee(2))
        before = registry.load_all()
        conn.execute(
            "CREATE TRIGGER freeze_employees BEFORE DELETE ON employees "
            "BEGIN SELECT RAISE(ABORT, 'registry frozen'); END"
        )
        diff = RegistryDiff(
            inserts=[employee(3)],
            updates=[ProtectedUpdate(employee=employee(2))],
            deletes=[f"{1:011d}"],
        )

        result = registry.apply_diff(diff, ApplyStrategy.FULL_REPLACE)

        assert result.rolled_back
        assert "registry frozen" in result.rollback_reason
        assert {f.reason for f in result.failures} == {"rolled back"}
        assert len(result.failures) == 3
        assert registry.load_all() == before
    finally:
        conn.close()
