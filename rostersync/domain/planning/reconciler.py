from __future__ import annotations

from typing import Iterable

from rostersync.domain.employees import CURATED_FIELDS, EmployeeSnapshot, PersistedEmployee
from rostersync.domain.exceptions import SnapshotBelowFloorError
from rostersync.domain.planning.diff_models import ProtectedUpdate, RegistryDiff, ReconcileSummary

DEFAULT_MIN_SNAPSHOT_SIZE = 100

# Функции, которые назначают вручную; выгрузка их не перезаписывает.
PROTECTED_FUNCTION_MARKERS = ("MOTORISTA", "OPERADOR")


def is_protected_function(value: str | None) -> bool:
    if not value:
        return False
    upper = value.upper()
    return any(marker in upper for marker in PROTECTED_FUNCTION_MARKERS)


def index_snapshot(snapshot: Iterable[EmployeeSnapshot]) -> dict[str, EmployeeSnapshot]:
    """
    Назначение:
        Индекс снимка по national_id; при повторе ключа побеждает последняя строка.
    """
    indexed: dict[str, EmployeeSnapshot] = {}
    for record in snapshot:
        indexed[record.national_id] = record
    return indexed


def merge_employee(record: EmployeeSnapshot, existing: PersistedEmployee | None) -> ProtectedUpdate:
    """
    Назначение:
        Защитное слияние записи снимка со строкой реестра.

    Алгоритм:
        - некурируемые поля берутся из снимка;
        - project: непустой из реестра, иначе догадка по центру затрат;
        - executing_function: из реестра, если там MOTORISTA/OPERADOR;
        - team/coordinator/supervisor/team_lead переносятся из реестра как есть.
    """
    function = record.executing_function
    function_protected = False
    project = record.project_guess
    project_preserved = False
    curated = {name: "" for name in CURATED_FIELDS if name != "project"}

    if existing is not None:
        if is_protected_function(existing.executing_function):
            function = existing.executing_function
            function_protected = True
        if existing.project:
            project = existing.project
            project_preserved = True
        curated = {name: getattr(existing, name) for name in curated}

    employee = PersistedEmployee(
        national_id=record.national_id,
        name=record.name,
        job_title=record.job_title,
        admission_date=record.admission_date,
        hours_worked=record.hours_worked,
        classification=record.classification,
        executing_function=function,
        company=record.company,
        tax_id=record.tax_id,
        matricula=record.matricula,
        cost_center=record.cost_center,
        situation_code=record.situation_code,
        situation_label=record.situation_label,
        updated_at=record.processed_at,
        project=project,
        **curated,
    )
    return ProtectedUpdate(
        employee=employee,
        function_protected=function_protected,
        project_preserved=project_preserved,
    )


class Reconciler:
    """
    Назначение/ответственность:
        Сверяет снимок выгрузки с реестром и строит RegistryDiff.
    Взаимодействия:
        Чистая функция над данными в памяти; хранилище не трогает.
    Ограничения:
        Снимок меньше min_snapshot_size (по различным ключам) считается
        неполной выгрузкой: SnapshotBelowFloorError, диффа нет.
    """

    def __init__(self, min_snapshot_size: int = DEFAULT_MIN_SNAPSHOT_SIZE) -> None:
        self.min_snapshot_size = min_snapshot_size

    def reconcile(
        self,
        snapshot: Iterable[EmployeeSnapshot],
        persisted: Iterable[PersistedEmployee],
    ) -> RegistryDiff:
        indexed = index_snapshot(snapshot)
        if len(indexed) < self.min_snapshot_size:
            raise SnapshotBelowFloorError(len(indexed), self.min_snapshot_size)

        existing = {row.national_id: row for row in persisted}
        diff = RegistryDiff()

        for key, record in indexed.items():
            merged = merge_employee(record, existing.get(key))
            if key in existing:
                diff.updates.append(merged)
            else:
                diff.inserts.append(merged.employee)

        diff.deletes = [key for key in existing if key not in indexed]
        diff.summary = ReconcileSummary(
            snapshot_total=len(indexed),
            inserted=len(diff.inserts),
            updated=len(diff.updates),
            function_protected=sum(1 for u in diff.updates if u.function_protected),
            project_preserved=sum(1 for u in diff.updates if u.project_preserved),
            deleted=len(diff.deletes),
        )
        return diff


def merge_for_preview(
    snapshot: Iterable[EmployeeSnapshot],
    persisted: Iterable[PersistedEmployee],
) -> list[PersistedEmployee]:
    """
    Назначение:
        Те же правила слияния, что и при синхронизации, но только для чтения:
        без порога размера и без удалений. Используется экспортом-превью.
    """
    existing = {row.national_id: row for row in persisted}
    return [merge_employee(record, existing.get(key)).employee for key, record in index_snapshot(snapshot).items()]
