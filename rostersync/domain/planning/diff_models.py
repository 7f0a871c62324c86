from __future__ import annotations

from dataclasses import dataclass, field

from rostersync.domain.employees import PersistedEmployee


@dataclass(frozen=True)
class ProtectedUpdate:
    """
    Назначение:
        Обновление существующей строки реестра после защитного слияния.

    Поля:
        employee: итоговая строка для записи
        function_protected: сохранена исполняемая функция из реестра (MOTORISTA/OPERADOR)
        project_preserved: сохранён непустой проект из реестра
    """

    employee: PersistedEmployee
    function_protected: bool = False
    project_preserved: bool = False


@dataclass
class ReconcileSummary:
    """
    Назначение:
        Счётчики сверки для вывода и отчёта.
    """

    snapshot_total: int = 0
    inserted: int = 0
    updated: int = 0
    function_protected: int = 0
    project_preserved: int = 0
    deleted: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "snapshot_total": self.snapshot_total,
            "inserted": self.inserted,
            "updated": self.updated,
            "function_protected": self.function_protected,
            "project_preserved": self.project_preserved,
            "deleted": self.deleted,
        }


@dataclass
class RegistryDiff:
    """
    Назначение:
        Полный результат сверки снимка с реестром.
    Инварианты:
        Множества ключей inserts/updates/deletes не пересекаются;
        inserts ∪ updates = ключи снимка, deletes = ключи реестра вне снимка.
    """

    inserts: list[PersistedEmployee] = field(default_factory=list)
    updates: list[ProtectedUpdate] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    summary: ReconcileSummary = field(default_factory=ReconcileSummary)

    def rows_after_apply(self) -> list[PersistedEmployee]:
        return list(self.inserts) + [update.employee for update in self.updates]
