from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Protocol

from rostersync.domain.employees import PersistedEmployee
from rostersync.domain.planning.diff_models import RegistryDiff

# Строит дифф по строкам реестра, прочитанным внутри транзакции записи.
DiffPlanner = Callable[[list[PersistedEmployee]], RegistryDiff]


class ApplyStrategy(str, Enum):
    """
    Назначение:
        Способ записи диффа в реестр.

    SET_BASED:
        Поштучные insert/update/delete в одной транзакции, каждый ключ в своём
        savepoint; сбой ключа не откатывает остальные.
    FULL_REPLACE:
        Очистка таблицы и повторная вставка всех строк; любой сбой откатывает всё.
    """

    SET_BASED = "set_based"
    FULL_REPLACE = "full_replace"


class KeyOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class KeyFailure:
    key: str
    op: KeyOperation
    reason: str
    applied: bool = False


@dataclass
class ApplyResult:
    """
    Назначение:
        Итог применения диффа.
    Инварианты:
        rolled_back=True означает, что реестр не изменился и ни один ключ
        не применён.
    """

    strategy: ApplyStrategy
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    failures: list[KeyFailure] = field(default_factory=list)
    rolled_back: bool = False
    rollback_reason: str = ""

    @property
    def failed(self) -> int:
        return len(self.failures)

    def as_dict(self) -> dict:
        return {
            "strategy": self.strategy.value,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "failed": self.failed,
            "rolled_back": self.rolled_back,
            "rollback_reason": self.rollback_reason,
        }


@dataclass(frozen=True)
class RegistryStatus:
    schema_version: int
    employees: int
    history: int
    cached_snapshots: int
    last_archive_date: str | None = None


class EmployeeRegistryProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт реестра сотрудников.
    Взаимодействия:
        Используется use-case'ами sync/export/archive/status.
    """

    def load_all(self) -> list[PersistedEmployee]: ...
    def apply_diff(self, diff: RegistryDiff, strategy: ApplyStrategy = ApplyStrategy.SET_BASED) -> ApplyResult: ...
    def reconcile_and_apply(
        self, plan: DiffPlanner, strategy: ApplyStrategy = ApplyStrategy.SET_BASED
    ) -> tuple[RegistryDiff, ApplyResult]: ...
    def archive(self, record_date: date) -> int: ...
    def status(self) -> RegistryStatus: ...
