from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from rostersync.common.time import Clock, systemClock
from rostersync.domain.employees import EmployeeSnapshot

DEFAULT_TTL_SECONDS = 1800


@dataclass(frozen=True)
class CachedSnapshot:
    session_id: str
    stored_at: datetime
    records: tuple[EmployeeSnapshot, ...]


class SnapshotStoreProtocol(Protocol):
    """
    Назначение/ответственность:
        Хранилище разобранных снимков по идентификатору сессии.
    """

    def save(self, entry: CachedSnapshot) -> None: ...
    def load(self, session_id: str) -> CachedSnapshot | None: ...
    def delete(self, session_id: str) -> None: ...


class MemorySnapshotStore:
    """
    Назначение:
        Хранилище снимков в памяти процесса.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CachedSnapshot] = {}

    def save(self, entry: CachedSnapshot) -> None:
        self._entries[entry.session_id] = entry

    def load(self, session_id: str) -> CachedSnapshot | None:
        return self._entries.get(session_id)

    def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)


class SnapshotCache:
    """
    Назначение/ответственность:
        Краткоживущий кэш последнего разобранного снимка для превью/экспорта.
    Ограничения:
        Срок жизни проверяется при чтении; просроченная запись удаляется
        и считается промахом. Синхронизация кэш не использует.
    """

    def __init__(
        self,
        store: SnapshotStoreProtocol,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Clock = systemClock,
    ) -> None:
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    def put(self, session_id: str, records: Sequence[EmployeeSnapshot]) -> CachedSnapshot:
        entry = CachedSnapshot(session_id=session_id, stored_at=self.clock(), records=tuple(records))
        self.store.save(entry)
        return entry

    def get(self, session_id: str) -> CachedSnapshot | None:
        entry = self.store.load(session_id)
        if entry is None:
            return None
        if self.clock() - entry.stored_at > self.ttl:
            self.store.delete(session_id)
            return None
        return entry

    def invalidate(self, session_id: str) -> None:
        self.store.delete(session_id)
