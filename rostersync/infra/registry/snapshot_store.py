from __future__ import annotations

import json
from dataclasses import asdict
from datetime import date, datetime
from typing import Any

from rostersync.domain.cache.snapshot_cache import CachedSnapshot
from rostersync.domain.employees import EmployeeSnapshot
from rostersync.infra.registry.sqlite_engine import SqliteEngine, storage_errors


def snapshot_to_dict(record: EmployeeSnapshot) -> dict[str, Any]:
    data = asdict(record)
    data["admission_date"] = record.admission_date.isoformat() if record.admission_date else None
    data["processed_at"] = record.processed_at.isoformat()
    return data


def snapshot_from_dict(data: dict[str, Any]) -> EmployeeSnapshot:
    values = dict(data)
    admission = values.get("admission_date")
    values["admission_date"] = date.fromisoformat(admission) if admission else None
    values["processed_at"] = datetime.fromisoformat(values["processed_at"])
    return EmployeeSnapshot(**values)


class SqliteSnapshotStore:
    """
    Назначение/ответственность:
        Хранилище снимков в таблице snapshot_cache БД реестра.
        Позволяет командам parse и export работать с одной сессией.
    """

    def __init__(self, engine: SqliteEngine) -> None:
        self.engine = engine

    def save(self, entry: CachedSnapshot) -> None:
        payload = json.dumps([snapshot_to_dict(r) for r in entry.records], ensure_ascii=False)
        with storage_errors():
            with self.engine.transaction():
                self.engine.execute(
                    """
                    INSERT INTO snapshot_cache(session_id, stored_at, payload)
                    VALUES (?, ?, ?)
                    ON CONFLICT(session_id) DO UPDATE SET
                        stored_at=excluded.stored_at,
                        payload=excluded.payload
                    """,
                    (entry.session_id, entry.stored_at.isoformat(), payload),
                )

    def load(self, session_id: str) -> CachedSnapshot | None:
        with storage_errors():
            row = self.engine.query_one(
                "SELECT session_id, stored_at, payload FROM snapshot_cache WHERE session_id = ?",
                (session_id,),
            )
        if row is None:
            return None
        records = tuple(snapshot_from_dict(item) for item in json.loads(row["payload"]))
        return CachedSnapshot(
            session_id=row["session_id"],
            stored_at=datetime.fromisoformat(row["stored_at"]),
            records=records,
        )

    def delete(self, session_id: str) -> None:
        with storage_errors():
            with self.engine.transaction():
                self.engine.execute("DELETE FROM snapshot_cache WHERE session_id = ?", (session_id,))
