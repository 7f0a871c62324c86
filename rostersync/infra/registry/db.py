from __future__ import annotations

import sqlite3
from pathlib import Path

from rostersync.domain.exceptions import RegistryUnavailableError

REGISTRY_DB_NAME = "roster_registry.sqlite3"
BUSY_TIMEOUT_MS = 5000


def getRegistryDbPath(registryDir: str) -> str:
    """
    Возвращает путь к файлу реестра в указанном каталоге.
    """
    return str(Path(registryDir) / REGISTRY_DB_NAME)


def openRegistryDb(dbPath: str) -> sqlite3.Connection:
    """
    Открывает/создаёт SQLite БД реестра с нужными PRAGMA/timeout.

    Транзакциями управляет SqliteEngine (isolation_level=None), чтобы
    BEGIN IMMEDIATE и savepoint'ы выполнялись явно.
    Ошибка открытия -> RegistryUnavailableError.
    """
    try:
        Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(dbPath, timeout=BUSY_TIMEOUT_MS / 1000, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    except (sqlite3.Error, OSError) as exc:
        raise RegistryUnavailableError(f"cannot open {dbPath}: {exc}") from exc
    return conn
