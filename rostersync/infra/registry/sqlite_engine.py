from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator

from rostersync.domain.exceptions import RegistryUnavailableError

Params = tuple | dict


class SqliteEngine:
    """
    Назначение/ответственность:
        Доступ к БД реестра: параметризованные запросы, транзакции, точки отката.
    Ограничения:
        Соединение открыто с isolation_level=None: sqlite3 не открывает
        транзакции сам, границы задаёт только transaction().
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._savepoints = 0

    def execute(self, sql: str, params: Params = ()) -> int:
        """Выполняет запрос и возвращает число затронутых строк."""
        return self.conn.execute(sql, params).rowcount

    def scalar(self, sql: str, params: Params = ()) -> Any:
        row = self.conn.execute(sql, params).fetchone()
        return row[0] if row else None

    def query_one(self, sql: str, params: Params = ()) -> sqlite3.Row | None:
        return self.conn.execute(sql, params).fetchone()

    def query(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self, immediate: bool = False) -> Iterator[None]:
        """
        immediate=True: блокировка записи берётся сразу (BEGIN IMMEDIATE),
        занятая БД -> RegistryUnavailableError до любых изменений.
        """
        try:
            self.conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        except sqlite3.OperationalError as exc:
            raise RegistryUnavailableError(str(exc)) from exc
        try:
            yield
        except BaseException:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """
        Точка отката внутри открытой транзакции: ошибка откатывает только
        изменения блока и пробрасывается дальше.
        """
        self._savepoints += 1
        name = f"sp_{self._savepoints}"
        self.conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except BaseException:
            self.conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self.conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        self.conn.execute(f"RELEASE SAVEPOINT {name}")


@contextmanager
def storage_errors() -> Iterator[None]:
    """
    Назначение:
        Сбои доступа к SQLite (locked/busy/не открывается) -> RegistryUnavailableError.
    """
    try:
        yield
    except sqlite3.OperationalError as exc:
        raise RegistryUnavailableError(str(exc)) from exc
