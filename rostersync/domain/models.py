from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DiagnosticStage(str, Enum):
    """
    Назначение:
        Этап, на котором возникло диагностическое сообщение.

    Порядок:
        EXTRACT (чтение книги) -> PARSE (разбор строки) -> DERIVE (справочники)
        -> RECONCILE (сверка) -> APPLY (запись в реестр).
    """

    EXTRACT = "EXTRACT"
    PARSE = "PARSE"
    DERIVE = "DERIVE"
    RECONCILE = "RECONCILE"
    APPLY = "APPLY"


@dataclass
class DiagnosticItem:
    stage: DiagnosticStage
    code: str
    field: str | None
    message: str


@dataclass(frozen=True)
class RowRef:
    """
    Назначение:
        Ссылка на строку выгрузки или ключ реестра в отчёте.
        line_no отсутствует, если сбой относится к ключу, которого нет в снимке
        (например, удаление).
    """

    line_no: int | None
    national_id: str | None = None
    company: str | None = None

    @property
    def row_id(self) -> str:
        if self.line_no is None:
            return f"key:{self.national_id}"
        return f"line:{self.line_no}"
