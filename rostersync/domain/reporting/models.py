from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from rostersync.domain.models import DiagnosticStage, RowRef

ITEM_OK = "OK"
ITEM_FAILED = "FAILED"


@dataclass
class ReportMeta:
    run_id: str
    command: str
    started_at: str
    source: str | None = None
    finished_at: str | None = None
    duration_ms: int | None = None
    items_limit: int | None = None
    items_truncated: bool = False
    app_version: str | None = None


@dataclass
class ReportSummary:
    """
    Назначение:
        Счётчики запуска.

    Поля:
        rows_*: строки сотрудников из выгрузки (заголовки и пустые строки не считаются)
        errors_by_code/warnings_by_code: число диагностик по коду ErrorCode
        ops: операции над реестром/файлами, {"ok", "failed", "count"} на имя
    """

    rows_total: int = 0
    rows_accepted: int = 0
    rows_rejected: int = 0
    rows_with_warnings: int = 0
    errors_by_code: dict[str, int] = field(default_factory=dict)
    warnings_by_code: dict[str, int] = field(default_factory=dict)
    ops: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def errors_total(self) -> int:
        return sum(self.errors_by_code.values())

    @property
    def warnings_total(self) -> int:
        return sum(self.warnings_by_code.values())

    @property
    def ops_failed(self) -> int:
        return sum(entry["failed"] for entry in self.ops.values())


@dataclass(frozen=True)
class ReportDiagnostic:
    severity: str
    stage: DiagnosticStage
    code: str
    field: str | None
    message: str


@dataclass
class ReportItem:
    """
    Назначение:
        Строка выгрузки или ключ реестра с диагностикой.
        meta: подробности операции (например, {"op": "delete", "applied": False}).
    """

    status: str
    row_ref: RowRef | None = None
    diagnostics: list[ReportDiagnostic] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
