from __future__ import annotations

from dataclasses import asdict
from enum import Enum
from typing import Any, Iterable

from rostersync.common.time import getNowIso
from rostersync.domain.models import DiagnosticItem, RowRef
from rostersync.domain.reporting.models import (
    ITEM_FAILED,
    ITEM_OK,
    ReportDiagnostic,
    ReportItem,
    ReportMeta,
    ReportSummary,
)


class ReportCollector:
    """
    Назначение/ответственность:
        Накопитель отчёта одной команды: счётчики строк и диагностик,
        операции над реестром, контекст шагов, ограниченный список items.
    Ограничения:
        В items попадает не больше meta.items_limit записей, остальное
        отмечается флагом items_truncated; счётчики считаются по всем строкам.
    """

    def __init__(self, run_id: str, command: str, started_at: str | None = None) -> None:
        self.meta = ReportMeta(run_id=run_id, command=command, started_at=started_at or getNowIso())
        self.summary = ReportSummary()
        self.items: list[ReportItem] = []
        self.context: dict[str, Any] = {}
        self.status: str | None = None

    def set_meta(
        self,
        *,
        source: str | None = None,
        items_limit: int | None = None,
        app_version: str | None = None,
    ) -> None:
        if source is not None:
            self.meta.source = source
        if items_limit is not None:
            self.meta.items_limit = items_limit
        if app_version is not None:
            self.meta.app_version = app_version

    def set_context(self, name: str, value: dict[str, Any]) -> None:
        self.context[name] = value

    def add_op(self, name: str, *, ok: int = 0, failed: int = 0, count: int = 0) -> None:
        entry = self.summary.ops.setdefault(name, {"ok": 0, "failed": 0, "count": 0})
        entry["ok"] += ok
        entry["failed"] += failed
        entry["count"] += count

    def add_row(
        self,
        *,
        row_ref: RowRef,
        accepted: bool,
        errors: Iterable[DiagnosticItem] = (),
        warnings: Iterable[DiagnosticItem] = (),
        store: bool = True,
    ) -> None:
        """
        Назначение:
            Учитывает строку сотрудника из выгрузки.
            store=False: только счётчики, без записи в items.
        """
        errors = list(errors)
        warnings = list(warnings)

        self.summary.rows_total += 1
        if accepted:
            self.summary.rows_accepted += 1
        else:
            self.summary.rows_rejected += 1
        if warnings:
            self.summary.rows_with_warnings += 1
        _count(self.summary.errors_by_code, errors)
        _count(self.summary.warnings_by_code, warnings)

        if store:
            diagnostics = [_diagnostic(item, "error") for item in errors]
            diagnostics += [_diagnostic(item, "warning") for item in warnings]
            self._store(ReportItem(status=ITEM_OK if accepted else ITEM_FAILED, row_ref=row_ref, diagnostics=diagnostics))

    def add_key_failure(self, *, row_ref: RowRef, error: DiagnosticItem, op: str, applied: bool) -> None:
        _count(self.summary.errors_by_code, [error])
        self._store(
            ReportItem(
                status=ITEM_FAILED,
                row_ref=row_ref,
                diagnostics=[_diagnostic(error, "error")],
                meta={"op": op, "applied": applied},
            )
        )

    def _store(self, item: ReportItem) -> None:
        limit = self.meta.items_limit
        if limit is not None and len(self.items) >= limit:
            self.meta.items_truncated = True
            return
        self.items.append(item)

    def finish(self, finished_at: str | None = None, duration_ms: int | None = None) -> None:
        self.meta.finished_at = finished_at or getNowIso()
        self.meta.duration_ms = duration_ms
        if self.status is None:
            self.status = self.derived_status()

    def derived_status(self) -> str:
        """
        SUCCESS без отклонённых строк и сбоев операций; PARTIAL, если хоть что-то
        прошло; иначе FAILED.
        """
        if self.summary.rows_rejected == 0 and self.summary.ops_failed == 0:
            return "SUCCESS"
        if self.summary.rows_accepted > 0 or any(entry["ok"] for entry in self.summary.ops.values()):
            return "PARTIAL"
        return "FAILED"

    def to_dict(self) -> dict[str, Any]:
        summary = asdict(self.summary)
        summary["errors_total"] = self.summary.errors_total
        summary["warnings_total"] = self.summary.warnings_total
        return {
            "status": self.status or self.derived_status(),
            "meta": asdict(self.meta),
            "summary": summary,
            "items": [_item_to_dict(item) for item in self.items],
            "context": self.context,
        }


def _count(counter: dict[str, int], items: list[DiagnosticItem]) -> None:
    for item in items:
        counter[item.code] = counter.get(item.code, 0) + 1


def _diagnostic(item: DiagnosticItem, severity: str) -> ReportDiagnostic:
    return ReportDiagnostic(
        severity=severity,
        stage=item.stage,
        code=item.code,
        field=item.field,
        message=item.message,
    )


def _json_safe(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in pairs}


def _item_to_dict(item: ReportItem) -> dict[str, Any]:
    data = asdict(item, dict_factory=_json_safe)
    if item.row_ref is not None:
        data["row_ref"]["row_id"] = item.row_ref.row_id
    return data
