from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence

from rostersync.domain.employees import EmployeeSnapshot
from rostersync.domain.export.projector import build_export_rows
from rostersync.domain.planning.reconciler import merge_for_preview
from rostersync.domain.ports.registry import EmployeeRegistryProtocol
from rostersync.domain.reporting.collector import ReportCollector
from rostersync.infra.logging.setup import logEvent

ExportWriter = Callable[[Sequence[Mapping[str, Any]], str], str]


class ExportUseCase:
    """
    Назначение/ответственность:
        Превью-выгрузка: снимок, слитый с реестром по правилам синхронизации,
        записанный в файл. Реестр только читается.
    """

    def __init__(self, registry: EmployeeRegistryProtocol, writer: ExportWriter) -> None:
        self.registry = registry
        self.writer = writer

    def run(
        self,
        records: Sequence[EmployeeSnapshot],
        out_path: str,
        logger: logging.Logger,
        run_id: str,
        report: ReportCollector,
    ) -> str:
        persisted = self.registry.load_all()
        merged = merge_for_preview(records, persisted)
        rows = build_export_rows(merged)
        path = self.writer(rows, out_path)

        report.set_context("export", {"rows": len(rows), "path": path, "registry_rows": len(persisted)})
        report.add_op("export", ok=len(rows), count=len(rows))
        logEvent(logger, logging.INFO, run_id, "export", f"Export written: {path} rows={len(rows)}")
        return path
