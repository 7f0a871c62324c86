from __future__ import annotations

import logging
from datetime import date

from rostersync.domain.ports.registry import EmployeeRegistryProtocol
from rostersync.domain.reporting.collector import ReportCollector
from rostersync.infra.logging.setup import logEvent


class ArchiveUseCase:
    """
    Назначение/ответственность:
        Ежедневный снимок реестра в employees_history.
    """

    def __init__(self, registry: EmployeeRegistryProtocol) -> None:
        self.registry = registry

    def run(self, record_date: date, logger: logging.Logger, run_id: str, report: ReportCollector) -> int:
        copied = self.registry.archive(record_date)
        report.add_op("archive", ok=copied, count=copied)
        report.set_context("archive", {"record_date": record_date.isoformat(), "rows": copied})
        logEvent(logger, logging.INFO, run_id, "archive", f"Archived {copied} rows for {record_date.isoformat()}")
        return copied
