from __future__ import annotations

import logging
from collections import Counter

from rostersync.domain.reporting.collector import ReportCollector
from rostersync.domain.transform.snapshot_parser import Grid, ParseResult, SnapshotParser
from rostersync.infra.logging.setup import logEvent


class ParseUseCase:
    """
    Назначение/ответственность:
        Разбор выгрузки с записью диагностики в отчёт и лог.
    Взаимодействия:
        Вызывается командами parse/sync/export; файлы не читает,
        получает готовую сетку ячеек.
    """

    def __init__(self, parser: SnapshotParser, include_accepted_items: bool = False) -> None:
        self.parser = parser
        self.include_accepted_items = include_accepted_items

    def run(self, grid: Grid, logger: logging.Logger, run_id: str, report: ReportCollector) -> ParseResult:
        result = self.parser.parse(grid)

        for row in result.rows:
            if row.record is None:
                report.add_row(row_ref=row.row_ref, accepted=False, errors=row.errors, warnings=row.warnings)
                codes = ",".join(e.code for e in row.errors)
                logEvent(logger, logging.DEBUG, run_id, "parse", f"line {row.row_ref.line_no} skipped: {codes}")
                continue
            report.add_row(
                row_ref=row.row_ref,
                accepted=True,
                warnings=row.warnings,
                store=bool(row.warnings) or self.include_accepted_items,
            )

        self._log_warnings(result, logger, run_id)
        if result.ignored_rows:
            logEvent(
                logger,
                logging.DEBUG,
                run_id,
                "parse",
                f"{result.ignored_rows} rows ignored (blank or unrecognized first column)",
            )

        rejected_by_code = Counter(row.errors[0].code for row in result.rejected if row.errors)
        stats = {
            "rows_scanned": result.rows_scanned,
            "employee_rows": len(result.rows),
            "accepted": len(result.records),
            "rejected": len(result.rejected),
            "rejected_by_code": dict(rejected_by_code),
            "ignored_rows": result.ignored_rows,
            "companies": list(result.companies),
        }
        report.set_context("parse", stats)
        logEvent(
            logger,
            logging.INFO,
            run_id,
            "parse",
            "Parsed snapshot: accepted={accepted} rejected={rejected} companies={companies}".format(
                accepted=stats["accepted"], rejected=stats["rejected"], companies=len(result.companies)
            ),
        )
        return result

    @staticmethod
    def _log_warnings(result: ParseResult, logger: logging.Logger, run_id: str) -> None:
        """
        Один WARNING на каждую различную пару (код, сообщение) с числом строк,
        чтобы неизвестная компания не давала сотни одинаковых строк лога.
        """
        counts: Counter = Counter()
        for row in result.rows:
            for warning in row.warnings:
                counts[(warning.code, warning.message)] += 1
        for (code, message), count in sorted(counts.items()):
            logEvent(logger, logging.WARNING, run_id, "lookups", f"{code}: {message} (rows={count})")


def parse_stats_line(result: ParseResult) -> str:
    return (
        f"rows_scanned={result.rows_scanned} accepted={len(result.records)} "
        f"rejected={len(result.rejected)} companies={len(result.companies)}"
    )
