from __future__ import annotations

import json
from pathlib import Path

from rostersync import __version__
from rostersync.domain.reporting.collector import ReportCollector


def createRunReport(
    runId: str,
    command: str,
    configSources: list[str],
    source: str | None = None,
    itemsLimit: int | None = None,
) -> ReportCollector:
    report = ReportCollector(run_id=runId, command=command)
    report.set_meta(source=source, items_limit=itemsLimit, app_version=__version__)
    if configSources:
        report.set_context("config", {"sources": configSources})
    return report


def finalizeReport(report: ReportCollector, durationMs: int, logFile: str | None, registryDir: str, reportDir: str) -> None:
    report.set_context("runtime", {"log_file": logFile, "registry_dir": registryDir, "report_dir": reportDir})
    report.finish(duration_ms=durationMs)


def getReportPath(reportDir: str, command: str, runId: str) -> Path:
    return Path(reportDir) / f"report_{command}_{runId}.json"


def writeReportJson(report: ReportCollector, reportDir: str) -> str:
    """
    Назначение:
        Записывает отчёт в <report_dir>/report_<command>_<run_id>.json.

    Выходные данные:
        str
            Путь к файлу отчёта.
    """
    path = getReportPath(reportDir, report.meta.command, report.meta.run_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, ensure_ascii=False, indent=2, default=str)
    return str(path)
