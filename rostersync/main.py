from __future__ import annotations

import logging
import sys
import time
from datetime import date
from pathlib import Path

import typer

from rostersync.common.run_id import resolve_run_id
from rostersync.common.time import getDurationMs, systemClock
from rostersync.config.settings import APPLY_STRATEGIES, Settings, loadSettings
from rostersync.domain.cache.snapshot_cache import SnapshotCache
from rostersync.domain.error_codes import ErrorCode
from rostersync.domain.lookups import loadLookupTables
from rostersync.domain.planning.reconciler import Reconciler
from rostersync.domain.ports.registry import ApplyStrategy
from rostersync.domain.transform.snapshot_parser import SnapshotParser
from rostersync.errors import AppError
from rostersync.infra.artifacts.report_writer import createRunReport, finalizeReport, writeReportJson
from rostersync.infra.artifacts.xlsx_writer import writeExportXlsx
from rostersync.infra.logging.setup import (
    LoggedStream,
    closeCommandLogger,
    createCommandLogger,
    logEvent,
    mapLogLevel,
)
from rostersync.infra.registry.db import getRegistryDbPath, openRegistryDb
from rostersync.infra.registry.repository import SqliteEmployeeRegistry
from rostersync.infra.registry.schema import ensure_registry_ready
from rostersync.infra.registry.snapshot_store import SqliteSnapshotStore
from rostersync.infra.registry.sqlite_engine import SqliteEngine
from rostersync.infra.sources.xlsx_grid import readXlsxGrid
from rostersync.usecases.archive_usecase import ArchiveUseCase
from rostersync.usecases.export_usecase import ExportUseCase
from rostersync.usecases.parse_usecase import ParseUseCase, parse_stats_line
from rostersync.usecases.sync_usecase import SyncUseCase

app = typer.Typer(no_args_is_help=True, add_completion=False)
registryApp = typer.Typer(no_args_is_help=True)

EXIT_OK = 0
EXIT_INPUT = 2


def ensureDir(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def requireXlsx(xlsxPath: str | None) -> None:
    """
    Назначение:
        Базовая проверка наличия файла выгрузки.

    Поведение:
        - Если путь не задан или файл не существует, exit code 2.
    """
    if not xlsxPath:
        typer.echo("ERROR: --xlsx is required", err=True)
        raise typer.Exit(code=EXIT_INPUT)

    p = Path(xlsxPath)
    if not p.exists() or not p.is_file():
        typer.echo(f"ERROR: spreadsheet not found: {xlsxPath}", err=True)
        raise typer.Exit(code=EXIT_INPUT)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    typer.echo(
        f"run_id={runId} command={command} registry_dir={settings.registry_dir} "
        f"situation_table={settings.situation_table} sources={sources} log_level={settings.log_level}"
    )


def reportAppError(logger: logging.Logger, runId: str, report, component: str, exc: AppError) -> int:
    """
    Назначение:
        Единая обработка AppError в командах: лог, контекст отчёта, stderr.

    Выходные данные:
        int
            3 для повторяемых ошибок (хранилище занято/недоступно), иначе 2.
    """
    logEvent(logger, logging.ERROR, runId, component, f"{exc.code}: {exc.message}")
    report.set_context("error", exc.to_dict())
    report.status = "FAILED"
    typer.echo(f"ERROR: {exc.message}", err=True)
    return exc.exit_code


def runWithReport(
    ctx: typer.Context,
    commandName: str,
    xlsxPath: str | None,
    requiresXlsx: bool,
    runner,
) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - создаёт report.json skeleton
        - проверяет наличие файла выгрузки
        - перенаправляет stdout/stderr в лог (tee)
        - гарантирует запись отчёта в finally
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()

    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    report = createRunReport(
        runId=runId,
        command=commandName,
        configSources=sources,
        source=xlsxPath,
        itemsLimit=settings.report_items_limit,
    )

    originalStdout = sys.stdout
    originalStderr = sys.stderr

    sys.stdout = LoggedStream(originalStdout, logger, logging.INFO, runId, "stdout")
    sys.stderr = LoggedStream(originalStderr, logger, logging.ERROR, runId, "stderr")

    exitCode: int | None = None

    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)

        if requiresXlsx:
            try:
                requireXlsx(xlsxPath)
            except typer.Exit:
                logEvent(logger, logging.ERROR, runId, "source", "Spreadsheet is missing or not accessible")
                report.status = "FAILED"
                exitCode = EXIT_INPUT
                return

        exitCode = runner(logger, report)

    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        finalizeReport(
            report=report,
            durationMs=durationMs,
            logFile=logFilePath,
            registryDir=settings.registry_dir,
            reportDir=settings.report_dir,
        )
        reportPath = writeReportJson(report, settings.report_dir)
        logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")

        sys.stdout.flush()
        sys.stderr.flush()
        sys.stdout = originalStdout
        sys.stderr = originalStderr
        closeCommandLogger(logger)

        if exitCode is not None:
            raise typer.Exit(code=exitCode)


def openRegistry(settings: Settings) -> tuple[SqliteEngine, SqliteEmployeeRegistry]:
    conn = openRegistryDb(getRegistryDbPath(settings.registry_dir))
    engine = SqliteEngine(conn)
    ensure_registry_ready(engine)
    return engine, SqliteEmployeeRegistry(engine, clock=systemClock)


def buildSnapshotParser(settings: Settings) -> SnapshotParser:
    """
    Назначение:
        Собирает парсер из справочников и явно выбранной таблицы ситуаций.

    Ошибки:
        LookupTablesError, SituationTableNotConfirmedError.
    """
    lookups = loadLookupTables(settings.lookups_file)
    labels = lookups.situation_labels(settings.situation_table)
    return SnapshotParser(lookups, labels, clock=systemClock)


def parseSpreadsheet(settings: Settings, xlsxPath: str, logger: logging.Logger, runId: str, report):
    parser = buildSnapshotParser(settings)
    grid = readXlsxGrid(xlsxPath)
    return ParseUseCase(parser).run(grid, logger, runId, report)


def runParseCommand(ctx: typer.Context, xlsxPath: str | None, sessionId: str | None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        engine = None
        try:
            result = parseSpreadsheet(settings, xlsxPath, logger, runId, report)
            engine, _registry = openRegistry(settings)
            cache = SnapshotCache(
                SqliteSnapshotStore(engine),
                ttl_seconds=settings.snapshot_cache_ttl_seconds,
                clock=systemClock,
            )
            session = sessionId or runId
            entry = cache.put(session, result.records)
            report.set_context("cache", {"session_id": session, "stored_at": entry.stored_at.isoformat()})
            typer.echo(parse_stats_line(result))
            typer.echo(f"session_id={session} cached_records={len(entry.records)}")
            return EXIT_OK
        except AppError as exc:
            return reportAppError(logger, runId, report, "parse", exc)
        finally:
            if engine is not None:
                engine.close()

    runWithReport(ctx=ctx, commandName="parse", xlsxPath=xlsxPath, requiresXlsx=True, runner=execute)


def runSyncCommand(
    ctx: typer.Context,
    xlsxPath: str | None,
    strategy: str | None,
    minSnapshotSize: int | None,
    dryRun: bool,
) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        strategyName = (strategy or settings.apply_strategy).strip().lower()
        if strategyName not in APPLY_STRATEGIES:
            typer.echo(f"ERROR: unsupported strategy: {strategy}", err=True)
            report.status = "FAILED"
            return EXIT_INPUT
        floor = minSnapshotSize if minSnapshotSize is not None else settings.min_snapshot_size

        engine = None
        try:
            result = parseSpreadsheet(settings, xlsxPath, logger, runId, report)
            engine, registry = openRegistry(settings)
            usecase = SyncUseCase(
                registry=registry,
                reconciler=Reconciler(min_snapshot_size=floor),
                delete_warn_ratio=settings.delete_warn_ratio,
            )
            outcome = usecase.run(
                records=result.records,
                strategy=ApplyStrategy(strategyName),
                dry_run=dryRun,
                logger=logger,
                run_id=runId,
                report=report,
            )
            typer.echo(parse_stats_line(result))
            if outcome.exit_code == EXIT_INPUT:
                typer.echo("ERROR: snapshot below minimum size, registry unchanged (see logs/report)", err=True)
            typer.echo(outcome.summary_line())
            return outcome.exit_code
        except AppError as exc:
            return reportAppError(logger, runId, report, "sync", exc)
        finally:
            if engine is not None:
                engine.close()

    runWithReport(ctx=ctx, commandName="sync", xlsxPath=xlsxPath, requiresXlsx=True, runner=execute)


def defaultExportPath(settings: Settings, today: date) -> str:
    return str(Path(settings.export_dir) / f"colaboradores_{today.isoformat()}.xlsx")


def runExportCommand(ctx: typer.Context, sessionId: str | None, xlsxPath: str | None, outPath: str | None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        if bool(sessionId) == bool(xlsxPath):
            typer.echo("ERROR: exactly one of --session or --xlsx is required", err=True)
            report.status = "FAILED"
            return EXIT_INPUT
        if xlsxPath:
            try:
                requireXlsx(xlsxPath)
            except typer.Exit:
                report.status = "FAILED"
                return EXIT_INPUT

        engine = None
        try:
            records = None
            if xlsxPath:
                records = parseSpreadsheet(settings, xlsxPath, logger, runId, report).records
            engine, registry = openRegistry(settings)
            if records is None:
                cache = SnapshotCache(
                    SqliteSnapshotStore(engine),
                    ttl_seconds=settings.snapshot_cache_ttl_seconds,
                    clock=systemClock,
                )
                entry = cache.get(sessionId)
                if entry is None:
                    logEvent(logger, logging.ERROR, runId, "cache", f"Snapshot session not found or expired: {sessionId}")
                    report.set_context("error", {"code": ErrorCode.SNAPSHOT_CACHE_MISS.value, "session_id": sessionId})
                    report.status = "FAILED"
                    typer.echo(f"ERROR: snapshot session not found or expired: {sessionId}; run parse again", err=True)
                    return EXIT_INPUT
                records = list(entry.records)

            target = outPath or defaultExportPath(settings, systemClock().date())
            path = ExportUseCase(registry, writeExportXlsx).run(records, target, logger, runId, report)
            typer.echo(f"export_path={path} rows={len(records)}")
            return EXIT_OK
        except AppError as exc:
            return reportAppError(logger, runId, report, "export", exc)
        finally:
            if engine is not None:
                engine.close()

    runWithReport(ctx=ctx, commandName="export", xlsxPath=xlsxPath, requiresXlsx=False, runner=execute)


def runArchiveCommand(ctx: typer.Context, recordDate: str | None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            target = date.fromisoformat(recordDate) if recordDate else systemClock().date()
        except ValueError:
            typer.echo(f"ERROR: invalid --record-date (expected YYYY-MM-DD): {recordDate}", err=True)
            report.status = "FAILED"
            return EXIT_INPUT

        engine = None
        try:
            engine, registry = openRegistry(settings)
            copied = ArchiveUseCase(registry).run(target, logger, runId, report)
            typer.echo(f"record_date={target.isoformat()} archived={copied}")
            return EXIT_OK
        except AppError as exc:
            return reportAppError(logger, runId, report, "archive", exc)
        finally:
            if engine is not None:
                engine.close()

    runWithReport(ctx=ctx, commandName="archive", xlsxPath=None, requiresXlsx=False, runner=execute)


def runRegistryStatusCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        engine = None
        try:
            engine, registry = openRegistry(settings)
            status = registry.status()
            report.set_context(
                "registry",
                {
                    "schema_version": status.schema_version,
                    "employees": status.employees,
                    "history": status.history,
                    "cached_snapshots": status.cached_snapshots,
                    "last_archive_date": status.last_archive_date,
                },
            )
            typer.echo(
                f"schema_version={status.schema_version} employees={status.employees} "
                f"history={status.history} cached_snapshots={status.cached_snapshots} "
                f"last_archive_date={status.last_archive_date}"
            )
            return EXIT_OK
        except AppError as exc:
            return reportAppError(logger, runId, report, "registry", exc)
        finally:
            if engine is not None:
                engine.close()

    runWithReport(ctx=ctx, commandName="registry-status", xlsxPath=None, requiresXlsx=False, runner=execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    registryDir: str | None = typer.Option(None, "--registry-dir", help="Directory for the SQLite registry."),
    exportDir: str | None = typer.Option(None, "--export-dir", help="Directory for export spreadsheets."),
    lookupsFile: str | None = typer.Option(None, "--lookups-file", help="Lookup tables YAML (default: bundled)."),
    situationTable: str | None = typer.Option(
        None,
        "--situation-table",
        help="Name of the situation label table in the lookups file",
    ),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/report/registry
        - сохраняет всё в ctx.obj для подкоманд
    """
    cliOverrides = {
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
        "registry_dir": registryDir,
        "export_dir": exportDir,
        "lookups_file": lookupsFile,
        "situation_table": situationTable,
    }
    try:
        runId = resolve_run_id(runId)
        loaded = loadSettings(config_path=config, cli_overrides=cliOverrides)
        mapLogLevel(loaded.settings.log_level)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=EXIT_INPUT)

    ensureDir(loaded.settings.log_dir)
    ensureDir(loaded.settings.report_dir)
    ensureDir(loaded.settings.registry_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
    }


@app.command("parse")
def parse(
    ctx: typer.Context,
    xlsx: str | None = typer.Option(None, "--xlsx", help="Path to the roster spreadsheet (.xlsx)"),
    session: str | None = typer.Option(None, "--session", help="Snapshot session id (default: run id)"),
):
    runParseCommand(ctx, xlsx, session)


@app.command("sync")
def sync(
    ctx: typer.Context,
    xlsx: str | None = typer.Option(None, "--xlsx", help="Path to the roster spreadsheet (.xlsx)"),
    strategy: str | None = typer.Option(None, "--strategy", help="Apply strategy: set_based|full_replace"),
    minSnapshotSize: int | None = typer.Option(
        None,
        "--min-snapshot-size",
        help="Abort when the snapshot has fewer distinct employees",
    ),
    dryRun: bool = typer.Option(False, "--dry-run/--no-dry-run", help="Reconcile only, do not write the registry"),
):
    runSyncCommand(ctx, xlsx, strategy, minSnapshotSize, dryRun)


@app.command("export")
def export(
    ctx: typer.Context,
    session: str | None = typer.Option(None, "--session", help="Cached snapshot session id from parse"),
    xlsx: str | None = typer.Option(None, "--xlsx", help="Parse this spreadsheet instead of using a session"),
    out: str | None = typer.Option(None, "--out", help="Output .xlsx path (default: export_dir)"),
):
    runExportCommand(ctx, session, xlsx, out)


@app.command("archive")
def archive(
    ctx: typer.Context,
    recordDate: str | None = typer.Option(None, "--record-date", help="History date YYYY-MM-DD (default: today)"),
):
    runArchiveCommand(ctx, recordDate)


@registryApp.command("status")
def registryStatus(ctx: typer.Context):
    runRegistryStatusCommand(ctx)


app.add_typer(registryApp, name="registry")


if __name__ == "__main__":
    app()
