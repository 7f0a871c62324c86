from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from rostersync.domain.employees import EmployeeSnapshot, PersistedEmployee
from rostersync.domain.error_codes import ErrorCode
from rostersync.domain.exceptions import SnapshotBelowFloorError
from rostersync.domain.models import DiagnosticItem, DiagnosticStage, RowRef
from rostersync.domain.planning.diff_models import RegistryDiff
from rostersync.domain.planning.reconciler import Reconciler
from rostersync.domain.ports.registry import ApplyResult, ApplyStrategy, EmployeeRegistryProtocol
from rostersync.domain.reporting.collector import ReportCollector
from rostersync.infra.logging.setup import logEvent


@dataclass
class SyncOutcome:
    exit_code: int
    diff: RegistryDiff | None = None
    apply_result: ApplyResult | None = None
    dry_run: bool = False

    def summary_line(self) -> str:
        if self.diff is None:
            return "sync aborted: registry unchanged"
        s = self.diff.summary
        protections = f"function_protected={s.function_protected} project_preserved={s.project_preserved}"
        if self.apply_result is None:
            return (
                f"dry-run: snapshot={s.snapshot_total} would_insert={s.inserted} "
                f"would_update={s.updated} would_delete={s.deleted} {protections}"
            )
        r = self.apply_result
        return (
            f"strategy={r.strategy.value} snapshot={s.snapshot_total} inserted={r.inserted} "
            f"updated={r.updated} deleted={r.deleted} failed={r.failed} "
            f"rolled_back={r.rolled_back} {protections}"
        )


class SyncUseCase:
    """
    Назначение/ответственность:
        Сверка снимка с реестром и применение диффа.
    Взаимодействия:
        Reconciler строит дифф по строкам, прочитанным внутри транзакции записи
        (reconcile_and_apply); dry-run читает реестр без блокировки.
    Ограничения:
        Снимок ниже порога -> exit 2, реестр не меняется, счётчики нулевые.
        Сбои отдельных ключей -> exit 1 (частичный результат).
        RegistryUnavailableError/ApplyInProgressError пробрасываются наверх.
    """

    def __init__(
        self,
        registry: EmployeeRegistryProtocol,
        reconciler: Reconciler,
        delete_warn_ratio: float,
    ) -> None:
        self.registry = registry
        self.reconciler = reconciler
        self.delete_warn_ratio = delete_warn_ratio

    def run(
        self,
        records: Sequence[EmployeeSnapshot],
        strategy: ApplyStrategy,
        dry_run: bool,
        logger: logging.Logger,
        run_id: str,
        report: ReportCollector,
    ) -> SyncOutcome:
        def plan(persisted: list[PersistedEmployee]) -> RegistryDiff:
            return self._plan(records, persisted, logger, run_id, report)

        try:
            if dry_run:
                diff = plan(self.registry.load_all())
            else:
                diff, result = self.registry.reconcile_and_apply(plan, strategy)
        except SnapshotBelowFloorError as exc:
            logEvent(logger, logging.ERROR, run_id, "reconcile", exc.message)
            report.set_context("error", exc.to_dict())
            report.set_context("sync", {"inserted": 0, "updated": 0, "deleted": 0, "failed": 0})
            report.status = "FAILED"
            return SyncOutcome(exit_code=2)

        if dry_run:
            report.set_context("sync", {"dry_run": True, "strategy": strategy.value})
            report.status = "SUCCESS"
            return SyncOutcome(exit_code=0, diff=diff, dry_run=True)

        self._report_apply(diff, result, records, logger, run_id, report)

        if result.rolled_back:
            report.status = "FAILED"
            return SyncOutcome(exit_code=1, diff=diff, apply_result=result)
        if result.failures:
            report.status = "PARTIAL"
            return SyncOutcome(exit_code=1, diff=diff, apply_result=result)
        report.status = "SUCCESS"
        return SyncOutcome(exit_code=0, diff=diff, apply_result=result)

    def _plan(
        self,
        records: Sequence[EmployeeSnapshot],
        persisted: list[PersistedEmployee],
        logger: logging.Logger,
        run_id: str,
        report: ReportCollector,
    ) -> RegistryDiff:
        diff = self.reconciler.reconcile(records, persisted)
        report.set_context("reconcile", diff.summary.as_dict())
        logEvent(
            logger,
            logging.INFO,
            run_id,
            "reconcile",
            "Diff: insert={inserted} update={updated} delete={deleted} "
            "function_protected={function_protected} project_preserved={project_preserved}".format(
                **diff.summary.as_dict()
            ),
        )
        self._warn_on_mass_delete(diff, len(persisted), logger, run_id)
        return diff

    def _warn_on_mass_delete(self, diff: RegistryDiff, registry_size: int, logger: logging.Logger, run_id: str) -> None:
        if registry_size == 0:
            return
        ratio = len(diff.deletes) / registry_size
        if ratio > self.delete_warn_ratio:
            logEvent(
                logger,
                logging.WARNING,
                run_id,
                "reconcile",
                f"Sync deletes {len(diff.deletes)} of {registry_size} registry rows "
                f"({ratio:.0%} > {self.delete_warn_ratio:.0%}); review the source export manually",
            )

    @staticmethod
    def _report_apply(
        diff: RegistryDiff,
        result: ApplyResult,
        records: Sequence[EmployeeSnapshot],
        logger: logging.Logger,
        run_id: str,
        report: ReportCollector,
    ) -> None:
        failed_by_op = {"insert": 0, "update": 0, "delete": 0}
        for failure in result.failures:
            failed_by_op[failure.op.value] += 1

        report.add_op("insert", ok=result.inserted, failed=failed_by_op["insert"], count=len(diff.inserts))
        report.add_op("update", ok=result.updated, failed=failed_by_op["update"], count=len(diff.updates))
        report.add_op("delete", ok=result.deleted, failed=failed_by_op["delete"], count=len(diff.deletes))
        report.add_op("apply_failed", count=result.failed)
        report.set_context("sync", result.as_dict())

        line_by_key = {record.national_id: record.line_no for record in records}
        for failure in result.failures:
            error = DiagnosticItem(
                stage=DiagnosticStage.APPLY,
                code=ErrorCode.KEY_APPLY_FAILED.value,
                field="national_id",
                message=failure.reason,
            )
            report.add_key_failure(
                row_ref=RowRef(line_no=line_by_key.get(failure.key), national_id=failure.key),
                error=error,
                op=failure.op.value,
                applied=failure.applied,
            )

        level = logging.INFO if not result.failures else logging.ERROR
        logEvent(
            logger,
            level,
            run_id,
            "apply",
            f"Apply finished: strategy={result.strategy.value} inserted={result.inserted} "
            f"updated={result.updated} deleted={result.deleted} failed={result.failed} "
            f"rolled_back={result.rolled_back}",
        )
        if result.rolled_back:
            logEvent(logger, logging.ERROR, run_id, "apply", f"Full replace rolled back: {result.rollback_reason}")
