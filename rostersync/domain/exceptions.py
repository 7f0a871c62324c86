from __future__ import annotations

from rostersync.domain.error_codes import ErrorCode
from rostersync.errors import AppError


class SnapshotBelowFloorError(AppError):
    """
    Назначение:
        Снимок меньше минимального размера: сверка отменяется целиком,
        реестр не затрагивается.
    """

    def __init__(self, snapshot_size: int, min_snapshot_size: int):
        super().__init__(
            category="precondition",
            code=ErrorCode.SNAPSHOT_BELOW_FLOOR.value,
            message=(
                f"snapshot has {snapshot_size} records, "
                f"minimum required is {min_snapshot_size}; registry left unchanged"
            ),
            details={"snapshot_size": snapshot_size, "min_snapshot_size": min_snapshot_size},
        )


class ApplyInProgressError(AppError):
    """
    Назначение:
        Попытка повторного входа в apply, пока предыдущий apply не завершён.
    """

    def __init__(self):
        super().__init__(
            category="concurrency",
            code=ErrorCode.APPLY_IN_PROGRESS.value,
            message="another registry apply is already in progress",
            retryable=True,
        )


class RegistryUnavailableError(AppError):
    """
    Назначение:
        Хранилище реестра недоступно (заблокировано/не открывается).
        Повтор на стороне вызывающего.
    """

    def __init__(self, reason: str):
        super().__init__(
            category="storage",
            code=ErrorCode.REGISTRY_UNAVAILABLE.value,
            message=f"registry storage unavailable: {reason}",
            retryable=True,
            details={"reason": reason},
        )


class GridSourceError(AppError):
    """
    Назначение:
        Файл выгрузки не найден, не читается или пуст.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(
            category="input",
            code=ErrorCode.INVALID_SOURCE.value,
            message=f"cannot read roster spreadsheet {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class LookupTablesError(AppError):
    def __init__(self, source: str, reason: str):
        super().__init__(
            category="config",
            code=ErrorCode.LOOKUPS_INVALID.value,
            message=f"invalid lookup tables in {source}: {reason}",
            details={"source": source, "reason": reason},
        )


class SituationTableNotConfirmedError(AppError):
    """
    Назначение:
        Таблица «код ситуации → подпись» не выбрана явно.
        Разные ревизии источника дают разные подписи для одних и тех же кодов,
        поэтому выбор делает развёртывание, а не код.
    """

    def __init__(self, available: list[str], requested: str | None = None):
        if requested:
            message = f"situation table '{requested}' not found; available: {', '.join(available)}"
        else:
            message = f"situation_table must be set explicitly; available: {', '.join(available)}"
        super().__init__(
            category="config",
            code=ErrorCode.SITUATION_TABLE_NOT_CONFIRMED.value,
            message=message,
            details={"available": available, "requested": requested},
        )


__all__ = [
    "ApplyInProgressError",
    "GridSourceError",
    "LookupTablesError",
    "RegistryUnavailableError",
    "SituationTableNotConfirmedError",
    "SnapshotBelowFloorError",
]
