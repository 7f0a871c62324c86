from __future__ import annotations

from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]


def systemClock() -> datetime:
    """
    Назначение:
        Часы по умолчанию: текущее локальное время с timezone.
        Передаётся в парсер/кэш/архив как зависимость, в тестах подменяется.
    """
    return datetime.now().astimezone()


def fixedClock(value: datetime) -> Clock:
    """
    Назначение:
        Возвращает часы, всегда отдающие одно и то же значение.
    """
    return lambda: value


def getNowIso(clock: Clock = systemClock) -> str:
    """
    Назначение:
        Возвращает текущее время в ISO 8601 с timezone.

    Выходные данные:
        str
            Например: 2026-01-11T18:22:10+01:00
    """
    return clock().isoformat()


def getDurationMs(startMonotonic: float, endMonotonic: float) -> int:
    """
    Назначение:
        Считает длительность в миллисекундах по monotonic timestamps.
    """
    return int((endMonotonic - startMonotonic) * 1000)
