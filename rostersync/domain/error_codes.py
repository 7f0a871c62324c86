from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов диагностики и ошибок.
    """

    # Строка пропущена парсером
    REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
    COMPANY_CONTEXT_MISSING = "COMPANY_CONTEXT_MISSING"
    TERMINATED_EMPLOYEE = "TERMINATED_EMPLOYEE"
    INVALID_NATIONAL_ID = "INVALID_NATIONAL_ID"
    UNRECOGNIZED_ROW = "UNRECOGNIZED_ROW"

    # Промах по справочникам (деградация без ошибки)
    UNKNOWN_COMPANY = "UNKNOWN_COMPANY"
    UNMAPPED_JOB_TITLE = "UNMAPPED_JOB_TITLE"
    UNMAPPED_FUNCTION = "UNMAPPED_FUNCTION"
    UNKNOWN_SITUATION = "UNKNOWN_SITUATION"

    # Сверка и применение
    SNAPSHOT_BELOW_FLOOR = "SNAPSHOT_BELOW_FLOOR"
    APPLY_IN_PROGRESS = "APPLY_IN_PROGRESS"
    KEY_APPLY_FAILED = "KEY_APPLY_FAILED"
    REGISTRY_UNAVAILABLE = "REGISTRY_UNAVAILABLE"

    # Входные данные и конфигурация
    INVALID_SOURCE = "INVALID_SOURCE"
    LOOKUPS_INVALID = "LOOKUPS_INVALID"
    SITUATION_TABLE_NOT_CONFIRMED = "SITUATION_TABLE_NOT_CONFIRMED"
    SNAPSHOT_CACHE_MISS = "SNAPSHOT_CACHE_MISS"
