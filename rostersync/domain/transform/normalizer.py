from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any

from rostersync.domain.lookups import LookupTables

NATIONAL_ID_LENGTH = 11
EMPLOYEE_CODE_WIDTH = 4
UNKNOWN_COMPANY_PREFIX = "0"
UNMAPPED_CLASSIFICATION = "OUT"
TERMINATED_SITUATION_CODE = 8

COMPANY_HEADER_MARKER = "LTDA"
COMPANY_HEADER_MIN_LENGTH = 10

PROJECT_SEPARATOR = "A"

# Нулевой день сериальных дат Excel (с учётом ошибки 1900 года).
SPREADSHEET_EPOCH = datetime(1899, 12, 30)
# Полдня сверху, чтобы округление по часовому поясу не сдвигало дату на день назад.
HALF_DAY = timedelta(hours=12)

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")


def cell_text(value: Any) -> str | None:
    """
    Назначение:
        Текстовое представление значения ячейки.
        Целые числа, прочитанные как float (12.0), отдаются без дробной части.
    """
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def is_company_header(value: Any) -> bool:
    """
    Назначение:
        Строка-заголовок компании: текст длиннее 10 символов с маркером LTDA
        (без учёта регистра).
    """
    return (
        isinstance(value, str)
        and len(value) > COMPANY_HEADER_MIN_LENGTH
        and COMPANY_HEADER_MARKER in value.upper()
    )


def parse_employee_code(value: Any) -> int | None:
    """
    Назначение:
        Код сотрудника из колонки 0: положительное целое (int, целый float
        или строка из цифр). Иначе None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if value.is_integer() and value > 0:
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit() and int(text) > 0:
            return int(text)
    return None


def parse_situation_code(value: Any) -> int | None:
    text = cell_text(value)
    if text is None:
        return None
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() else None


def clean_national_id(value: Any) -> str | None:
    """
    Назначение:
        Оставляет только цифры CPF и дополняет нулями слева до 11 знаков.

    Выходные данные:
        str | None
            None, если цифр нет вовсе. Результат длиннее 11 знаков возвращается
            как есть, проверка длины остаётся за вызывающим.
    """
    text = cell_text(value)
    if text is None:
        return None
    digits = _NON_DIGITS.sub("", text)
    if not digits:
        return None
    return digits.zfill(NATIONAL_ID_LENGTH)


def normalize_job_title(value: Any) -> str | None:
    """
    Назначение:
        Каноническая форма должности: верхний регистр, trim, одиночные пробелы.
    """
    text = cell_text(value)
    if text is None:
        return None
    normalized = _WHITESPACE.sub(" ", text.upper().strip())
    return normalized or None


def derive_classification(job_title: str | None, lookups: LookupTables) -> tuple[str, bool]:
    """
    Назначение:
        Код класса по точному совпадению нормализованной должности.

    Выходные данные:
        (код, найден_ли_в_справочнике); промах -> ("OUT", False).
    """
    if job_title and job_title in lookups.job_title_classes:
        return lookups.job_title_classes[job_title], True
    return UNMAPPED_CLASSIFICATION, False


def derive_executing_function(
    job_title: str | None,
    job_title_raw: Any,
    lookups: LookupTables,
) -> tuple[str | None, bool]:
    """
    Назначение:
        Исполняемая функция по точному совпадению нормализованной должности.

    Алгоритм:
        - совпадение в job_title_functions -> значение справочника;
        - иначе первое слово исходной (ненормализованной) должности в верхнем регистре;
        - должности нет -> None.
    """
    if job_title and job_title in lookups.job_title_functions:
        return lookups.job_title_functions[job_title], True
    raw = cell_text(job_title_raw)
    if raw is None:
        return None, False
    tokens = raw.split()
    if not tokens:
        return None, False
    return tokens[0].upper(), False


def company_tax_id(company: str, lookups: LookupTables) -> tuple[str, bool]:
    if company in lookups.company_tax_ids:
        return lookups.company_tax_ids[company], True
    return "", False


def build_matricula(employee_code: int, company: str, lookups: LookupTables) -> tuple[str, bool]:
    """
    Назначение:
        Матрикула = префикс компании + код сотрудника, дополненный до 4 цифр.
        Неизвестная компания -> префикс "0".
    """
    prefix = lookups.company_prefixes.get(company)
    known = prefix is not None
    return (prefix if known else UNKNOWN_COMPANY_PREFIX) + str(employee_code).zfill(EMPLOYEE_CODE_WIDTH), known


def project_from_cost_center(cost_center: Any) -> str:
    """
    Назначение:
        Догадка о проекте по центру затрат: часть строки до первой буквы "A".

    Алгоритм:
        "A" отсутствует или стоит в позиции 0 -> строка целиком
        ("A123" -> "A123", "12A3" -> "12", "123" -> "123").
    """
    text = cell_text(cost_center)
    if text is None:
        return ""
    pos = text.find(PROJECT_SEPARATOR)
    return text[:pos] if pos > 0 else text


def spreadsheet_serial_to_date(value: Any) -> date | None:
    """
    Назначение:
        Перевод даты из выгрузки в календарную дату.

    Алгоритм:
        - число -> сериальная дата Excel + 12 часов;
        - datetime/date -> как есть;
        - иное -> None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return (SPREADSHEET_EPOCH + timedelta(days=float(value)) + HALF_DAY).date()
    return None
