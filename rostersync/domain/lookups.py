from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from rostersync.domain.exceptions import LookupTablesError, SituationTableNotConfirmedError

DEFAULT_LOOKUPS_PATH = Path(__file__).resolve().parent.parent / "data" / "lookups.yml"
SUPPORTED_VERSIONS = (1,)


@dataclass(frozen=True)
class LookupTables:
    """
    Назначение:
        Статические справочники для разбора выгрузки.

    Поля:
        company_tax_ids: компания -> CNPJ
        company_prefixes: компания -> префикс матрикулы (один символ)
        job_title_classes: нормализованная должность -> код класса
        job_title_functions: нормализованная должность -> исполняемая функция
        situation_tables: имя таблицы -> {код ситуации -> подпись}

    Инварианты:
        job_title_classes и job_title_functions: независимые таблицы,
        одна не выводится из другой.
    """

    version: int
    source: str
    company_tax_ids: Mapping[str, str] = field(default_factory=dict)
    company_prefixes: Mapping[str, str] = field(default_factory=dict)
    job_title_classes: Mapping[str, str] = field(default_factory=dict)
    job_title_functions: Mapping[str, str] = field(default_factory=dict)
    situation_tables: Mapping[str, Mapping[int, str]] = field(default_factory=dict)

    def situation_labels(self, table_name: str | None) -> Mapping[int, str]:
        """
        Возвращает выбранную таблицу подписей ситуаций.
        Без явного выбора: SituationTableNotConfirmedError.
        """
        available = sorted(self.situation_tables)
        if not table_name:
            raise SituationTableNotConfirmedError(available)
        if table_name not in self.situation_tables:
            raise SituationTableNotConfirmedError(available, requested=table_name)
        return self.situation_tables[table_name]


def loadLookupTables(path: str | None = None) -> LookupTables:
    """
    Назначение:
        Загружает справочники из YAML-файла (по умолчанию встроенный data/lookups.yml).

    Ошибки:
        LookupTablesError: файл не найден, неизвестная версия, неверная структура.
    """
    source = Path(path) if path else DEFAULT_LOOKUPS_PATH
    if not source.is_file():
        raise LookupTablesError(str(source), "file not found")
    with source.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise LookupTablesError(str(source), f"YAML parse error: {exc}") from exc
    return buildLookupTables(data, str(source))


def buildLookupTables(data: Any, source: str = "<memory>") -> LookupTables:
    if not isinstance(data, dict):
        raise LookupTablesError(source, "top-level mapping expected")

    version = data.get("version")
    if version not in SUPPORTED_VERSIONS:
        raise LookupTablesError(source, f"unsupported version: {version!r}")

    tax_ids: dict[str, str] = {}
    prefixes: dict[str, str] = {}
    for name, entry in _mapping(data, "companies", source).items():
        if not isinstance(entry, dict):
            raise LookupTablesError(source, f"company '{name}' must be a mapping")
        prefix = str(entry.get("prefix") or "")
        if len(prefix) != 1:
            raise LookupTablesError(source, f"company '{name}' prefix must be one character")
        key = str(name).strip().upper()
        tax_ids[key] = str(entry.get("tax_id") or "")
        prefixes[key] = prefix

    situation_tables: dict[str, dict[int, str]] = {}
    for table_name, table in _mapping(data, "situation_tables", source).items():
        if not isinstance(table, dict):
            raise LookupTablesError(source, f"situation table '{table_name}' must be a mapping")
        try:
            situation_tables[str(table_name)] = {int(code): str(label) for code, label in table.items()}
        except (TypeError, ValueError) as exc:
            raise LookupTablesError(source, f"situation table '{table_name}' has non-integer code") from exc

    return LookupTables(
        version=version,
        source=source,
        company_tax_ids=tax_ids,
        company_prefixes=prefixes,
        job_title_classes=_string_map(data, "job_title_classes", source),
        job_title_functions=_string_map(data, "job_title_functions", source),
        situation_tables=situation_tables,
    )


def _mapping(data: dict, key: str, source: str) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise LookupTablesError(source, f"'{key}' must be a mapping")
    return value


def _string_map(data: dict, key: str, source: str) -> dict[str, str]:
    return {str(k): str(v) for k, v in _mapping(data, key, source).items()}
