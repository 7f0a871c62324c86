from __future__ import annotations

from datetime import date
from typing import Any, Iterable

from rostersync.domain.employees import PersistedEmployee

# Колонки выгрузки для кадровой службы: (заголовок, ширина в символах).
EXPORT_LAYOUT = (
    ("NOME", 35),
    ("FUNCAO", 30),
    ("CPF", 14),
    ("MATRICULA", 12),
    ("EMPRESA", 35),
    ("CNPJ", 18),
    ("DATA_ADMISSAO", 12),
    ("PROJETO", 8),
    ("PROJETO_RH", 25),
    ("SITUACAO", 10),
    ("SITUACAO_TIPO", 45),
    ("EQUIPE", 15),
    ("COORDENADOR", 25),
    ("SUPERVISOR", 25),
    ("HORAS_TRABALHADAS", 8),
    ("FUNCAO_EXECUTANTE", 20),
    ("CLASSE", 8),
    ("NOME_LIDER", 25),
)

EXPORT_COLUMNS = tuple(name for name, _width in EXPORT_LAYOUT)
EXPORT_COLUMN_WIDTHS = tuple(width for _name, width in EXPORT_LAYOUT)
EXPORT_SHEET_NAME = "Colaboradores"


def format_date_br(value: date | None) -> str:
    """dd/mm/yyyy; пустая строка для отсутствующей даты."""
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")


def build_export_row(employee: PersistedEmployee) -> dict[str, Any]:
    return {
        "NOME": employee.name,
        "FUNCAO": employee.job_title or "",
        "CPF": employee.national_id,
        "MATRICULA": employee.matricula or "",
        "EMPRESA": employee.company or "",
        "CNPJ": employee.tax_id or "",
        "DATA_ADMISSAO": format_date_br(employee.admission_date),
        "PROJETO": employee.project or "",
        "PROJETO_RH": employee.cost_center or "",
        "SITUACAO": employee.situation_code or "",
        "SITUACAO_TIPO": employee.situation_label or "",
        "EQUIPE": employee.team or "",
        "COORDENADOR": employee.coordinator or "",
        "SUPERVISOR": employee.supervisor or "",
        "HORAS_TRABALHADAS": employee.hours_worked,
        "FUNCAO_EXECUTANTE": employee.executing_function or "",
        "CLASSE": employee.classification or "",
        "NOME_LIDER": employee.team_lead or "",
    }


def build_export_rows(employees: Iterable[PersistedEmployee]) -> list[dict[str, Any]]:
    """
    Назначение:
        Проекция слитых строк реестра в строки выгрузки.

    Выходные данные:
        list[dict]
            Ключи каждого словаря идут в порядке EXPORT_COLUMNS.
    """
    return [build_export_row(employee) for employee in employees]
