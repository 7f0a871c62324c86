from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

DEFAULT_HOURS_WORKED = 8

# Поля, которые ведут люди прямо в реестре; автоматическая сверка их не трогает
# (project: кроме заполнения пустого значения из центра затрат).
CURATED_FIELDS = ("project", "team", "coordinator", "supervisor", "team_lead")


@dataclass(frozen=True)
class EmployeeSnapshot:
    """
    Назначение:
        Запись о сотруднике, полученная из одной выгрузки.
    Инварианты/гарантии:
        - national_id: ровно 11 цифр.
        - situation_code никогда не обозначает увольнение.
        - Запись неизменяема после создания парсером.
    """

    line_no: int
    employee_code: int
    national_id: str
    name: str
    job_title_raw: str | None
    job_title: str | None
    admission_date: date | None
    classification: str
    executing_function: str | None
    company: str
    tax_id: str
    matricula: str
    cost_center: str
    project_guess: str
    situation_code: str
    situation_label: str
    processed_at: datetime
    hours_worked: int = DEFAULT_HOURS_WORKED


@dataclass(frozen=True)
class PersistedEmployee:
    """
    Назначение:
        Строка реестра сотрудников.
    Поля:
        Все поля снимка, которые хранит реестр, плюс курируемые вручную
        project/team/coordinator/supervisor/team_lead.
    """

    national_id: str
    name: str
    job_title: str | None = None
    admission_date: date | None = None
    hours_worked: int = DEFAULT_HOURS_WORKED
    classification: str | None = None
    executing_function: str | None = None
    company: str | None = None
    tax_id: str | None = None
    matricula: str | None = None
    cost_center: str | None = None
    situation_code: str | None = None
    situation_label: str | None = None
    updated_at: datetime | None = None
    project: str = ""
    team: str = ""
    coordinator: str = ""
    supervisor: str = ""
    team_lead: str = ""
