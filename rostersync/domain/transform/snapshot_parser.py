from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from rostersync.common.time import Clock, systemClock
from rostersync.domain.employees import EmployeeSnapshot
from rostersync.domain.error_codes import ErrorCode
from rostersync.domain.lookups import LookupTables
from rostersync.domain.models import DiagnosticItem, DiagnosticStage, RowRef
from rostersync.domain.transform.normalizer import (
    NATIONAL_ID_LENGTH,
    TERMINATED_SITUATION_CODE,
    build_matricula,
    cell_text,
    clean_national_id,
    company_tax_id,
    derive_classification,
    derive_executing_function,
    is_blank,
    is_company_header,
    normalize_job_title,
    parse_employee_code,
    parse_situation_code,
    project_from_cost_center,
    spreadsheet_serial_to_date,
)

Grid = Sequence[Sequence[Any]]


@dataclass(frozen=True)
class SourceLayout:
    """
    Назначение:
        Фиксированные смещения колонок выгрузки (0-based).
    Ограничения:
        Контракт с системой-источником; заголовки таблицы не анализируются.
        Любое изменение макета выгрузки требует правки этих значений.
    """

    code: int = 0
    name: int = 4
    job_title: int = 11
    cost_center: int = 18
    admission_date: int = 22
    situation: int = 26
    national_id: int = 28


@dataclass
class ParsedRow:
    """
    Назначение:
        Итог разбора одной строки сотрудника: запись или причины отказа.
    """

    row_ref: RowRef
    record: EmployeeSnapshot | None
    errors: list[DiagnosticItem] = field(default_factory=list)
    warnings: list[DiagnosticItem] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.record is not None


@dataclass
class ParseResult:
    rows: list[ParsedRow]
    companies: list[str]
    rows_scanned: int
    ignored_rows: int

    @property
    def records(self) -> list[EmployeeSnapshot]:
        return [row.record for row in self.rows if row.record is not None]

    @property
    def rejected(self) -> list[ParsedRow]:
        return [row for row in self.rows if row.record is None]


class SnapshotParser:
    """
    Назначение/ответственность:
        Превращает сетку ячеек выгрузки в упорядоченный список EmployeeSnapshot.
    Взаимодействия:
        Использует LookupTables и функции normalizer; ввод-вывод не выполняет.
    Ограничения:
        Один проход сверху вниз с контекстом «текущая компания»;
        порядок записей совпадает с порядком строк.
        Время обработки берётся из переданных часов один раз на разбор.
    """

    def __init__(
        self,
        lookups: LookupTables,
        situation_labels: Mapping[int, str],
        clock: Clock = systemClock,
        layout: SourceLayout | None = None,
    ) -> None:
        self.lookups = lookups
        self.situation_labels = situation_labels
        self.clock = clock
        self.layout = layout or SourceLayout()

    def parse(self, grid: Grid) -> ParseResult:
        processed_at = self.clock()
        current_company: str | None = None
        companies: list[str] = []
        rows: list[ParsedRow] = []
        ignored = 0

        for index, cells in enumerate(grid):
            line_no = index + 1
            first = _cell(cells, self.layout.code)
            if is_blank(first):
                ignored += 1
                continue

            if is_company_header(first):
                current_company = first.strip().upper()
                if current_company not in companies:
                    companies.append(current_company)
                continue

            code = parse_employee_code(first)
            if code is None:
                ignored += 1
                continue

            rows.append(self._parse_employee_row(cells, line_no, code, current_company, processed_at))

        return ParseResult(rows=rows, companies=companies, rows_scanned=len(grid), ignored_rows=ignored)

    def _parse_employee_row(
        self,
        cells: Sequence[Any],
        line_no: int,
        code: int,
        company: str | None,
        processed_at,
    ) -> ParsedRow:
        layout = self.layout
        name_raw = _cell(cells, layout.name)
        title_raw = _cell(cells, layout.job_title)
        cost_center_raw = _cell(cells, layout.cost_center)
        admission_raw = _cell(cells, layout.admission_date)
        situation_raw = _cell(cells, layout.situation)
        national_id_raw = _cell(cells, layout.national_id)

        errors: list[DiagnosticItem] = []
        warnings: list[DiagnosticItem] = []

        national_id = clean_national_id(national_id_raw)
        row_ref = RowRef(line_no=line_no, national_id=national_id, company=company)

        if is_blank(name_raw):
            errors.append(_parse_error(ErrorCode.REQUIRED_FIELD_MISSING, "name", "name is required"))
        if is_blank(national_id_raw) or national_id is None:
            errors.append(_parse_error(ErrorCode.REQUIRED_FIELD_MISSING, "national_id", "national_id is required"))
        if company is None:
            errors.append(
                _parse_error(ErrorCode.COMPANY_CONTEXT_MISSING, "company", "no company header seen before this row")
            )
        if errors:
            return ParsedRow(row_ref=row_ref, record=None, errors=errors)

        situation_code = parse_situation_code(situation_raw)
        if situation_code == TERMINATED_SITUATION_CODE:
            errors.append(_parse_error(ErrorCode.TERMINATED_EMPLOYEE, "situation", "terminated employee excluded"))
            return ParsedRow(row_ref=row_ref, record=None, errors=errors)

        if len(national_id) != NATIONAL_ID_LENGTH:
            errors.append(
                _parse_error(
                    ErrorCode.INVALID_NATIONAL_ID,
                    "national_id",
                    f"national_id must have {NATIONAL_ID_LENGTH} digits, got {cell_text(national_id_raw)!r}",
                )
            )
            return ParsedRow(row_ref=row_ref, record=None, errors=errors)

        job_title = normalize_job_title(title_raw)
        classification, class_found = derive_classification(job_title, self.lookups)
        if not class_found:
            warnings.append(
                _derive_warning(ErrorCode.UNMAPPED_JOB_TITLE, "job_title", f"no class for job title {job_title!r}")
            )
        executing_function, function_found = derive_executing_function(job_title, title_raw, self.lookups)
        if not function_found:
            warnings.append(
                _derive_warning(
                    ErrorCode.UNMAPPED_FUNCTION,
                    "executing_function",
                    f"no function for job title {job_title!r}, using {executing_function!r}",
                )
            )

        tax_id, company_known = company_tax_id(company, self.lookups)
        matricula, _prefix_known = build_matricula(code, company, self.lookups)
        if not company_known:
            warnings.append(_derive_warning(ErrorCode.UNKNOWN_COMPANY, "company", f"unknown company {company!r}"))

        situation_text = cell_text(situation_raw)
        situation_label = ""
        if situation_code is not None and situation_code in self.situation_labels:
            situation_label = self.situation_labels[situation_code]
        elif not is_blank(situation_raw):
            warnings.append(
                _derive_warning(ErrorCode.UNKNOWN_SITUATION, "situation", f"unknown situation code {situation_text!r}")
            )

        cost_center_text = cell_text(cost_center_raw)
        record = EmployeeSnapshot(
            line_no=line_no,
            employee_code=code,
            national_id=national_id,
            name=str(name_raw).upper().strip(),
            job_title_raw=cell_text(title_raw),
            job_title=job_title,
            admission_date=spreadsheet_serial_to_date(admission_raw),
            classification=classification,
            executing_function=executing_function,
            company=company,
            tax_id=tax_id,
            matricula=matricula,
            cost_center=cost_center_text.strip() if cost_center_text else "",
            project_guess=project_from_cost_center(cost_center_raw),
            situation_code=situation_text if situation_text is not None else "",
            situation_label=situation_label,
            processed_at=processed_at,
        )
        return ParsedRow(row_ref=row_ref, record=record, warnings=warnings)


def _cell(cells: Sequence[Any], col: int) -> Any:
    if col < len(cells):
        return cells[col]
    return None


def _parse_error(code: ErrorCode, field: str, message: str) -> DiagnosticItem:
    return DiagnosticItem(stage=DiagnosticStage.PARSE, code=code.value, field=field, message=message)


def _derive_warning(code: ErrorCode, field: str, message: str) -> DiagnosticItem:
    return DiagnosticItem(stage=DiagnosticStage.DERIVE, code=code.value, field=field, message=message)
