from datetime import date
from pathlib import Path

from openpyxl import load_workbook

from rostersync.domain.employees import PersistedEmployee
from rostersync.domain.export.projector import (
    EXPORT_COLUMN_WIDTHS,
    EXPORT_COLUMNS,
    build_export_rows,
    format_date_br,
)
from rostersync.infra.artifacts.xlsx_writer import writeExportXlsx


def employee():
    return PersistedEmployee(
        national_id="12345678901",
        name="ANA",
        job_title="MOTORISTA",
        admission_date=date(2023, 3, 5),
        executing_function="MOTORISTA",
        classification="MCM",
        company="DS3 FLORESTAL LTDA",
        tax_id="46.002.274/0001-10",
        matricula="40012",
        cost_center="12A3",
        situation_code="1",
        situation_label="Trabalhando",
        project="12",
        team="T1",
        team_lead="LIDER X",
    )


def test_export_columns_order():
    assert EXPORT_COLUMNS == (
        "NOME",
        "FUNCAO",
        "CPF",
        "MATRICULA",
        "EMPRESA",
        "CNPJ",
        "DATA_ADMISSAO",
        "PROJETO",
        "PROJETO_RH",
        "SITUACAO",
        "SITUACAO_TIPO",
        "EQUIPE",
        "COORDENADOR",
        "SUPERVISOR",
        "HORAS_TRABALHADAS",
        "FUNCAO_EXECUTANTE",
        "CLASSE",
        "NOME_LIDER",
    )
    assert len(EXPORT_COLUMN_WIDTHS) == len(EXPORT_COLUMNS)


def test_build_export_rows():
    rows = build_export_rows([employee()])

    assert list(rows[0]) == list(EXPORT_COLUMNS)
    assert rows[0]["DATA_ADMISSAO"] == "05/03/2023"
    assert rows[0]["PROJETO"] == "12"
    assert rows[0]["PROJETO_RH"] == "12A3"
    assert rows[0]["SITUACAO_TIPO"] == "Trabalhando"
    assert rows[0]["HORAS_TRABALHADAS"] == 8
    assert rows[0]["NOME_LIDER"] == "LIDER X"
    assert rows[0]["COORDENADOR"] == ""


def test_format_date_br():
    assert format_date_br(date(2024, 12, 1)) == "01/12/2024"
    assert format_date_br(None) == ""


def test_write_export_xlsx(tmp_path: Path):
    out = tmp_path / "exports" / "colaboradores.xlsx"

    writeExportXlsx(build_export_rows([employee()]), str(out))

    wb = load_workbook(out)
    ws = wb["Colaboradores"]
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0] == EXPORT_COLUMNS
    assert rows[1][0] == "ANA"
    assert rows[1][2] == "12345678901"
    assert ws.column_dimensions["A"].width == 35
    assert ws.column_dimensions["K"].width == 45
