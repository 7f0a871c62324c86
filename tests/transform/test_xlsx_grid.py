from pathlib import Path

import pytest
from openpyxl import Workbook

from rostersync.domain.exceptions import GridSourceError
from rostersync.infra.sources.xlsx_grid import readXlsxGrid


def test_first_sheet_keeps_column_offsets(tmp_path: Path):
    wb = Workbook()
    ws = wb.active
    ws["C1"] = "DS3 FLORESTAL LTDA"
    ws["A2"] = 12
    ws["E2"] = "ANA"
    wb.create_sheet("other")["A1"] = "ignored"
    path = tmp_path / "roster.xlsx"
    wb.save(path)

    grid = readXlsxGrid(str(path))

    assert grid[0][:3] == [None, None, "DS3 FLORESTAL LTDA"]
    assert grid[1][0] == 12
    assert grid[1][4] == "ANA"


def test_missing_and_broken_files(tmp_path: Path):
    with pytest.raises(GridSourceError):
        readXlsxGrid(str(tmp_path / "absent.xlsx"))

    broken = tmp_path / "broken.xlsx"
    broken.write_text("not a workbook", encoding="utf-8")
    with pytest.raises(GridSourceError):
        readXlsxGrid(str(broken))


def test_empty_sheet_is_rejected(tmp_path: Path):
    path = tmp_path / "empty.xlsx"
    Workbook().save(path)

    with pytest.raises(GridSourceError):
        readXlsxGrid(str(path))
