from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from rostersync.domain.export.projector import EXPORT_COLUMN_WIDTHS, EXPORT_COLUMNS, EXPORT_SHEET_NAME


def writeExportXlsx(rows: Sequence[Mapping[str, Any]], outPath: str) -> str:
    """
    Назначение:
        Записывает строки выгрузки в xlsx: лист "Colaboradores", строка
        заголовков, фиксированные ширины колонок.

    Выходные данные:
        str
            Путь к записанному файлу.
    """
    Path(outPath).parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = EXPORT_SHEET_NAME

    ws.append(list(EXPORT_COLUMNS))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.freeze_panes = "A2"

    for row in rows:
        ws.append([row.get(column, "") for column in EXPORT_COLUMNS])

    for index, width in enumerate(EXPORT_COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width

    wb.save(outPath)
    return outPath
