from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from rostersync.domain.exceptions import GridSourceError


def readXlsxGrid(path: str) -> list[list[Any]]:
    """
    Назначение:
        Читает первый лист книги xlsx в виде сетки значений ячеек.

    Выходные данные:
        list[list[Any]]
            Строки начиная с первой строки листа, ячейки начиная с колонки A,
            так что индекс ячейки совпадает со смещением колонки в выгрузке.

    Ошибки:
        GridSourceError: файл отсутствует, не является xlsx или лист пуст.
    """
    source = Path(path)
    if not source.is_file():
        raise GridSourceError(path, "file not found")

    try:
        workbook = load_workbook(filename=str(source), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise GridSourceError(path, f"not a readable xlsx workbook: {exc}") from exc

    try:
        if not workbook.sheetnames:
            raise GridSourceError(path, "workbook has no sheets")
        sheet = workbook[workbook.sheetnames[0]]
        # min_row/min_col фиксированы: пустая колонка A не должна сдвигать смещения
        grid = [list(row) for row in sheet.iter_rows(min_row=1, min_col=1, values_only=True)]
    finally:
        workbook.close()

    if not any(any(value is not None for value in row) for row in grid):
        raise GridSourceError(path, "first sheet is empty")
    return grid
