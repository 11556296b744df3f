"""
XLSX sheet reader.

Loads the first worksheet of an .xlsx workbook into the plain text grid
and merged-region list that parse_table() consumes. No layout rules live
here.
"""

from __future__ import annotations

import os
from zipfile import BadZipFile
from dataclasses import dataclass

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from constants import XLSX_SUFFIX


class WorkbookError(Exception):
    """Raised when a workbook cannot be located, opened or read."""


@dataclass(frozen=True)
class SheetGrid:
    path: str
    sheet_name: str
    cells: tuple[tuple[str, ...], ...]
    # (first_row, first_col, last_row, last_col), 1-based
    merged_regions: tuple[tuple[int, int, int, int], ...] = ()


def cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_xlsx(path: str) -> SheetGrid:
    """
    Read the first worksheet of `path`.

    Raises:
        WorkbookError if the file is missing, not .xlsx, or unreadable.
    """
    if not os.path.isfile(path):
        raise WorkbookError(f"file not found: {path}")
    if not path.lower().endswith(XLSX_SUFFIX):
        raise WorkbookError(f"only .xlsx is supported: {path}")

    try:
        workbook = load_workbook(path, data_only=True)
    except (InvalidFileException, BadZipFile, OSError, KeyError, ValueError) as e:
        raise WorkbookError(f"failed to open workbook (locked or corrupted?): {path}") from e

    try:
        if not workbook.worksheets:
            raise WorkbookError(f"workbook has no worksheets: {path}")
        sheet = workbook.worksheets[0]

        merged = tuple(
            (r.min_row, r.min_col, r.max_row, r.max_col)
            for r in sheet.merged_cells.ranges
        )
        cells = tuple(
            tuple(cell_text(v) for v in row)
            for row in sheet.iter_rows(values_only=True)
        )
        return SheetGrid(
            path=path,
            sheet_name=sheet.title,
            cells=cells,
            merged_regions=merged,
        )
    finally:
        workbook.close()
