"""
Write DataFrames as styled Excel tables, one sheet per frame.

Used for the optional per-run report: one sheet of symbol outcomes with the
status column color coded, one sheet of quality check results.
"""

import os
from typing import Dict, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows
from openpyxl.worksheet.table import Table, TableStyleInfo

from utils import log

# Cell fills keyed by run/symbol status
STATUS_FILLS = {
    "SUCCESS": "C6EFCE",
    "WARNING": "FFEB9C",
    "FAILED": "FFC7CE",
}

MAX_COLUMN_WIDTH = 60


class ExcelFormatter:
    def __init__(self):
        self.wb = Workbook()
        self._table_names = set()

    def add_to_sheet(
        self,
        df: pd.DataFrame,
        sheet_name: str,
        fills: Optional[Dict[str, Dict[str, str]]] = None,
    ) -> None:
        """
        Add a dataframe as a styled table on its own sheet.

        :param df: The rows to write; the header comes from df.columns
        :param sheet_name: Sheet title, also used for the table name
        :param fills: {column: {cell value: hex color}} background fills
        """
        ws = self._new_sheet(sheet_name)
        for row in dataframe_to_rows(df, index=False, header=True):
            ws.append(row)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        ws.freeze_panes = "A2"

        if df.empty:
            return

        table = Table(displayName=self._table_name(sheet_name),
                      ref=f"A1:{get_column_letter(ws.max_column)}{ws.max_row}")
        table.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True)
        ws.add_table(table)

        for column, colors in (fills or {}).items():
            if column not in df.columns:
                continue
            col_idx = df.columns.get_loc(column) + 1
            for row_idx, value in enumerate(df[column], start=2):
                color = colors.get(str(value))
                if color:
                    ws.cell(row=row_idx, column=col_idx).fill = PatternFill("solid", fgColor=color)

        # Size columns from a sample of rows
        sample = df.head(500).astype(str)
        for i, col in enumerate(df.columns, start=1):
            width = max([len(str(col))] + [len(v) for v in sample[col]])
            ws.column_dimensions[get_column_letter(i)].width = min(width + 4, MAX_COLUMN_WIDTH)

    def save(self, filename: str, location: str) -> str:
        """
        Save the workbook to location/filename and start a fresh one.

        :returns: the full path written
        """
        if not filename.endswith(".xlsx"):
            raise ValueError(f"Report filename must end with .xlsx, got {filename!r}")
        os.makedirs(location, exist_ok=True)
        path = os.path.join(location, filename)
        self.wb.save(path)
        self.wb = Workbook()
        self._table_names = set()
        log.info(f"Excel report: {path}")
        return path

    def _new_sheet(self, sheet_name: str):
        ws = self.wb.active
        # The workbook starts with one blank sheet; use it for the first frame
        if not self._table_names and ws.max_row <= 1 and ws.cell(1, 1).value is None:
            ws.title = sheet_name
            return ws
        return self.wb.create_sheet(title=sheet_name)

    def _table_name(self, sheet_name: str) -> str:
        base = "".join(ch for ch in sheet_name if ch.isalnum()) or "Table"
        name, n = base, 2
        while name in self._table_names:
            name = f"{base}_{n}"
            n += 1
        self._table_names.add(name)
        return name
