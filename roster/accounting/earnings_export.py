"""保全月收入彙總匯出 Excel（欄位與 /api/earnings/guards 回傳一致）。"""
import io
from typing import List

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side

from roster.schemas import GuardMonthlyEarnings

EXCEL_HEADERS = [
    "員工編號", "姓名", "當月天數", "日薪", "出勤班數", "底薪", "獎金", "扣款", "實領",
]

MONEY_FORMAT = "#,##0.00"


def _write_headers(ws, row_idx: int) -> None:
    thin = Side(style="thin")
    header_font = Font(bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for col, h in enumerate(EXCEL_HEADERS, start=1):
        cell = ws.cell(row=row_idx, column=col, value=h)
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)


def _write_data_row(ws, row_idx: int, row: GuardMonthlyEarnings) -> None:
    values = [
        row.badge_number or "",
        row.guard_name,
        row.days_in_month,
        float(row.daily_rate),
        row.shifts_present,
        float(row.base_salary),
        float(row.total_bonus),
        float(row.total_deductions),
        float(row.net_amount),
    ]
    for col, v in enumerate(values, start=1):
        cell = ws.cell(row=row_idx, column=col, value=v)
        if isinstance(v, float):
            cell.number_format = MONEY_FORMAT


def _write_total_row(ws, row_idx: int, rows: List[GuardMonthlyEarnings]) -> None:
    ws.cell(row=row_idx, column=1, value="合計").font = Font(bold=True)
    ws.cell(row=row_idx, column=5, value=sum(r.shifts_present for r in rows))
    for col, attr in ((6, "base_salary"), (7, "total_bonus"), (8, "total_deductions"), (9, "net_amount")):
        cell = ws.cell(row=row_idx, column=col, value=float(sum(getattr(r, attr) for r in rows)))
        cell.number_format = MONEY_FORMAT
        cell.font = Font(bold=True)


def build_earnings_excel(rows: List[GuardMonthlyEarnings], year: int, month: int) -> bytes:
    """第一列為標題（年月），第二列表頭，最後一列合計。"""
    wb = Workbook()
    ws = wb.active
    ws.title = f"保全收入_{year}年{month:02d}月"[:31]  # Excel 表單名稱長度限制

    ws.cell(row=1, column=1, value=f"{year}年{month:02d}月 保全收入彙總（{len(rows)}人）").font = Font(bold=True)
    _write_headers(ws, 2)
    for row_idx, row in enumerate(rows, start=3):
        _write_data_row(ws, row_idx, row)
    _write_total_row(ws, len(rows) + 3, rows)
    for col in range(1, len(EXCEL_HEADERS) + 1):
        ws.column_dimensions[ws.cell(row=2, column=col).column_letter].width = 14

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()
