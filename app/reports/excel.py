from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from zoneinfo import ZoneInfo


def to_display_tz(dt: datetime, tz_name: str) -> str:
    try:
        tz = ZoneInfo(tz_name)
    except Exception:
        tz = timezone.utc

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).replace(microsecond=0).isoformat()


def _auto_fit(ws) -> None:
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            v = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(v))
        ws.column_dimensions[col_letter].width = min(max(8, max_len + 2), 60)


def _write_table(ws, headers: list[str], rows: list[list[Any]]) -> None:
    ws.append(headers)
    for r in rows:
        ws.append(r)

    ws.freeze_panes = "A2"
    ws.auto_filter.ref = ws.dimensions

    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    _auto_fit(ws)


def build_workbook_bytes(
    *,
    report_type: str,
    job: dict[str, Any],
    sheet: dict[str, Any],
    filters: dict[str, str],
    timezone_display: str,
) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)

    # Sheet titles are capped at 31 characters by Excel.
    ws = wb.create_sheet(str(sheet["title"])[:31])
    _write_table(ws, list(sheet["headers"]), [list(r) for r in sheet["rows"]])

    meta = wb.create_sheet("Meta")
    meta_rows = [
        ["type", report_type],
        ["jobId", job.get("jobId", "")],
        ["company", job.get("company", "")],
        ["title", job.get("title", "")],
        ["rows", len(sheet["rows"])],
        ["generatedAt", to_display_tz(datetime.now(timezone.utc), timezone_display)],
    ]
    meta_rows.extend([[k, v] for k, v in sorted(filters.items())])
    _write_table(meta, ["key", "value"], meta_rows)

    with BytesIO() as bio:
        wb.save(bio)
        return bio.getvalue()
