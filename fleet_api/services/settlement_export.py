# fleet_api/services/settlement_export.py
import csv
import io
from datetime import datetime
from typing import Iterable, List, Tuple

import openpyxl

from fleet_api.common.errors import APIError
from fleet_api.models.settlement import WeeklySettlement

EXPORT_COLUMNS = [
    "id", "scope", "vehicle_id", "vehicle_number", "week_start", "week_end",
    "total_trips", "rental_rate", "company_rent", "driver_rent", "substitute_rent",
    "total_income", "profit", "status", "processed_by", "paid", "updated_at",
]


def export_settlements(rows: Iterable[WeeklySettlement], output_format: str = "csv") -> Tuple[bytes, str, str]:
    """
    Render stored settlements as CSV or XLSX.
    Returns (content, file_name, mime_type).
    """
    fmt = (output_format or "csv").strip().lower()
    records: List[dict] = [r.to_dict() for r in rows]
    stamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    file_name_base = f"settlements_{stamp}"

    if fmt == "csv":
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(records)
        return output.getvalue().encode("utf-8"), f"{file_name_base}.csv", "text/csv"

    if fmt == "xlsx":
        output = io.BytesIO()
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Settlements"
        ws.append(EXPORT_COLUMNS)
        for rec in records:
            ws.append([rec.get(h) for h in EXPORT_COLUMNS])
        wb.save(output)
        return (
            output.getvalue(),
            f"{file_name_base}.xlsx",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

    raise APIError("EXPORT_FORMAT_NOT_SUPPORTED", f"Format {output_format} not supported", 400)
