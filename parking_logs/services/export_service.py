from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.formatting.rule import CellIsRule
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from parking_logs.core.enums import ExportFormat, LogLevel
from parking_logs.core.errors import ExportFailed, InvalidFilter
from parking_logs.models.common import oid_str, utcnow
from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.schemas.audit import Actor, ExportRequest
from parking_logs.services.logs_query_service import build_filter
from parking_logs.utils.mongo import serialize_mongo

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
GENERATED_BY = "Parking API Admin Panel"
EXPORT_VERSION = "1.0"

# (key, spreadsheet header, column width)
EXPORT_COLUMNS = [
    ("id", "ID", 26),
    ("timestamp", "Timestamp", 24),
    ("level", "Level", 10),
    ("action", "Action", 20),
    ("message", "Message", 40),
    ("userId", "User ID", 26),
    ("resource", "Resource", 15),
    ("resourceId", "Resource ID", 26),
    ("ip", "IP", 16),
    ("userAgent", "User Agent", 30),
    ("method", "HTTP Method", 12),
    ("url", "URL", 40),
    ("statusCode", "Status Code", 12),
    ("responseTime", "Response Time (ms)", 18),
    ("errorMessage", "Error", 40),
    ("errorStack", "Stack Trace", 50),
    ("metadata", "Metadata", 30),
]
FIELDNAMES = [key for key, _, _ in EXPORT_COLUMNS]

HEADER_FONT = Font(bold=True, color="FFFFFFFF")
HEADER_FILL = PatternFill(fill_type="solid", start_color="FF4F81BD", end_color="FF4F81BD")
THIN = Side(style="thin")
HEADER_BORDER = Border(top=THIN, left=THIN, bottom=THIN, right=THIN)

LEVEL_COLORS = {
    LogLevel.error.value: "FFFF6B6B",
    LogLevel.warn.value: "FFFFD93D",
    LogLevel.info.value: "FF6BCF7F",
    LogLevel.debug.value: "FFD9D9D9",
}

MEDIA_TYPES = {
    ExportFormat.csv: "text/csv",
    ExportFormat.json: "application/json",
    ExportFormat.excel: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
EXTENSIONS = {
    ExportFormat.csv: "csv",
    ExportFormat.json: "json",
    ExportFormat.excel: "xlsx",
}


@dataclass
class ExportResult:
    content: bytes
    filename: str
    media_type: str
    record_count: int


def _or_na(value: Any) -> Any:
    if value is None or value == "":
        return NOT_AVAILABLE
    return value


def flatten_event(doc: dict) -> Dict[str, Any]:
    """One stored event as a flat row; nested details/context pulled to the top."""
    details = doc.get("details") or {}
    context = doc.get("context") or {}
    created_at = doc.get("createdAt")
    metadata = details.get("metadata")

    return {
        "id": oid_str(doc.get("_id")),
        "timestamp": created_at.isoformat() if created_at else NOT_AVAILABLE,
        "level": _or_na(doc.get("level")),
        "action": _or_na(doc.get("action")),
        "message": _or_na(doc.get("message")),
        "userId": _or_na(doc.get("userId")),
        "resource": _or_na(doc.get("resource")),
        "resourceId": _or_na(doc.get("resourceId")),
        "ip": _or_na(context.get("ip")),
        "userAgent": _or_na(context.get("userAgent")),
        "method": _or_na(context.get("method")),
        "url": _or_na(context.get("url")),
        "statusCode": _or_na(context.get("statusCode")),
        "responseTime": _or_na(context.get("responseTime")),
        "errorMessage": _or_na(details.get("error")),
        "errorStack": _or_na(details.get("stackTrace")),
        "metadata": json.dumps(serialize_mongo(metadata)) if metadata else NOT_AVAILABLE,
    }


def write_csv(rows: List[Dict[str, Any]], filters_applied: Dict[str, Any]) -> bytes:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=FIELDNAMES)
    writer.writeheader()
    writer.writerows(rows)
    return output.getvalue().encode("utf-8")


def write_json(rows: List[Dict[str, Any]], filters_applied: Dict[str, Any]) -> bytes:
    document = {
        "metadata": {
            "exportDate": utcnow().isoformat(),
            "totalRecords": len(rows),
            "generatedBy": GENERATED_BY,
            "version": EXPORT_VERSION,
            "filters": filters_applied,
        },
        "logs": rows,
    }
    return json.dumps(document, indent=2, default=str).encode("utf-8")


def _cell_value(value: Any) -> Any:
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def write_excel(rows: List[Dict[str, Any]], filters_applied: Dict[str, Any]) -> bytes:
    """Whole workbook is built in memory; the export cap bounds its size."""
    workbook = Workbook()
    workbook.properties.creator = GENERATED_BY
    worksheet = workbook.active
    worksheet.title = "Parking Logs"

    for col, (_, header, width) in enumerate(EXPORT_COLUMNS, start=1):
        cell = worksheet.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER
        worksheet.column_dimensions[get_column_letter(col)].width = width

    for row_idx, row in enumerate(rows, start=2):
        for col, key in enumerate(FIELDNAMES, start=1):
            cell = worksheet.cell(row=row_idx, column=col, value=_cell_value(row[key]))
            # text that looks like a formula stays text
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"

    level_col = get_column_letter(FIELDNAMES.index("level") + 1)
    level_range = f"{level_col}2:{level_col}{len(rows) + 1}"
    for level, color in LEVEL_COLORS.items():
        worksheet.conditional_formatting.add(
            level_range,
            CellIsRule(
                operator="equal",
                formula=[f'"{level}"'],
                fill=PatternFill(fill_type="solid", start_color=color, end_color=color),
            ),
        )

    worksheet.freeze_panes = "A2"

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


WRITERS = {
    ExportFormat.csv: write_csv,
    ExportFormat.json: write_json,
    ExportFormat.excel: write_excel,
}


class ExportService:
    """Materializes a filtered, capped set of events as a downloadable file."""

    def __init__(self, repo: AuditRepository):
        self.repo = repo

    async def export(self, request: ExportRequest, actor: Actor) -> ExportResult:
        try:
            export_format = ExportFormat(request.format)
        except ValueError:
            raise InvalidFilter("format", "format must be one of csv, json or excel") from None

        filters_applied = request.model_dump(by_alias=True, exclude_none=True, mode="json")
        logger.info("Administrator %s exporting logs as %s (max %s records)",
                    actor.user_id, export_format.value, request.max_records)

        mongo_filter = build_filter(request)
        try:
            docs = await self.repo.find_for_export(mongo_filter, request.max_records)
        except Exception as exc:
            logger.error("Export query failed: %r", exc, exc_info=True)
            raise ExportFailed() from exc

        if not docs:
            raise InvalidFilter("filters", "no events match the export filters")

        rows = [flatten_event(d) for d in docs]
        try:
            content = WRITERS[export_format](rows, filters_applied)
        except Exception as exc:
            logger.error("Export encoding to %s failed: %r", export_format.value, exc, exc_info=True)
            raise ExportFailed() from exc

        stamp = utcnow().strftime("%Y-%m-%d")
        result = ExportResult(
            content=content,
            filename=f"parking-logs-{stamp}.{EXTENSIONS[export_format]}",
            media_type=MEDIA_TYPES[export_format],
            record_count=len(rows),
        )
        logger.info("Export ready: %s (%s records, %s bytes)",
                    result.filename, result.record_count, len(content))
        return result
