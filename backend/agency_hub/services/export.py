"""CSV export of selected rows."""
import csv
import io
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from agency_hub.schemas.record import Record
from agency_hub.services.date_ranges import to_epoch_ms
from agency_hub.services.normalization import to_decimal
from agency_hub.services.view_configs import ExportColumn


def _format(value: Any, kind: str) -> str:
    if value is None:
        return ""
    if kind == "date":
        ms = to_epoch_ms(value)
        if ms is None:
            return str(value)
        return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d")
    if kind == "money":
        amount = to_decimal(value)
        return f"{amount.quantize(Decimal('0.01'))}" if amount is not None else ""
    return str(value)


def records_to_csv(records: Sequence[Record], columns: Sequence[ExportColumn]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow([c.header for c in columns])
    for record in records:
        writer.writerow([_format(record.get(c.field), c.kind) for c in columns])
    return buf.getvalue()
