"""Secondary aggregations over the merged record set (sidebars, rankings)."""
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from agency_hub.schemas.record import Record
from agency_hub.schemas.summary import CategorySummary, RollupEntry
from agency_hub.services.normalization import to_decimal


def rollup_by(
    records: Sequence[Record],
    key_field: str,
    amount_field: str,
    label_field: Optional[str] = None,
    fallback_label: str = "Unknown",
) -> List[RollupEntry]:
    """
    Group records by key_field and sum amount_field, largest total first.

    Ties keep first-seen order. Unparseable amounts count as zero.
    """
    groups: Dict[str, RollupEntry] = {}
    for record in records:
        raw_key = record.get(key_field)
        key = str(raw_key) if raw_key not in (None, "") else fallback_label
        entry = groups.get(key)
        if entry is None:
            label = record.get(label_field) if label_field else None
            entry = RollupEntry(key=key, label=str(label or key))
            groups[key] = entry
        entry.total += to_decimal(record.get(amount_field)) or Decimal("0")
        entry.count += 1
    return sorted(groups.values(), key=lambda e: e.total, reverse=True)


def rank_categories(categories: Sequence[CategorySummary]) -> List[CategorySummary]:
    """Carrier ranking: drop empty categories, biggest total first."""
    active = [c for c in categories if c.total > 0 or c.records > 0]
    return sorted(active, key=lambda c: c.total, reverse=True)
