"""Merge per-agency payloads into one view-wide result."""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Sequence

from agency_hub.schemas.record import Record
from agency_hub.schemas.summary import CategorySummary, MergedSummary, OverallTotals, TenantSummary

logger = logging.getLogger(__name__)


def merge_summaries(results: Iterable[Sequence[CategorySummary]]) -> List[CategorySummary]:
    """
    Merge category summaries from several agencies.

    The label is the merge key: entries sharing a label are summed into one.
    The id of the first entry seen for a label is kept. Output is in order of
    first appearance, not ranked.
    """
    merged: Dict[str, CategorySummary] = {}
    for tenant_result in results:
        for entry in tenant_result:
            existing = merged.get(entry.label)
            if existing is None:
                merged[entry.label] = entry.model_copy()
            else:
                existing.total += entry.total
                existing.records += entry.records
    return list(merged.values())


def merge_overall(results: Iterable[OverallTotals]) -> OverallTotals:
    total = Decimal("0")
    records = 0
    for overall in results:
        total += overall.total
        records += overall.records
    return OverallTotals(total=total, records=records)


def merge_tenant_summaries(summaries: Sequence[TenantSummary]) -> MergedSummary:
    """Merge every category dimension plus the overall totals."""
    dimension_names: List[str] = []
    for summary in summaries:
        for name in summary.dimensions:
            if name not in dimension_names:
                dimension_names.append(name)

    dimensions = {
        name: merge_summaries(s.dimensions.get(name, []) for s in summaries)
        for name in dimension_names
    }
    overall = merge_overall(s.overall for s in summaries if s.overall is not None)
    return MergedSummary(dimensions=dimensions, overall=overall)


def merge_records(
    results: Mapping[str, Sequence[Record]],
    tenant_names: Mapping[str, str],
) -> List[Record]:
    """
    Concatenate per-agency record lists, tagging each row with its origin.

    No dedup: a record belongs to exactly one agency. The origin agency id
    qualifies the selection key so ids can't collide across agencies.
    """
    merged: List[Record] = []
    for tenant_id, records in results.items():
        name = tenant_names.get(tenant_id, "Unknown")
        for record in records:
            merged.append(record.model_copy(update={
                "origin_tenant_id": tenant_id,
                "origin_tenant_name": name,
            }))
    logger.debug(f"Merged {len(merged)} records from {len(results)} agencies")
    return merged
