"""
Filter / sort / paginate pipeline over a merged record list.

Stages run in a fixed order: search, facets, tri-state switches, ranges,
sort, page slice. Every stage is a pure function. A record that lacks the
field a stage inspects simply fails that stage's predicate; nothing here
raises on a malformed row.
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from agency_hub.schemas.record import Record
from agency_hub.schemas.view_state import RangeFilter, SortConfig, SortDirection, ViewState
from agency_hub.services.date_ranges import to_epoch_ms
from agency_hub.services.normalization import to_decimal

ALL = "all"


@dataclass(frozen=True)
class TriStateFilter:
    """A three-way switch: "all" passes everything, on/off test the field's truthiness."""
    field: str
    on: str
    off: str

    def matches(self, record: Record, choice: str) -> bool:
        if choice == ALL or choice not in (self.on, self.off):
            return True
        value = record.get(self.field)
        if value is None:
            return False
        return bool(value) if choice == self.on else not bool(value)


@dataclass(frozen=True)
class RangeField:
    field: str
    kind: str = "date"  # "date" (epoch ms) or "number"

    def read(self, record: Record) -> Optional[float]:
        raw = record.get(self.field)
        if self.kind == "date":
            ms = to_epoch_ms(raw)
            return float(ms) if ms is not None else None
        number = to_decimal(raw)
        return float(number) if number is not None else None


@dataclass(frozen=True)
class PipelineConfig:
    search_fields: Tuple[str, ...] = ()
    facets: Mapping[str, str] = field(default_factory=dict)  # facet name -> record field
    tri_states: Mapping[str, TriStateFilter] = field(default_factory=dict)
    ranges: Mapping[str, RangeField] = field(default_factory=dict)
    default_sort: SortConfig = field(
        default_factory=lambda: SortConfig(key="created_at", direction=SortDirection.DESC)
    )


@dataclass
class PipelineResult:
    matching: List[Record]
    page: List[Record]
    total_matching: int
    total_pages: int


def apply_search(records: Sequence[Record], term: str, fields: Sequence[str]) -> List[Record]:
    """Case-insensitive substring match on any of the fields. Empty term passes all."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(records)

    def hit(record: Record) -> bool:
        for name in fields:
            value = record.get(name)
            if value is not None and needle in str(value).lower():
                return True
        return False

    return [r for r in records if hit(r)]


def apply_facets(
    records: Sequence[Record],
    selected: Mapping[str, Sequence[str]],
    facet_fields: Mapping[str, str],
) -> List[Record]:
    """
    Keep records whose facet values are among the selected ones.

    An empty selection for a facet means no restriction on that facet.
    """
    active = {
        facet_fields[name]: {str(v) for v in values}
        for name, values in selected.items()
        if values and name in facet_fields
    }
    if not active:
        return list(records)

    def keep(record: Record) -> bool:
        for field_name, allowed in active.items():
            value = record.get(field_name)
            if value is None or str(value) not in allowed:
                return False
        return True

    return [r for r in records if keep(r)]


def apply_tri_states(
    records: Sequence[Record],
    choices: Mapping[str, str],
    filters: Mapping[str, TriStateFilter],
) -> List[Record]:
    active = {
        name: choice for name, choice in choices.items()
        if name in filters and choice and choice != ALL
    }
    if not active:
        return list(records)
    return [
        r for r in records
        if all(filters[name].matches(r, choice) for name, choice in active.items())
    ]


def apply_ranges(
    records: Sequence[Record],
    ranges: Mapping[str, Optional[RangeFilter]],
    range_fields: Mapping[str, RangeField],
) -> List[Record]:
    """Inclusive range checks. Records with no parseable value fail an active range."""
    active = [
        (range_fields[name], bounds) for name, bounds in ranges.items()
        if bounds is not None and name in range_fields
        and (bounds.start is not None or bounds.end is not None)
    ]
    if not active:
        return list(records)

    def keep(record: Record) -> bool:
        for spec, bounds in active:
            value = spec.read(record)
            if value is None:
                return False
            if bounds.start is not None and value < bounds.start:
                return False
            if bounds.end is not None and value > bounds.end:
                return False
        return True

    return [r for r in records if keep(r)]


def _missing(value: Any) -> bool:
    return value is None or value == ""


def sort_records(records: Sequence[Record], sort: SortConfig) -> List[Record]:
    """
    Stable single-key sort. Records missing the key go last in either direction.
    """
    present = [r for r in records if not _missing(r.get(sort.key))]
    missing = [r for r in records if _missing(r.get(sort.key))]
    reverse = sort.direction == SortDirection.DESC
    try:
        ordered = sorted(present, key=lambda r: r.get(sort.key), reverse=reverse)
    except TypeError:
        # Mixed types in one column; compare their text instead
        ordered = sorted(present, key=lambda r: str(r.get(sort.key)), reverse=reverse)
    return ordered + missing


def total_pages(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if page_size > 0 else 0


def paginate(records: Sequence[Record], page: int, page_size: int) -> List[Record]:
    page = max(page, 1)
    start = (page - 1) * page_size
    return list(records[start:start + page_size])


def filter_records(records: Sequence[Record], state: ViewState, config: PipelineConfig) -> List[Record]:
    """Everything before the page slice: the full matching set, sorted."""
    data = apply_search(records, state.search_term, config.search_fields)
    data = apply_facets(data, state.facets, config.facets)
    data = apply_tri_states(data, state.toggles, config.tri_states)
    data = apply_ranges(data, state.ranges, config.ranges)
    return sort_records(data, state.sort or config.default_sort)


def run_pipeline(records: Sequence[Record], state: ViewState, config: PipelineConfig) -> PipelineResult:
    matching = filter_records(records, state, config)
    return PipelineResult(
        matching=matching,
        page=paginate(matching, state.current_page, state.rows_per_page),
        total_matching=len(matching),
        total_pages=total_pages(len(matching), state.rows_per_page),
    )


def facet_options(records: Sequence[Record], config: PipelineConfig) -> Dict[str, List[str]]:
    """Distinct observed values per facet, sorted, for the filter dropdowns."""
    options: Dict[str, List[str]] = {}
    for name, field_name in config.facets.items():
        values = {str(r.get(field_name)) for r in records if not _missing(r.get(field_name))}
        options[name] = sorted(values)
    return options


def sum_field(records: Sequence[Record], field_name: str) -> Decimal:
    total = Decimal("0")
    for record in records:
        total += to_decimal(record.get(field_name)) or Decimal("0")
    return total
