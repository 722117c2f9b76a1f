from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from decimal import Decimal
import enum

from agency_hub.schemas.summary import CategorySummary, OverallTotals, RollupEntry


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class SortConfig(BaseModel):
    key: str
    direction: SortDirection = SortDirection.ASC


class DateRange(BaseModel):
    start: int  # epoch ms, inclusive
    end: int  # epoch ms, inclusive
    label: str = "Custom"


class RangeFilter(BaseModel):
    """Inclusive bounds on a date (epoch ms) or numeric field. A missing bound is open."""
    start: Optional[float] = None
    end: Optional[float] = None
    label: Optional[str] = None


class QueryContext(BaseModel):
    date_range: DateRange
    category_id: Optional[str] = None


class ViewState(BaseModel):
    search_term: str = ""
    facets: Dict[str, List[str]] = Field(default_factory=dict)
    toggles: Dict[str, str] = Field(default_factory=dict)
    ranges: Dict[str, RangeFilter] = Field(default_factory=dict)
    sort: Optional[SortConfig] = None
    current_page: int = Field(1, ge=1)
    rows_per_page: int = Field(20, ge=1)


class PersistedViewState(BaseModel):
    """What gets written to the session store for one agency + view."""
    state: ViewState
    context: QueryContext


class ViewStateUpdate(BaseModel):
    search_term: Optional[str] = None
    facets: Optional[Dict[str, List[str]]] = None
    toggles: Optional[Dict[str, str]] = None
    ranges: Optional[Dict[str, Optional[RangeFilter]]] = None
    sort: Optional[SortConfig] = None
    clear_sort: bool = False
    current_page: Optional[int] = None
    rows_per_page: Optional[int] = None
    reset: bool = False


class QueryContextUpdate(BaseModel):
    start: Optional[int] = None
    end: Optional[int] = None
    preset: Optional[str] = None
    category_id: Optional[str] = None


class SelectionAction(BaseModel):
    action: str  # toggle, page, all, clear
    key: Optional[str] = None


class SelectionBanner(BaseModel):
    page_count: int
    matching_count: int


class ViewSnapshot(BaseModel):
    view_id: str
    loading: bool
    error: Optional[str] = None
    failed_agencies: List[str] = Field(default_factory=list)
    context: QueryContext
    state: ViewState
    summary: Dict[str, List[CategorySummary]] = Field(default_factory=dict)
    overall: OverallTotals = Field(default_factory=OverallTotals)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    total_matching: int = 0
    total_pages: int = 0
    selected_keys: List[str] = Field(default_factory=list)
    is_page_selected: bool = False
    is_all_matching_selected: bool = False
    banner: Optional[SelectionBanner] = None
    rollups: Dict[str, List[RollupEntry]] = Field(default_factory=dict)
    facet_options: Dict[str, List[str]] = Field(default_factory=dict)
    matching_total_amount: Decimal = Decimal("0")
    status_groups: Dict[str, OverallTotals] = Field(default_factory=dict)


class RecordDelete(BaseModel):
    reason: Optional[str] = None


class NavigationOut(BaseModel):
    """Position of one record within the filtered, sorted set."""
    keys: List[str]
    index: int
    previous_key: Optional[str] = None
    next_key: Optional[str] = None
