"""
Per-view configuration for the generic aggregation engine.

The commissions, policies, policy records and debts screens all run the same
fetch / merge / filter / select cycle; they differ only in the settings below.
"""
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from agency_hub.schemas.tenant import Feature
from agency_hub.schemas.view_state import SortConfig, SortDirection
from agency_hub.services.pipeline import PipelineConfig, RangeField, TriStateFilter


@dataclass(frozen=True)
class RollupSpec:
    key_field: str
    amount_field: str
    label_field: Optional[str] = None


@dataclass(frozen=True)
class ExportColumn:
    header: str
    field: str
    kind: str = "text"  # text, date, money


@dataclass(frozen=True)
class ViewConfig:
    view_id: str
    feature: Feature
    summary_dims: Tuple[str, ...]
    pipeline: Optional[PipelineConfig] = None  # None for summary-only views
    amount_field: Optional[str] = None
    rollups: Mapping[str, RollupSpec] = field(default_factory=dict)
    ranked_dimensions: Tuple[str, ...] = ()
    # Named groups of summary labels, e.g. the pipeline/alerts cards
    status_groups: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    # Closed set of category ids; empty means any upstream id is accepted
    category_options: Tuple[str, ...] = ()
    default_category: Optional[str] = None
    date_scoped_summary: bool = True
    export_columns: Tuple[ExportColumn, ...] = ()
    can_delete: bool = False
    can_update: bool = False
    delete_requires_reason: bool = False

    @property
    def has_records(self) -> bool:
        return self.pipeline is not None


COMMISSIONS_VIEW = ViewConfig(
    view_id="commissions",
    feature=Feature.COMMISSIONS,
    summary_dims=("status",),
    pipeline=PipelineConfig(
        search_fields=("client_name", "policy_number", "agent_name", "agentOncommission_name"),
        facets={"agent": "agent_on_commission", "carrier": "carrier"},
        tri_states={"lock": TriStateFilter(field="policy_isLocked", on="locked", off="unlocked")},
        ranges={"effective_date": RangeField("effective_date")},
        default_sort=SortConfig(key="created_at", direction=SortDirection.DESC),
    ),
    amount_field="amount",
    rollups={"agent": RollupSpec(key_field="agent_on_commission", amount_field="amount")},
    export_columns=(
        ExportColumn("Client", "client_name"),
        ExportColumn("Created At", "created_at", "date"),
        ExportColumn("Agent", "agent_on_commission"),
        ExportColumn("Policy Number", "policy_number"),
        ExportColumn("Carrier", "carrier"),
        ExportColumn("Carrier Product", "carrier_product"),
        ExportColumn("Effective Date", "effective_date"),
        ExportColumn("Status", "status"),
        ExportColumn("Amount", "amount", "money"),
    ),
    can_delete=True,
    can_update=True,
)

POLICIES_VIEW = ViewConfig(
    view_id="policies",
    feature=Feature.POLICIES,
    summary_dims=("status", "carrier"),
    ranked_dimensions=("carrier",),
    status_groups={
        "approved": ("Approved",),
        "pipeline": ("Underwriting", "Follow Up"),
        "alerts": ("Declined", "Lapsed Pending", "Lapsed", "Not Taken", "Cancelled Before Draft"),
    },
)

POLICY_RECORDS_VIEW = ViewConfig(
    view_id="policy_records",
    feature=Feature.POLICIES,
    summary_dims=("status", "carrier"),
    pipeline=PipelineConfig(
        search_fields=("client", "policy_number"),
        facets={
            "agent": "agent_id",
            "carrier": "carrier",
            "paid_status": "paid_status",
            "source": "contactSource",
        },
        tri_states={
            "commission": TriStateFilter(field="commission_count", on="with", off="without"),
            "lock": TriStateFilter(field="isLocked", on="locked", off="unlocked"),
        },
        ranges={"initial_draft_date": RangeField("initial_draft_date")},
        default_sort=SortConfig(key="created_at", direction=SortDirection.DESC),
    ),
    amount_field="annual_premium",
    rollups={"agent": RollupSpec(key_field="agent_id", amount_field="annual_premium", label_field="agent_name")},
    export_columns=(
        ExportColumn("Client", "client"),
        ExportColumn("Created At", "created_at", "date"),
        ExportColumn("Agent Name", "agent_name"),
        ExportColumn("Policy Number", "policy_number"),
        ExportColumn("Carrier", "carrier"),
        ExportColumn("Carrier Product", "carrier_product"),
        ExportColumn("Premium", "annual_premium", "money"),
        ExportColumn("Source", "contactSource"),
        ExportColumn("Paid Status", "paid_status"),
        ExportColumn("Initial Draft Date", "initial_draft_date"),
    ),
    can_delete=True,
    can_update=True,
    delete_requires_reason=True,
)

DEBTS_VIEW = ViewConfig(
    view_id="debts",
    feature=Feature.DEBTS,
    summary_dims=("resolution",),
    pipeline=PipelineConfig(
        search_fields=("agentOndebt_name", "carrier", "created_by"),
        facets={"carrier": "carrier", "agent": "agentOndebt_id"},
        ranges={"statement_date": RangeField("statement_date")},
        default_sort=SortConfig(key="statement_date", direction=SortDirection.DESC),
    ),
    amount_field="amount",
    rollups={"agent": RollupSpec(key_field="agentOndebt_id", amount_field="amount", label_field="agentOndebt_name")},
    category_options=("all", "unresolved", "resolved"),
    default_category="unresolved",
    date_scoped_summary=False,
    export_columns=(
        ExportColumn("Agent", "agentOndebt_name"),
        ExportColumn("Carrier", "carrier"),
        ExportColumn("Amount", "amount", "money"),
        ExportColumn("Statement Date", "statement_date", "date"),
        ExportColumn("Created By", "created_by"),
        ExportColumn("Resolved", "isResolved"),
    ),
    can_update=True,
)

VIEWS: Dict[str, ViewConfig] = {
    view.view_id: view
    for view in (COMMISSIONS_VIEW, POLICIES_VIEW, POLICY_RECORDS_VIEW, DEBTS_VIEW)
}


def get_view_config(view_id: str) -> ViewConfig:
    try:
        return VIEWS[view_id]
    except KeyError:
        raise KeyError(f"Unknown view: {view_id}") from None
