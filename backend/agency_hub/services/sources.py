"""Data sources: how a view gets summaries and records for one agency."""
import logging
from typing import Any, Dict, List, Optional, Protocol

from agency_hub.core.exceptions import MutationValidationError
from agency_hub.schemas.record import Record
from agency_hub.schemas.summary import TenantSummary
from agency_hub.schemas.view_state import QueryContext
from agency_hub.services.agency_api import AgencyApiClient
from agency_hub.services.normalization import (
    normalize_commission_records,
    normalize_commission_summary,
    normalize_debt_records,
    normalize_debt_summary,
    normalize_policy_records,
    normalize_policy_summary,
)
from agency_hub.services.view_configs import ViewConfig

logger = logging.getLogger(__name__)


class ViewDataSource(Protocol):
    async def get_summary(self, tenant_id: str, context: QueryContext) -> TenantSummary: ...

    async def get_records(self, tenant_id: str, context: QueryContext) -> List[Record]: ...

    async def delete_record(self, record: Record, reason: Optional[str]) -> None: ...

    async def update_record(self, record: Record, patch: Dict[str, Any]) -> None: ...


class AgencyApiSource:
    """Routes a view's fetches and mutations to the matching agency API endpoints."""

    def __init__(self, client: AgencyApiClient, config: ViewConfig):
        self.client = client
        self.config = config

    @property
    def view_id(self) -> str:
        return self.config.view_id

    def _category(self, context: QueryContext) -> Optional[str]:
        return context.category_id or self.config.default_category

    async def get_summary(self, tenant_id: str, context: QueryContext) -> TenantSummary:
        start, end = context.date_range.start, context.date_range.end
        if self.view_id == "commissions":
            raw = await self.client.get_commission_summary(tenant_id, start, end)
            return normalize_commission_summary(tenant_id, raw or {})
        if self.view_id in ("policies", "policy_records"):
            raw = await self.client.get_policy_summary(tenant_id, start, end)
            return normalize_policy_summary(tenant_id, raw or {})
        if self.view_id == "debts":
            raw = await self.client.get_debt_summary(tenant_id)
            return normalize_debt_summary(tenant_id, raw or {})
        raise ValueError(f"No summary endpoint for view {self.view_id}")

    async def get_records(self, tenant_id: str, context: QueryContext) -> List[Record]:
        start, end = context.date_range.start, context.date_range.end
        category = self._category(context)
        if self.view_id == "commissions":
            rows = await self.client.get_commissions(tenant_id, start, end, category)
            return normalize_commission_records(rows)
        if self.view_id == "policy_records":
            rows = await self.client.get_policies(tenant_id, start, end, category)
            return normalize_policy_records(rows)
        if self.view_id == "debts":
            rows = await self.client.get_debts(tenant_id, category or "unresolved")
            return normalize_debt_records(rows)
        return []

    async def delete_record(self, record: Record, reason: Optional[str]) -> None:
        if self.view_id == "commissions":
            await self.client.delete_commission(record.id)
        elif self.view_id == "policy_records":
            await self.client.delete_policy(record.id, reason or "")
        else:
            raise ValueError(f"View {self.view_id} does not support delete")
        logger.info(f"Deleted {self.view_id} record {record.key}")

    async def update_record(self, record: Record, patch: Dict[str, Any]) -> None:
        if self.view_id == "commissions":
            if set(patch) == {"policy_isLocked"}:
                policy_id = getattr(record, "policy_id", None)
                if not policy_id:
                    raise MutationValidationError(f"Commission {record.key} has no policy to lock")
                await self.client.toggle_policy_lock(policy_id, bool(patch["policy_isLocked"]))
            else:
                await self.client.update_commission(record.id, patch)
        elif self.view_id == "policy_records":
            if set(patch) == {"isLocked"}:
                await self.client.toggle_policy_lock(record.id, bool(patch["isLocked"]))
            else:
                await self.client.update_policy(record.id, patch)
        elif self.view_id == "debts":
            if set(patch) == {"isResolved"}:
                await self.client.resolve_debt(record.id, bool(patch["isResolved"]))
            else:
                await self.client.update_debt(record.id, patch)
        else:
            raise ValueError(f"View {self.view_id} does not support update")
        logger.info(f"Updated {self.view_id} record {record.key}")
