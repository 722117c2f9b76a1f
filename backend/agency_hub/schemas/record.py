from pydantic import BaseModel, ConfigDict
from typing import Any, Optional
from decimal import Decimal


class Record(BaseModel):
    """
    A commission, debt or policy row from one agency.

    Upstream field names are kept as-is; anything not declared here is
    carried as an extra attribute so views can filter on it by name.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    created_at: Optional[int] = None  # epoch ms
    origin_tenant_id: Optional[str] = None
    origin_tenant_name: Optional[str] = None

    @property
    def key(self) -> str:
        """Selection key, qualified by agency since ids are only unique per agency."""
        if self.origin_tenant_id:
            return f"{self.origin_tenant_id}:{self.id}"
        return self.id

    def get(self, field: str, default: Any = None) -> Any:
        return getattr(self, field, default)


class CommissionRecord(Record):
    policy_id: Optional[str] = None
    agent_name: str = "Unknown Agent"
    agentOncommission_name: Optional[str] = None
    agentOnCommission_id: Optional[str] = None
    client_name: str = ""
    policy_number: Optional[str] = None
    policy_isLocked: bool = False
    carrier: Optional[str] = None
    effective_date: Optional[str] = None
    amount: Decimal = Decimal("0")
    status: Optional[str] = None
    submitted_by: Optional[str] = None
    carrier_product: Optional[str] = None
    policy_status: Optional[str] = None
    annual_premium: Decimal = Decimal("0")

    @property
    def agent_on_commission(self) -> str:
        return self.agentOncommission_name or self.agent_name


class PolicyRecord(Record):
    client: str = ""
    policy_number: Optional[str] = None
    carrier_product: Optional[str] = None
    initial_draft_date: Optional[str] = None
    annual_premium: Decimal = Decimal("0")
    isLocked: bool = False
    agent_name: str = "Unknown Agent"
    agent_id: Optional[str] = None
    carrier: Optional[str] = None
    status: Optional[str] = None
    paid_status: str = "Unpaid"
    commission_count: int = 0
    contactSource: str = "Organic"
    source_channel: str = "Organic"


class DebtRecord(Record):
    amount: Decimal = Decimal("0")
    carrier: Optional[str] = None
    created_by: str = ""
    agentOndebt_id: Optional[str] = None
    agentOndebt_name: str = "Unknown Agent"
    isResolved: bool = False
    statement_date: Optional[int] = None  # epoch ms
    email: Optional[str] = None
