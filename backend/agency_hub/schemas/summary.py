from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from decimal import Decimal


class CategorySummary(BaseModel):
    id: Optional[str] = None
    label: str
    total: Decimal = Decimal("0")
    records: int = 0


class OverallTotals(BaseModel):
    total: Decimal = Decimal("0")
    records: int = 0


class TenantSummary(BaseModel):
    """One agency's summary payload after normalization."""
    tenant_id: str
    dimensions: Dict[str, List[CategorySummary]] = Field(default_factory=dict)
    overall: Optional[OverallTotals] = None


class MergedSummary(BaseModel):
    dimensions: Dict[str, List[CategorySummary]] = Field(default_factory=dict)
    overall: OverallTotals = Field(default_factory=OverallTotals)


class RollupEntry(BaseModel):
    key: str
    label: str
    total: Decimal = Decimal("0")
    count: int = 0
