from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
import enum


class Feature(str, enum.Enum):
    POLICIES = "policies"
    COMMISSIONS = "commissions"
    DEBTS = "debts"
    USERS = "users"
    CONTRACTING = "contracting"
    TICKETING = "ticketing"
    SETTINGS = "settings"


class Tenant(BaseModel):
    """An agency the signed-in user may view. Immutable for the session."""
    agency_id: str
    agency_name: str
    role: str = "admin"
    features: List[Feature] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class SessionUser(BaseModel):
    id: str
    name: str = ""
    agency_access: List[Tenant] = Field(default_factory=list)


class TenantSelectionOut(BaseModel):
    selected_agency_ids: List[str]
    available_agencies: List[Tenant]
    active_agency: Optional[Tenant] = None
    union_features: List[Feature]
