"""Agency selection for the signed-in user."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from agency_hub.api.deps import get_tenant_selection
from agency_hub.schemas.tenant import TenantSelectionOut
from agency_hub.services.tenant_selection import TenantSelectionStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/tenants", tags=["tenants"])


@router.get("", response_model=TenantSelectionOut)
def get_tenants(selection: TenantSelectionStore = Depends(get_tenant_selection)):
    """Agency catalog, current selection, active agency and enabled features."""
    return selection.to_out()


@router.post("/toggle/{agency_id}", response_model=TenantSelectionOut)
def toggle_tenant(agency_id: str, selection: TenantSelectionStore = Depends(get_tenant_selection)):
    try:
        selection.toggle(agency_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Agency {agency_id} not found")
    return selection.to_out()


@router.post("/select-all", response_model=TenantSelectionOut)
def select_all_tenants(selection: TenantSelectionStore = Depends(get_tenant_selection)):
    selection.select_all()
    return selection.to_out()


@router.post("/clear", response_model=TenantSelectionOut)
def clear_tenants(selection: TenantSelectionStore = Depends(get_tenant_selection)):
    selection.clear()
    return selection.to_out()
