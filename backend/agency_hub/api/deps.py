"""Shared FastAPI dependencies for the agency hub routers."""
import logging

from fastapi import Depends, HTTPException

from agency_hub.core.security import get_agency_client, get_current_user
from agency_hub.schemas.tenant import SessionUser
from agency_hub.services.agency_api import AgencyApiClient
from agency_hub.services.persistence import SessionPersistenceAdapter, SqlAlchemyStore
from agency_hub.services.sources import AgencyApiSource
from agency_hub.services.tenant_selection import TenantSelectionStore
from agency_hub.services.view_configs import VIEWS
from agency_hub.services.view_engine import AggregationView, registry

logger = logging.getLogger(__name__)


def get_persistence() -> SessionPersistenceAdapter:
    return SessionPersistenceAdapter(SqlAlchemyStore())


def get_tenant_selection(
    user: SessionUser = Depends(get_current_user),
    persistence: SessionPersistenceAdapter = Depends(get_persistence),
) -> TenantSelectionStore:
    return TenantSelectionStore(user, persistence)


def get_view(
    view_id: str,
    user: SessionUser = Depends(get_current_user),
    selection: TenantSelectionStore = Depends(get_tenant_selection),
    client: AgencyApiClient = Depends(get_agency_client),
    persistence: SessionPersistenceAdapter = Depends(get_persistence),
) -> AggregationView:
    """The caller's view instance, bound to their current agency selection."""
    config = VIEWS.get(view_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"Unknown view: {view_id}")

    tenants = selection.selected
    if tenants and config.feature not in selection.union_features:
        raise HTTPException(
            status_code=403,
            detail=f"{config.feature.value} is not enabled for the selected agencies",
        )

    source = AgencyApiSource(client, config)
    view = registry.get(user.id, view_id)
    if view is None:
        logger.info(f"Creating {view_id} view for user {user.id}")
        return registry.add(AggregationView(
            config, source, user_id=user.id, tenants=tenants, persistence=persistence,
        ))

    # Token may have changed since the view was created
    view.source = source
    view.persistence = persistence
    view.set_tenants(tenants)
    return view
