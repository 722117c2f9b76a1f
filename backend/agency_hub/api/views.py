"""Aggregation views: commissions, policies, policy records, debts."""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import Response

from agency_hub.api.deps import get_view
from agency_hub.schemas.view_state import (
    NavigationOut,
    QueryContextUpdate,
    RecordDelete,
    SelectionAction,
    ViewSnapshot,
    ViewStateUpdate,
)
from agency_hub.services.view_engine import AggregationView

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/views", tags=["views"])


@router.get("/{view_id}", response_model=ViewSnapshot)
async def get_view_snapshot(view: AggregationView = Depends(get_view)):
    """Current page of the view. Fetches on first access or after a context change."""
    await view.ensure_loaded()
    return view.snapshot()


@router.post("/{view_id}/refresh", response_model=ViewSnapshot)
async def refresh_view(view: AggregationView = Depends(get_view)):
    await view.refresh()
    return view.snapshot()


@router.patch("/{view_id}/state", response_model=ViewSnapshot)
async def update_view_state(update: ViewStateUpdate, view: AggregationView = Depends(get_view)):
    await view.ensure_loaded()
    view.apply_update(update)
    return view.snapshot()


@router.put("/{view_id}/context", response_model=ViewSnapshot)
async def update_query_context(update: QueryContextUpdate, view: AggregationView = Depends(get_view)):
    view.set_query_context(
        start=update.start,
        end=update.end,
        category_id=update.category_id,
        preset=update.preset,
    )
    await view.refresh()
    return view.snapshot()


@router.post("/{view_id}/selection", response_model=ViewSnapshot)
async def update_selection(action: SelectionAction, view: AggregationView = Depends(get_view)):
    await view.ensure_loaded()
    if action.action == "toggle":
        if not action.key:
            raise HTTPException(status_code=400, detail="key is required for toggle")
        view.toggle_selection(action.key)
    elif action.action == "page":
        view.select_page()
    elif action.action == "all":
        view.select_all_matching()
    elif action.action == "clear":
        view.clear_selection()
    else:
        raise HTTPException(status_code=400, detail=f"Unknown selection action: {action.action}")
    return view.snapshot()


@router.get("/{view_id}/export.csv")
async def export_selected(view: AggregationView = Depends(get_view)):
    """Selected rows that are still in the filtered set, as CSV."""
    await view.ensure_loaded()
    filename = f"{view.config.view_id}_export.csv"
    return Response(
        content=view.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{view_id}/records/{key}/navigation", response_model=NavigationOut)
async def get_navigation(key: str, view: AggregationView = Depends(get_view)):
    await view.ensure_loaded()
    keys, index = view.navigation_queue(key)
    return NavigationOut(
        keys=keys,
        index=index,
        previous_key=keys[index - 1] if index > 0 else None,
        next_key=keys[index + 1] if index + 1 < len(keys) else None,
    )


@router.delete("/{view_id}/records/{key}", response_model=ViewSnapshot)
async def delete_record(
    key: str,
    payload: Optional[RecordDelete] = Body(None),
    view: AggregationView = Depends(get_view),
):
    await view.ensure_loaded()
    await view.delete_record(key, payload.reason if payload else None)
    return view.snapshot()


@router.patch("/{view_id}/records/{key}", response_model=ViewSnapshot)
async def update_record(
    key: str,
    patch: Dict[str, Any] = Body(...),
    view: AggregationView = Depends(get_view),
):
    await view.ensure_loaded()
    await view.update_record(key, patch)
    return view.snapshot()
