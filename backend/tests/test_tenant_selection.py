import json

import pytest
from pydantic import ValidationError

from agency_hub.schemas.tenant import Feature, SessionUser
from agency_hub.services.persistence import InMemoryStore, SessionPersistenceAdapter
from agency_hub.services.tenant_selection import TenantSelectionStore

from conftest import make_tenant


@pytest.fixture
def user():
    return SessionUser(
        id="u1",
        name="Dana",
        agency_access=[
            make_tenant("a", features=[Feature.POLICIES]),
            make_tenant("b", features=[Feature.DEBTS, Feature.POLICIES]),
            make_tenant("c", features=[Feature.COMMISSIONS]),
        ],
    )


def _adapter(stored=None):
    data = {}
    if stored is not None:
        data["hub:selected_agencies:u1"] = stored
    return SessionPersistenceAdapter(InMemoryStore(data), prefix="hub")


def test_defaults_to_first_agency(user):
    store = TenantSelectionStore(user, _adapter())
    assert store.selected_ids == ["a"]
    assert store.active.agency_id == "a"


def test_restores_saved_selection_in_catalog_order(user):
    store = TenantSelectionStore(user, _adapter(json.dumps(["c", "b"])))
    assert store.selected_ids == ["b", "c"]
    assert store.active.agency_id == "b"


def test_drops_agencies_no_longer_in_catalog(user):
    store = TenantSelectionStore(user, _adapter(json.dumps(["b", "gone"])))
    assert store.selected_ids == ["b"]


def test_unusable_saved_value_falls_back_to_first(user):
    assert TenantSelectionStore(user, _adapter("{broken")).selected_ids == ["a"]
    assert TenantSelectionStore(user, _adapter(json.dumps({"a": 1}))).selected_ids == ["a"]
    assert TenantSelectionStore(user, _adapter(json.dumps(["gone"]))).selected_ids == ["a"]


def test_cleared_selection_stays_empty(user):
    store = TenantSelectionStore(user, _adapter(json.dumps([])))
    assert store.selected_ids == []
    assert store.active is None


def test_toggle_select_all_clear_persist(user):
    adapter = _adapter()
    store = TenantSelectionStore(user, adapter)

    store.toggle("c")
    assert store.selected_ids == ["a", "c"]
    assert TenantSelectionStore(user, adapter).selected_ids == ["a", "c"]

    store.toggle("a")
    assert store.selected_ids == ["c"]

    store.select_all()
    assert store.selected_ids == ["a", "b", "c"]

    store.clear()
    assert TenantSelectionStore(user, adapter).selected_ids == []


def test_toggle_unknown_agency(user):
    store = TenantSelectionStore(user, _adapter())
    with pytest.raises(KeyError):
        store.toggle("zzz")


def test_union_features(user):
    store = TenantSelectionStore(user, _adapter(json.dumps(["a", "b"])))
    assert store.union_features == [Feature.POLICIES, Feature.DEBTS]
    out = store.to_out()
    assert out.selected_agency_ids == ["a", "b"]
    assert len(out.available_agencies) == 3


def test_tenants_are_immutable():
    tenant = make_tenant("a")
    with pytest.raises(ValidationError):
        tenant.agency_name = "Renamed"
