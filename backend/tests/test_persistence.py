import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agency_hub.core.database import Base
from agency_hub.models.view_state import ViewStateEntry
from agency_hub.schemas.view_state import DateRange, PersistedViewState, QueryContext, ViewState
from agency_hub.services.persistence import (
    InMemoryStore,
    SessionPersistenceAdapter,
    SqlAlchemyStore,
    agency_scope,
)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)


def _defaults():
    return PersistedViewState(
        state=ViewState(),
        context=QueryContext(date_range=DateRange(start=0, end=1)),
    )


def test_keys_are_scoped_per_user_view_and_agencies():
    adapter = SessionPersistenceAdapter(InMemoryStore(), prefix="hub")

    assert adapter.view_key("u1", "debts", ["b", "a"]) == "hub:debts:u1:a,b"
    assert adapter.view_key("u1", "debts", ["a"]) != adapter.view_key("u1", "debts", ["b"])
    assert adapter.view_key("u1", "debts", ["a"]) != adapter.view_key("u2", "debts", ["a"])
    assert adapter.view_key("u1", "debts", ["a"]) != adapter.view_key("u1", "commissions", ["a"])
    assert adapter.selected_agencies_key("u1") == "hub:selected_agencies:u1"


def test_agency_scope_is_order_independent():
    assert agency_scope(["b", "a"]) == agency_scope(["a", "b"])
    assert agency_scope([]) == "none"


def test_round_trip(persistence):
    stored = PersistedViewState(
        state=ViewState(search_term="lee", facets={"carrier": ["Aetna"]}, current_page=2),
        context=QueryContext(date_range=DateRange(start=10, end=20), category_id="unresolved"),
    )
    persistence.save("k", stored)

    loaded = persistence.load("k", _defaults)

    assert loaded == stored


def test_missing_state_yields_defaults(persistence):
    assert persistence.load("nope", _defaults) == _defaults()


@pytest.mark.parametrize("raw", ["not json", "[]", '{"state": {"current_page": 0}}', '{"state": 5}'])
def test_malformed_state_yields_defaults(raw):
    adapter = SessionPersistenceAdapter(InMemoryStore({"k": raw}))
    assert adapter.load("k", _defaults) == _defaults()


def test_unreadable_store_yields_defaults():
    class BrokenStore:
        def get(self, key):
            raise OSError("disk gone")

        def set(self, key, value):
            raise OSError("disk gone")

    adapter = SessionPersistenceAdapter(BrokenStore())
    assert adapter.load("k", _defaults) == _defaults()


def test_load_json_handles_garbage():
    adapter = SessionPersistenceAdapter(InMemoryStore({"k": "{oops"}))
    assert adapter.load_json("k") is None
    assert adapter.load_json("missing") is None


def test_sqlalchemy_store_insert_and_update(session_factory):
    store = SqlAlchemyStore(session_factory)

    assert store.get("k") is None
    store.set("k", "one")
    store.set("k", "two")

    assert store.get("k") == "two"
    db = session_factory()
    try:
        assert db.query(ViewStateEntry).count() == 1
    finally:
        db.close()


def test_adapter_over_sqlalchemy_store(session_factory):
    adapter = SessionPersistenceAdapter(SqlAlchemyStore(session_factory))
    stored = PersistedViewState(state=ViewState(search_term="x"), context=_defaults().context)

    adapter.save("scoped", stored)

    assert adapter.load("scoped", _defaults).state.search_term == "x"
