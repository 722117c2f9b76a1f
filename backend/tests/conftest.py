import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from agency_hub.schemas.record import CommissionRecord, DebtRecord, PolicyRecord, Record
from agency_hub.schemas.summary import CategorySummary, OverallTotals, TenantSummary
from agency_hub.schemas.tenant import Feature, Tenant
from agency_hub.schemas.view_state import QueryContext
from agency_hub.services.persistence import InMemoryStore, SessionPersistenceAdapter
from agency_hub.services.view_engine import registry

ALL_FEATURES = [Feature.POLICIES, Feature.COMMISSIONS, Feature.DEBTS]


def make_tenant(agency_id: str, name: Optional[str] = None, features=None) -> Tenant:
    return Tenant(
        agency_id=agency_id,
        agency_name=name or f"Agency {agency_id.upper()}",
        features=ALL_FEATURES if features is None else features,
    )


def category(label: str, total, records: int, id: Optional[str] = None) -> CategorySummary:
    return CategorySummary(id=id or label.lower(), label=label, total=Decimal(str(total)), records=records)


def commission(id: str, created_at: int, **fields) -> CommissionRecord:
    return CommissionRecord(id=id, created_at=created_at, **fields)


def policy(id: str, created_at: int, **fields) -> PolicyRecord:
    return PolicyRecord(id=id, created_at=created_at, **fields)


def debt(id: str, statement_date: int, **fields) -> DebtRecord:
    return DebtRecord(id=id, statement_date=statement_date, **fields)


class FakeSource:
    """
    In-memory data source.

    `gates` lets a test hold a tenant's fetch open until it sets the event,
    `failures` makes a tenant's fetch raise.
    """

    def __init__(
        self,
        summaries: Optional[Dict[str, TenantSummary]] = None,
        records: Optional[Dict[str, List[Record]]] = None,
    ):
        self.summaries = summaries or {}
        self.records = records or {}
        self.failures: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.summary_calls: List[tuple] = []
        self.record_calls: List[tuple] = []
        self.deleted: List[tuple] = []
        self.updated: List[tuple] = []
        self.mutation_error: Optional[Exception] = None

    async def _wait(self, tenant_id: str) -> None:
        gate = self.gates.get(tenant_id)
        if gate is not None:
            await gate.wait()
        if tenant_id in self.failures:
            raise self.failures[tenant_id]

    async def get_summary(self, tenant_id: str, context: QueryContext) -> TenantSummary:
        self.summary_calls.append((tenant_id, context.category_id))
        await self._wait(tenant_id)
        return self.summaries.get(tenant_id, TenantSummary(tenant_id=tenant_id))

    async def get_records(self, tenant_id: str, context: QueryContext) -> List[Record]:
        self.record_calls.append((tenant_id, context.category_id))
        await self._wait(tenant_id)
        return list(self.records.get(tenant_id, []))

    async def delete_record(self, record: Record, reason: Optional[str]) -> None:
        if self.mutation_error:
            raise self.mutation_error
        self.deleted.append((record.origin_tenant_id, record.id, reason))
        tenant_records = self.records.get(record.origin_tenant_id, [])
        self.records[record.origin_tenant_id] = [r for r in tenant_records if r.id != record.id]

    async def update_record(self, record: Record, patch: Dict[str, Any]) -> None:
        if self.mutation_error:
            raise self.mutation_error
        self.updated.append((record.origin_tenant_id, record.id, patch))
        tenant_records = self.records.get(record.origin_tenant_id, [])
        self.records[record.origin_tenant_id] = [
            r.model_copy(update=patch) if r.id == record.id else r for r in tenant_records
        ]


def summary(tenant_id: str, status=None, overall=None) -> TenantSummary:
    return TenantSummary(
        tenant_id=tenant_id,
        dimensions={"status": status or []},
        overall=overall or OverallTotals(),
    )


@pytest.fixture
def persistence():
    return SessionPersistenceAdapter(InMemoryStore(), prefix="test")


@pytest.fixture(autouse=True)
def clear_registry():
    registry.clear()
    yield
    registry.clear()
