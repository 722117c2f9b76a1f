import json

import httpx
import pytest

from agency_hub.core.exceptions import AgencyApiError, MutationValidationError
from agency_hub.schemas.record import CommissionRecord, PolicyRecord
from agency_hub.schemas.view_state import DateRange, QueryContext
from agency_hub.services.agency_api import AgencyApiClient
from agency_hub.services.sources import AgencyApiSource
from agency_hub.services.view_configs import COMMISSIONS_VIEW, DEBTS_VIEW, POLICIES_VIEW, POLICY_RECORDS_VIEW


class Recorder:
    """MockTransport handler that records requests and replays canned responses by path."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.get(request.url.path)
        if response is None:
            return httpx.Response(200, json=[])
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _client(recorder: Recorder) -> AgencyApiClient:
    return AgencyApiClient("tok", base_url="https://agency.test/api/", transport=httpx.MockTransport(recorder))


def _context(category=None):
    return QueryContext(date_range=DateRange(start=100, end=200), category_id=category)


@pytest.mark.asyncio
async def test_sends_bearer_token_and_params():
    recorder = Recorder({"/api/agency/commissions/summary": httpx.Response(200, json={"overall": {}})})

    data = await _client(recorder).get_commission_summary("a1", 100, 200)

    assert data == {"overall": {}}
    request = recorder.last
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.url.host == "agency.test"
    assert dict(request.url.params) == {"agency_id": "a1", "start_date": "100", "end_date": "200"}


@pytest.mark.asyncio
async def test_status_filter_only_sent_when_set():
    recorder = Recorder()
    client = _client(recorder)

    await client.get_commissions("a1", 1, 2)
    assert "status_id" not in recorder.last.url.params

    await client.get_commissions("a1", 1, 2, "paid")
    assert recorder.last.url.params["status_id"] == "paid"


@pytest.mark.asyncio
async def test_non_2xx_raises_with_status():
    recorder = Recorder({"/api/agency/debts": httpx.Response(403, json={"detail": "no"})})

    with pytest.raises(AgencyApiError) as exc:
        await _client(recorder).get_debts("a1")

    assert exc.value.status_code == 403
    assert exc.value.is_authorization_error
    assert exc.value.message == "Failed to fetch agency debt records"


@pytest.mark.asyncio
async def test_transport_error_raises_without_status():
    recorder = Recorder({"/api/agency/debts/summary": httpx.ConnectError("refused")})

    with pytest.raises(AgencyApiError) as exc:
        await _client(recorder).get_debt_summary("a1")

    assert exc.value.status_code is None
    assert not exc.value.is_authorization_error


@pytest.mark.asyncio
async def test_invalid_json_raises():
    recorder = Recorder({"/api/agency/debts": httpx.Response(200, content=b"<html>")})
    with pytest.raises(AgencyApiError):
        await _client(recorder).get_debts("a1")


@pytest.mark.asyncio
async def test_empty_body_is_none():
    recorder = Recorder({"/api/commissions/9": httpx.Response(204)})
    assert await _client(recorder).delete_commission("9") is None
    assert recorder.last.method == "DELETE"


@pytest.mark.asyncio
async def test_delete_policy_sends_reason():
    recorder = Recorder({"/api/policies/5": httpx.Response(200, json={"ok": True})})

    await _client(recorder).delete_policy("5", "duplicate entry")

    assert recorder.last.method == "DELETE"
    assert json.loads(recorder.last.content) == {"reason": "duplicate entry"}


@pytest.mark.asyncio
async def test_get_session_user():
    recorder = Recorder({"/api/auth/me": httpx.Response(200, json={
        "id": "u1",
        "name": "Dana",
        "agency_access": [{"agency_id": "a1", "agency_name": "North", "feature": ["Commissions"]}],
    })})

    user = await _client(recorder).get_session_user()

    assert user.id == "u1"
    assert user.agency_access[0].agency_name == "North"


@pytest.mark.asyncio
async def test_get_session_user_rejects_non_object():
    recorder = Recorder({"/api/auth/me": httpx.Response(200, json=["x"])})
    with pytest.raises(AgencyApiError):
        await _client(recorder).get_session_user()


# ── Source routing ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_commission_source_normalizes_records():
    recorder = Recorder({"/api/agency/commissions": httpx.Response(200, json=[
        {"id": 1, "amount": "12.5", "agent_name": "Lee"},
        {"amount": 3},
    ])})
    source = AgencyApiSource(_client(recorder), COMMISSIONS_VIEW)

    records = await source.get_records("a1", _context("paid"))

    assert [r.id for r in records] == ["1"]
    assert recorder.last.url.params["status_id"] == "paid"


@pytest.mark.asyncio
async def test_policy_source_uses_agency_in_path():
    recorder = Recorder({"/api/agency/policies/a1/summary": httpx.Response(200, json={
        "Status": [{"id": "1", "label": "Approved", "total": 10, "records": 1}],
    })})
    source = AgencyApiSource(_client(recorder), POLICIES_VIEW)

    summary = await source.get_summary("a1", _context())

    assert summary.dimensions["status"][0].label == "Approved"
    assert await source.get_records("a1", _context()) == []


@pytest.mark.asyncio
async def test_debt_source_defaults_to_unresolved_and_ignores_dates():
    recorder = Recorder()
    source = AgencyApiSource(_client(recorder), DEBTS_VIEW)

    await source.get_records("a1", _context())
    assert recorder.last.url.params["status"] == "unresolved"

    await source.get_summary("a1", _context())
    assert "start_date" not in recorder.last.url.params


@pytest.mark.asyncio
async def test_debt_resolution_patch_uses_resolve_endpoint():
    recorder = Recorder()
    source = AgencyApiSource(_client(recorder), DEBTS_VIEW)
    record = CommissionRecord(id="7", origin_tenant_id="a1")

    await source.update_record(record, {"isResolved": True})
    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/api/debts/7/resolve"
    assert json.loads(recorder.last.content) == {"isResolved": True}

    await source.update_record(record, {"amount": "5"})
    assert recorder.last.method == "PUT"
    assert recorder.last.url.path == "/api/agency/debts/7"


@pytest.mark.asyncio
async def test_policy_update_goes_to_coverage_endpoint():
    recorder = Recorder()
    source = AgencyApiSource(_client(recorder), POLICY_RECORDS_VIEW)

    await source.update_record(CommissionRecord(id="3"), {"carrier": "Aetna"})

    assert recorder.last.url.path == "/api/agency/policies/3/coverage"


@pytest.mark.asyncio
async def test_unsupported_delete():
    source = AgencyApiSource(_client(Recorder()), DEBTS_VIEW)
    with pytest.raises(ValueError):
        await source.delete_record(CommissionRecord(id="1"), None)


@pytest.mark.asyncio
async def test_commission_lock_patch_uses_policy_lock_endpoint():
    recorder = Recorder()
    source = AgencyApiSource(_client(recorder), COMMISSIONS_VIEW)

    await source.update_record(CommissionRecord(id="7", policy_id="p9"), {"policy_isLocked": True})

    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/api/agency/policy/p9/lock"
    assert json.loads(recorder.last.content) == {"isLocked": True}

    await source.update_record(CommissionRecord(id="7", policy_id="p9"), {"policy_isLocked": True, "amount": "5"})
    assert recorder.last.method == "PUT"
    assert "/lock" not in recorder.last.url.path


@pytest.mark.asyncio
async def test_policy_record_lock_patch_uses_policy_lock_endpoint():
    recorder = Recorder()
    source = AgencyApiSource(_client(recorder), POLICY_RECORDS_VIEW)

    await source.update_record(PolicyRecord(id="3"), {"isLocked": False})

    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/api/agency/policy/3/lock"
    assert json.loads(recorder.last.content) == {"isLocked": False}


@pytest.mark.asyncio
async def test_commission_lock_without_policy_is_rejected():
    recorder = Recorder()
    source = AgencyApiSource(_client(recorder), COMMISSIONS_VIEW)

    with pytest.raises(MutationValidationError):
        await source.update_record(CommissionRecord(id="7"), {"policy_isLocked": True})
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_policy_lock_failure_message():
    recorder = Recorder({"/api/agency/policy/3/lock": httpx.Response(500)})

    with pytest.raises(AgencyApiError) as exc:
        await _client(recorder).toggle_policy_lock("3", True)

    assert exc.value.message == "Failed to update policy lock status"
    assert exc.value.status_code == 500
