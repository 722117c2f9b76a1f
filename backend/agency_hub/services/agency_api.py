"""Client for the upstream agency REST API.

Every call sends the caller's bearer token. Non-2xx responses and transport
errors are raised as AgencyApiError; payloads are returned raw and mapped to
schemas by agency_hub.services.normalization.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from agency_hub.core.config import settings
from agency_hub.core.exceptions import AgencyApiError
from agency_hub.schemas.tenant import SessionUser
from agency_hub.services.normalization import normalize_session_user

logger = logging.getLogger(__name__)


class AgencyApiClient:
    """Thin async wrapper around the agency endpoints the hub views use."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = (base_url or settings.AGENCY_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.AGENCY_API_TIMEOUT
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        failure: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.request(method, url, headers=self._headers(), params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise AgencyApiError(f"{failure}: {e}") from e

        if resp.status_code >= 400:
            logger.warning(f"{method} {path} returned {resp.status_code}: {resp.text[:200]}")
            raise AgencyApiError(failure, resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise AgencyApiError(f"{failure}: invalid JSON", resp.status_code) from e

    # ── Session ──────────────────────────────────────────────────────

    async def get_session_user(self) -> SessionUser:
        data = await self._request("GET", "/auth/me", "Failed to fetch session user")
        if not isinstance(data, dict):
            raise AgencyApiError("Failed to fetch session user: unexpected payload")
        return normalize_session_user(data)

    # ── Commissions ──────────────────────────────────────────────────

    async def get_commission_summary(self, agency_id: str, start: int, end: int) -> Any:
        return await self._request(
            "GET", "/agency/commissions/summary", "Failed to fetch agency commission summary",
            params={"agency_id": agency_id, "start_date": start, "end_date": end},
        )

    async def get_commissions(self, agency_id: str, start: int, end: int, status_id: Optional[str] = None) -> Any:
        params: Dict[str, Any] = {"agency_id": agency_id, "start_date": start, "end_date": end}
        if status_id:
            params["status_id"] = status_id
        return await self._request("GET", "/agency/commissions", "Failed to fetch agency commissions", params=params)

    async def update_commission(self, commission_id: str, data: Dict[str, Any]) -> Any:
        return await self._request(
            "PUT", f"/agency/commissions/{commission_id}", "Failed to update commission", json=data,
        )

    async def delete_commission(self, commission_id: str) -> Any:
        return await self._request("DELETE", f"/commissions/{commission_id}", "Failed to delete commission")

    # ── Policies ─────────────────────────────────────────────────────

    async def get_policy_summary(self, agency_id: str, start: int, end: int) -> Any:
        return await self._request(
            "GET", f"/agency/policies/{agency_id}/summary", "Failed to fetch agency policy summary",
            params={"start_date": start, "end_date": end},
        )

    async def get_policies(self, agency_id: str, start: int, end: int, status_id: Optional[str] = None) -> Any:
        params: Dict[str, Any] = {"start_date": start, "end_date": end}
        if status_id:
            params["status_id"] = status_id
        return await self._request("GET", f"/agency/policies/{agency_id}", "Failed to fetch agency policies", params=params)

    async def update_policy(self, policy_id: str, data: Dict[str, Any]) -> Any:
        return await self._request(
            "PUT", f"/agency/policies/{policy_id}/coverage", "Failed to update policy", json=data,
        )

    async def delete_policy(self, policy_id: str, reason: str) -> Any:
        return await self._request(
            "DELETE", f"/policies/{policy_id}", "Failed to delete policy", json={"reason": reason},
        )

    async def toggle_policy_lock(self, policy_id: str, is_locked: bool) -> Any:
        return await self._request(
            "POST", f"/agency/policy/{policy_id}/lock", "Failed to update policy lock status",
            json={"isLocked": is_locked},
        )

    # ── Debts ────────────────────────────────────────────────────────

    async def get_debt_summary(self, agency_id: str) -> Any:
        return await self._request(
            "GET", "/agency/debts/summary", "Failed to fetch agency debt summary",
            params={"agency_id": agency_id},
        )

    async def get_debts(self, agency_id: str, status: str = "unresolved") -> Any:
        return await self._request(
            "GET", "/agency/debts", "Failed to fetch agency debt records",
            params={"agency_id": agency_id, "status": status},
        )

    async def update_debt(self, debt_id: str, data: Dict[str, Any]) -> Any:
        return await self._request("PUT", f"/agency/debts/{debt_id}", "Failed to update debt record", json=data)

    async def resolve_debt(self, debt_id: str, is_resolved: bool) -> Any:
        return await self._request(
            "POST", f"/debts/{debt_id}/resolve", "Failed to update resolution status",
            json={"isResolved": is_resolved},
        )
