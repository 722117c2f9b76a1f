"""Fetch-boundary adapters.

Raw agency API payloads are mapped to schema objects here and nowhere else.
Missing or malformed fields fall back to the values in the tables below
instead of raising, so one bad row never blocks a view.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from pydantic import ValidationError

from agency_hub.schemas.record import CommissionRecord, DebtRecord, PolicyRecord, Record
from agency_hub.schemas.summary import CategorySummary, OverallTotals, TenantSummary
from agency_hub.schemas.tenant import Feature, SessionUser, Tenant
from agency_hub.services.date_ranges import to_epoch_ms

logger = logging.getLogger(__name__)


# Backend feature strings -> fixed vocabulary, first substring match wins
FEATURE_FALLBACKS = [
    ("polic", Feature.POLICIES),
    ("debt", Feature.DEBTS),
    ("commission", Feature.COMMISSIONS),
    ("contract", Feature.CONTRACTING),
    ("ticket", Feature.TICKETING),
    ("user", Feature.USERS),  # "user&roles"
    ("master", Feature.SETTINGS),
]

# contactSource -> channel shown in the source facet
SOURCE_CHANNELS = [
    (("facebook", "insta", "social"), "Social"),
    (("lead", "direct", "buy"), "Lead Vendor"),
    (("referral", "word"), "Referral"),
]

DEFAULT_PAID_STATUS = "Unpaid"
DEFAULT_CONTACT_SOURCE = "Organic"
DEFAULT_AGENT_NAME = "Unknown Agent"


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def to_int(value: Any) -> Optional[int]:
    number = to_decimal(value)
    return int(number) if number is not None else None


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "y"):
            return True
        if lowered in ("false", "0", "no", "n", ""):
            return False
    return None


def to_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def normalize_feature(feature: str) -> Optional[Feature]:
    lower = str(feature).lower().strip()
    for needle, mapped in FEATURE_FALLBACKS:
        if needle in lower:
            return mapped
    try:
        return Feature(lower)
    except ValueError:
        return None


def normalize_tenant(raw: Dict[str, Any]) -> Optional[Tenant]:
    agency_id = to_text(raw.get("agency_id"))
    if not agency_id:
        logger.warning(f"Dropping agency access entry without agency_id: {raw}")
        return None

    features: List[Feature] = []
    raw_features = raw.get("feature")
    if isinstance(raw_features, list):
        for item in raw_features:
            mapped = normalize_feature(item)
            if mapped and mapped not in features:
                features.append(mapped)

    return Tenant(
        agency_id=agency_id,
        agency_name=to_text(raw.get("agency_name")) or agency_id,
        role=to_text(raw.get("role")) or "admin",
        features=features,
    )


def normalize_session_user(raw: Dict[str, Any]) -> SessionUser:
    """Map the /auth/me payload to the user and their agency catalog."""
    tenants = []
    for entry in raw.get("agency_access") or []:
        if isinstance(entry, dict):
            tenant = normalize_tenant(entry)
            if tenant:
                tenants.append(tenant)
    return SessionUser(
        id=to_text(raw.get("id")) or "",
        name=to_text(raw.get("name")) or "",
        agency_access=tenants,
    )


def source_channel(contact_source: Optional[str]) -> str:
    lowered = (contact_source or DEFAULT_CONTACT_SOURCE).lower()
    for needles, channel in SOURCE_CHANNELS:
        if any(n in lowered for n in needles):
            return channel
    return DEFAULT_CONTACT_SOURCE


# ── Summaries ────────────────────────────────────────────────────────


def _category(raw: Dict[str, Any], label_key: str, total_key: str) -> Optional[CategorySummary]:
    label = to_text(raw.get(label_key))
    if not label:
        return None
    return CategorySummary(
        id=to_text(raw.get("id")) or label,
        label=label,
        total=to_decimal(raw.get(total_key)) or Decimal("0"),
        records=to_int(raw.get("records")) or 0,
    )


def _categories(items: Any, label_key: str, total_key: str) -> List[CategorySummary]:
    if not isinstance(items, list):
        return []
    result = []
    for item in items:
        if isinstance(item, dict):
            category = _category(item, label_key, total_key)
            if category:
                result.append(category)
    return result


def normalize_commission_summary(tenant_id: str, raw: Dict[str, Any]) -> TenantSummary:
    overall = raw.get("overall") or {}
    return TenantSummary(
        tenant_id=tenant_id,
        dimensions={"status": _categories(raw.get("by_status"), "status", "totalCommissions")},
        overall=OverallTotals(
            total=to_decimal(overall.get("TotalCommissions")) or Decimal("0"),
            records=to_int(overall.get("Records")) or 0,
        ),
    )


def normalize_policy_summary(tenant_id: str, raw: Dict[str, Any]) -> TenantSummary:
    status = _categories(raw.get("Status"), "label", "total")
    carrier = _categories(raw.get("Carrier"), "label", "total")
    overall = OverallTotals(
        total=sum((c.total for c in status), Decimal("0")),
        records=sum(c.records for c in status),
    )
    return TenantSummary(
        tenant_id=tenant_id,
        dimensions={"status": status, "carrier": carrier},
        overall=overall,
    )


def normalize_debt_summary(tenant_id: str, raw: Dict[str, Any]) -> TenantSummary:
    overall = raw.get("overall") or {}
    resolution = []
    for key, label in (("unresolved", "Unresolved"), ("resolved", "Resolved")):
        bucket = raw.get(key)
        if not isinstance(bucket, dict):
            continue
        resolution.append(CategorySummary(
            id=key,
            label=label,
            total=to_decimal(bucket.get("total_amount")) or Decimal("0"),
            records=to_int(bucket.get("records")) or 0,
        ))
    return TenantSummary(
        tenant_id=tenant_id,
        dimensions={"resolution": resolution},
        overall=OverallTotals(
            total=to_decimal(overall.get("overalltotal")) or Decimal("0"),
            records=to_int(overall.get("overallrecords")) or 0,
        ),
    )


# ── Records ──────────────────────────────────────────────────────────

Coercers = Dict[str, Callable[[Any], Any]]

COMMISSION_COERCERS: Coercers = {
    "id": to_text,
    "created_at": to_epoch_ms,
    "policy_id": to_text,
    "agent_name": to_text,
    "agentOncommission_name": to_text,
    "agentOnCommission_id": to_text,
    "client_name": to_text,
    "policy_number": to_text,
    "policy_isLocked": to_bool,
    "carrier": to_text,
    "effective_date": to_text,
    "amount": to_decimal,
    "status": to_text,
    "submitted_by": to_text,
    "carrier_product": to_text,
    "policy_status": to_text,
    "annual_premium": to_decimal,
}

POLICY_COERCERS: Coercers = {
    "id": to_text,
    "created_at": to_epoch_ms,
    "client": to_text,
    "policy_number": to_text,
    "carrier_product": to_text,
    "initial_draft_date": to_text,
    "annual_premium": to_decimal,
    "isLocked": to_bool,
    "agent_name": to_text,
    "agent_id": to_text,
    "carrier": to_text,
    "status": to_text,
    "paid_status": to_text,
    "commission_count": to_int,
    "contactSource": to_text,
}

DEBT_COERCERS: Coercers = {
    "id": to_text,
    "created_at": to_epoch_ms,
    "amount": to_decimal,
    "carrier": to_text,
    "created_by": to_text,
    "agentOndebt_id": to_text,
    "agentOndebt_name": to_text,
    "isResolved": to_bool,
    "statement_date": to_epoch_ms,
    "email": to_text,
}

# Fields the schemas own; an agency payload may not overwrite them
_RESERVED = ("origin_tenant_id", "origin_tenant_name", "source_channel", "key")


def _build(model: Type[Record], raw: Any, coercers: Coercers) -> Optional[Record]:
    if not isinstance(raw, dict):
        logger.warning(f"Skipping non-object {model.__name__} row: {raw!r}")
        return None

    data = {k: v for k, v in raw.items() if k not in _RESERVED}
    for field, coerce in coercers.items():
        if field in data:
            data[field] = coerce(data[field])
    # Absent values fall back to the schema defaults
    data = {k: v for k, v in data.items() if v is not None and v != ""}

    if "id" not in data:
        logger.warning(f"Skipping {model.__name__} row without id")
        return None

    if model is PolicyRecord:
        data["source_channel"] = source_channel(data.get("contactSource"))

    try:
        return model(**data)
    except ValidationError as e:
        logger.warning(f"Skipping malformed {model.__name__} row {data.get('id')}: {e}")
        return None


def _build_all(model: Type[Record], rows: Any, coercers: Coercers) -> List[Record]:
    if not isinstance(rows, list):
        logger.warning(f"Expected a list of {model.__name__} rows, got {type(rows).__name__}")
        return []
    records = []
    for row in rows:
        record = _build(model, row, coercers)
        if record is not None:
            records.append(record)
    return records


def normalize_commission_records(rows: Iterable[Any]) -> List[Record]:
    return _build_all(CommissionRecord, rows, COMMISSION_COERCERS)


def normalize_policy_records(rows: Iterable[Any]) -> List[Record]:
    return _build_all(PolicyRecord, rows, POLICY_COERCERS)


def normalize_debt_records(rows: Iterable[Any]) -> List[Record]:
    return _build_all(DebtRecord, rows, DEBT_COERCERS)
