"""Which of a user's agencies are currently selected."""
import logging
from typing import Dict, List, Optional

from agency_hub.schemas.tenant import Feature, SessionUser, Tenant, TenantSelectionOut
from agency_hub.services.persistence import SessionPersistenceAdapter

logger = logging.getLogger(__name__)


class TenantSelectionStore:
    """
    Selected agency ids for one user, persisted across requests.

    The selection is always a subset of the user's agency catalog. A missing
    or unusable stored value falls back to the first agency in the catalog.
    """

    def __init__(self, user: SessionUser, persistence: SessionPersistenceAdapter):
        self.user = user
        self.persistence = persistence
        self.key = persistence.selected_agencies_key(user.id)
        self.selected_ids: List[str] = self._load()

    @property
    def catalog(self) -> List[Tenant]:
        return list(self.user.agency_access)

    def _catalog_ids(self) -> List[str]:
        return [t.agency_id for t in self.user.agency_access]

    def _default(self) -> List[str]:
        ids = self._catalog_ids()
        return ids[:1]

    def _load(self) -> List[str]:
        stored = self.persistence.load_json(self.key)
        if not isinstance(stored, list):
            return self._default()
        known = set(self._catalog_ids())
        # Keep catalog order so the first selected agency is stable
        wanted = {str(s) for s in stored}
        selected = [i for i in self._catalog_ids() if i in wanted]
        dropped = wanted - known
        if dropped:
            logger.warning(f"Dropping unknown agencies from {self.key}: {sorted(dropped)}")
        if not selected and stored:
            return self._default()
        return selected

    def _save(self) -> None:
        self.persistence.save_json(self.key, self.selected_ids)

    def toggle(self, agency_id: str) -> None:
        if agency_id not in self._catalog_ids():
            raise KeyError(agency_id)
        if agency_id in self.selected_ids:
            wanted = set(self.selected_ids) - {agency_id}
        else:
            wanted = set(self.selected_ids) | {agency_id}
        self.selected_ids = [i for i in self._catalog_ids() if i in wanted]
        self._save()

    def select_all(self) -> None:
        self.selected_ids = self._catalog_ids()
        self._save()

    def clear(self) -> None:
        self.selected_ids = []
        self._save()

    @property
    def selected(self) -> List[Tenant]:
        wanted = set(self.selected_ids)
        return [t for t in self.user.agency_access if t.agency_id in wanted]

    @property
    def active(self) -> Optional[Tenant]:
        selected = self.selected
        return selected[0] if selected else None

    @property
    def union_features(self) -> List[Feature]:
        features: List[Feature] = []
        for tenant in self.selected:
            for feature in tenant.features:
                if feature not in features:
                    features.append(feature)
        return features

    def tenant_names(self) -> Dict[str, str]:
        return {t.agency_id: t.agency_name for t in self.user.agency_access}

    def to_out(self) -> TenantSelectionOut:
        return TenantSelectionOut(
            selected_agency_ids=list(self.selected_ids),
            available_agencies=self.catalog,
            active_agency=self.active,
            union_features=self.union_features,
        )
