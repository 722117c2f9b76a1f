"""
Session persistence for view state.

Stores are plain string key-value stores. The adapter on top scopes keys per
user, view and agency selection and never lets a bad stored value break a
view: anything it cannot parse is logged and replaced by defaults.
"""
import json
import logging
from typing import Callable, Dict, Optional, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy.orm import Session

from agency_hub.core.config import settings
from agency_hub.core.database import SessionLocal
from agency_hub.models.view_state import ViewStateEntry
from agency_hub.schemas.view_state import PersistedViewState

logger = logging.getLogger(__name__)


class PersistentStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryStore:
    """Process-local store, used in tests and when no database is wanted."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SqlAlchemyStore:
    """Store backed by the view_states table. Opens a short session per call."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            entry = db.query(ViewStateEntry).filter(ViewStateEntry.key == key).first()
            return entry.value if entry else None
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self.session_factory()
        try:
            entry = db.query(ViewStateEntry).filter(ViewStateEntry.key == key).first()
            if entry:
                entry.value = value
            else:
                db.add(ViewStateEntry(key=key, value=value))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def agency_scope(agency_ids: Sequence[str]) -> str:
    """Stable scope token for a set of selected agencies."""
    return ",".join(sorted(agency_ids)) or "none"


class SessionPersistenceAdapter:
    """Load/save a view's filter state under a per-user, per-view, per-agency key."""

    def __init__(self, store: PersistentStore, prefix: Optional[str] = None):
        self.store = store
        self.prefix = prefix or settings.SESSION_KEY_PREFIX

    def view_key(self, user_id: str, view_id: str, agency_ids: Sequence[str]) -> str:
        return f"{self.prefix}:{view_id}:{user_id}:{agency_scope(agency_ids)}"

    def selected_agencies_key(self, user_id: str) -> str:
        return f"{self.prefix}:selected_agencies:{user_id}"

    def load(self, key: str, default: Callable[[], PersistedViewState]) -> PersistedViewState:
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.warning(f"Could not read view state {key}, using defaults: {e}")
            return default()
        if raw is None:
            return default()
        try:
            return PersistedViewState.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Malformed view state under {key}, using defaults: {e}")
            return default()

    def save(self, key: str, state: PersistedViewState) -> None:
        self.store.set(key, state.model_dump_json())

    def load_json(self, key: str) -> Optional[object]:
        """Raw JSON value, or None when missing or unreadable."""
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.warning(f"Could not read {key}: {e}")
            return None
        try:
            return json.loads(raw) if raw is not None else None
        except (ValueError, TypeError) as e:
            logger.warning(f"Malformed stored value under {key}: {e}")
            return None

    def save_json(self, key: str, value: object) -> None:
        self.store.set(key, json.dumps(value))
