"""Persisted per-user view state (filters, sort, paging, selected agencies)."""
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from agency_hub.core.database import Base


class ViewStateEntry(Base):
    """Key-value row; the key already encodes user, view and agency scope."""
    __tablename__ = "view_states"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False, index=True)  # e.g. "agency_hub:debts:u1:a1"
    value = Column(Text, nullable=False)  # JSON
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
