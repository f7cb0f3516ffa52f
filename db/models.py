"""
SQLAlchemy ORM models for lead routing.

Leads own their status-change and note history (cascade delete). Accounts and
territories are referenced weakly; deleting them nulls the lead's pointer.
All timestamps are naive UTC.
"""

import enum
import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer,
    String, Text,
)
from sqlalchemy.orm import relationship, validates

from db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class LeadStatus(str, enum.Enum):
    NEW = "NEW"
    ROUTED = "ROUTED"
    CONTACTED = "CONTACTED"
    CONVERTED = "CONVERTED"
    STALE = "STALE"


def parse_regions(regions) -> list:
    """Normalize a region list given as a list, a JSON array string or comma text."""
    if regions is None:
        return []
    if isinstance(regions, (list, tuple)):
        items = regions
    else:
        text = str(regions).strip()
        items = None
        if text.startswith("["):
            try:
                parsed = json.loads(text)
                if isinstance(parsed, list):
                    items = parsed
            except ValueError:
                pass
        if items is None:
            items = text.split(",")

    codes = []
    for item in items:
        code = str(item).strip().upper()
        if code and code not in codes:
            codes.append(code)
    return codes


# ============================================================================
# REFERENCE DATA
# ============================================================================

class SalesRep(Base):
    __tablename__ = "sales_reps"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "is_active": self.is_active}

    def __repr__(self):
        return f"<SalesRep(id={self.id}, name='{self.name}')>"


class Territory(Base):
    """Named set of state/province codes owned by one rep. First match wins."""
    __tablename__ = "territories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, unique=True)
    regions = Column(JSON, nullable=False, default=list)
    country = Column(String(8), nullable=False, default="US")
    rep_id = Column(String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    rep = relationship("SalesRep")

    @validates("regions")
    def _normalize_regions(self, key, value):
        return parse_regions(value)

    @validates("country")
    def _normalize_country(self, key, value):
        return (value or "US").strip().upper()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "regions": list(self.regions or []),
            "country": self.country,
            "rep": self.rep.to_dict() if self.rep else None,
        }

    def __repr__(self):
        return f"<Territory(name='{self.name}', regions={len(self.regions or [])})>"


class Account(Base):
    """Existing customer or prospect firm; its rep outranks territory routing."""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=new_id)
    firm_name = Column(String(255), nullable=False, index=True)
    domain = Column(String(255), nullable=True, index=True)
    territory = Column(String(255), nullable=True)
    rep_id = Column(String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(50), nullable=False, default="active")
    city = Column(String(120), nullable=True)
    state = Column(String(50), nullable=True)
    country = Column(String(8), nullable=True, default="US")
    firm_type = Column(String(50), nullable=True)
    aum = Column(Float, nullable=True)
    products = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    rep = relationship("SalesRep")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "firm_name": self.firm_name,
            "domain": self.domain,
            "territory": self.territory,
            "rep": self.rep.to_dict() if self.rep else None,
            "status": self.status,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "firm_type": self.firm_type,
            "aum": self.aum,
            "products": list(self.products or []),
        }


# ============================================================================
# LEADS
# ============================================================================

class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=new_id)

    # Identity
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    title = Column(String(255), nullable=True)

    # Firm
    firm_name = Column(String(255), nullable=False)
    firm_domain = Column(String(255), nullable=True)
    firm_type = Column(String(50), nullable=True)
    aum = Column(Float, nullable=True)

    # Registration
    registration_type = Column(String(50), nullable=False, default="other")
    research_interest = Column(String(255), nullable=False, default="unknown")
    source = Column(String(50), nullable=True)

    # Location
    city = Column(String(120), nullable=True)
    state = Column(String(50), nullable=True)
    country = Column(String(8), nullable=True)

    # Routing outcome
    assigned_rep_id = Column(String(36), ForeignKey("sales_reps.id", ondelete="SET NULL"), nullable=True, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    territory_match = Column(String(255), nullable=True)
    lead_score = Column(Integer, nullable=False, default=0)
    score_breakdown = Column(JSON, nullable=True)

    # Lifecycle
    status = Column(Enum(LeadStatus, native_enum=False, length=20), nullable=False, default=LeadStatus.NEW)
    routed_at = Column(DateTime, nullable=True)
    contacted_at = Column(DateTime, nullable=True)
    converted_at = Column(DateTime, nullable=True)
    stale_at = Column(DateTime, nullable=True)

    # Enrichment cache
    enrichment_data = Column(JSON, nullable=True)
    enriched_at = Column(DateTime, nullable=True)

    # Routing claim
    processing_started_at = Column(DateTime, nullable=True)
    routing_attempted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    assigned_rep = relationship("SalesRep")
    account = relationship("Account")
    status_changes = relationship(
        "LeadStatusChange",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="LeadStatusChange.created_at",
    )
    notes = relationship(
        "LeadNote",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="LeadNote.created_at",
    )

    __table_args__ = (
        Index("ix_leads_status_routed_at", "status", "routed_at"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "title": self.title,
            "firm_name": self.firm_name,
            "firm_domain": self.firm_domain,
            "firm_type": self.firm_type,
            "aum": self.aum,
            "registration_type": self.registration_type,
            "research_interest": self.research_interest,
            "source": self.source,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "assigned_rep_id": self.assigned_rep_id,
            "account_id": self.account_id,
            "territory_match": self.territory_match,
            "lead_score": self.lead_score,
            "score_breakdown": self.score_breakdown,
            "status": self.status.value if self.status else None,
            "routed_at": _iso(self.routed_at),
            "contacted_at": _iso(self.contacted_at),
            "converted_at": _iso(self.converted_at),
            "stale_at": _iso(self.stale_at),
            "enrichment_data": self.enrichment_data,
            "enriched_at": _iso(self.enriched_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Lead(id={self.id}, email='{self.email}', status={self.status})>"


class LeadStatusChange(Base):
    """Append-only audit record of one status transition."""
    __tablename__ = "lead_status_changes"

    id = Column(String(36), primary_key=True, default=new_id)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(Enum(LeadStatus, native_enum=False, length=20), nullable=True)
    to_status = Column(Enum(LeadStatus, native_enum=False, length=20), nullable=False)
    changed_by = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    lead = relationship("Lead", back_populates="status_changes")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value,
            "changed_by": self.changed_by,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
        }


class LeadNote(Base):
    __tablename__ = "lead_notes"

    id = Column(String(36), primary_key=True, default=new_id)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    lead = relationship("Lead", back_populates="notes")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }


def _iso(value):
    return value.isoformat() if value else None
