from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from db.models import Account, Lead, LeadStatus, SalesRep, Territory, utcnow
from services.errors import NotFoundError


class LeadRepository:
    """Transactional access to the lead routing tables.

    Every read opens and closes its own session; returned objects are detached
    with their eager-loaded relationships populated. Writes that must commit
    together go through ``transaction()``.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Single unit of work: commit on success, roll back and re-raise on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    def get_lead(self, lead_id: str) -> Lead:
        with self.session() as session:
            lead = session.get(Lead, lead_id, options=[selectinload(Lead.assigned_rep)])
            if lead is None:
                raise NotFoundError("Lead", lead_id)
            return lead

    def lock_lead(self, session: Session, lead_id: str) -> Lead:
        """Load a lead for update inside an open transaction."""
        lead = session.execute(
            select(Lead).where(Lead.id == lead_id).with_for_update()
        ).scalar_one_or_none()
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        return lead

    def claim_for_routing(self, lead_id: str, lease_seconds: int) -> bool:
        """Mark a NEW lead as being routed unless another worker holds a live claim.

        A single conditional UPDATE, so two processes racing on the same lead
        cannot both see rowcount 1.
        """
        now = utcnow()
        expired = now - timedelta(seconds=lease_seconds)
        with self.transaction() as session:
            result = session.execute(
                update(Lead)
                .where(
                    Lead.id == lead_id,
                    Lead.status == LeadStatus.NEW,
                    or_(Lead.processing_started_at.is_(None), Lead.processing_started_at < expired),
                )
                .values(processing_started_at=now)
                .execution_options(synchronize_session=False)
            )
            claimed = result.rowcount == 1
        if not claimed:
            logger.warning(f"Routing claim refused for lead {lead_id}")
        return claimed

    def release_claim(self, lead_id: str) -> None:
        with self.transaction() as session:
            session.execute(
                update(Lead)
                .where(Lead.id == lead_id, Lead.processing_started_at.is_not(None))
                .values(processing_started_at=None)
                .execution_options(synchronize_session=False)
            )

    def list_unprocessed_new_leads(self, limit: int) -> List[str]:
        """Ids of NEW leads the routing pipeline has never completed, oldest first."""
        with self.session() as session:
            rows = session.execute(
                select(Lead.id)
                .where(Lead.status == LeadStatus.NEW, Lead.routing_attempted_at.is_(None))
                .order_by(Lead.created_at.asc())
                .limit(limit)
            )
            return [row[0] for row in rows]

    def list_overdue_routed_leads(self, cutoff: datetime) -> List[Lead]:
        with self.session() as session:
            return list(session.scalars(
                select(Lead)
                .options(selectinload(Lead.assigned_rep))
                .where(Lead.status == LeadStatus.ROUTED, Lead.routed_at < cutoff)
                .order_by(Lead.routed_at.asc())
            ))

    # ------------------------------------------------------------------
    # Reps, territories, accounts
    # ------------------------------------------------------------------

    def get_rep(self, rep_id: str) -> SalesRep:
        with self.session() as session:
            rep = session.get(SalesRep, rep_id)
            if rep is None:
                raise NotFoundError("SalesRep", rep_id)
            return rep

    def list_territories(self) -> List[Territory]:
        """All territories in creation order, reps loaded."""
        with self.session() as session:
            return list(session.scalars(
                select(Territory)
                .options(selectinload(Territory.rep))
                .order_by(Territory.created_at.asc(), Territory.id.asc())
            ))

    def find_account_by_domain(self, domain: str) -> Optional[Account]:
        with self.session() as session:
            return session.scalars(
                select(Account)
                .options(selectinload(Account.rep))
                .where(func.lower(Account.domain) == domain.strip().lower())
                .order_by(Account.created_at.asc())
                .limit(1)
            ).first()

    def find_account_by_name(self, firm_name: str) -> Optional[Account]:
        with self.session() as session:
            return session.scalars(
                select(Account)
                .options(selectinload(Account.rep))
                .where(func.lower(Account.firm_name) == firm_name.strip().lower())
                .order_by(Account.created_at.asc())
                .limit(1)
            ).first()

    def find_account_by_name_prefix(self, prefix: str) -> Optional[Account]:
        with self.session() as session:
            return session.scalars(
                select(Account)
                .options(selectinload(Account.rep))
                .where(func.lower(Account.firm_name).startswith(prefix.strip().lower(), autoescape=True))
                .order_by(Account.created_at.asc())
                .limit(1)
            ).first()
