from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import selectinload

from db.models import Lead, LeadNote, LeadStatus, LeadStatusChange, SalesRep, utcnow
from db.repository import LeadRepository
from services.errors import NotFoundError, ValidationError
from tools.notifications import DailyDigest, NotificationClient

REQUIRED_FIELDS = ("first_name", "last_name", "email", "firm_name")

CREATE_FIELDS = (
    "first_name", "last_name", "email", "phone", "title", "firm_name",
    "registration_type", "research_interest", "source", "city", "state", "country",
    "firm_type", "aum",
)

SORTABLE_FIELDS = {
    "created_at": Lead.created_at,
    "updated_at": Lead.updated_at,
    "routed_at": Lead.routed_at,
    "lead_score": Lead.lead_score,
    "firm_name": Lead.firm_name,
    "last_name": Lead.last_name,
    "status": Lead.status,
}

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def _summary(lead: Lead) -> Dict[str, Any]:
    data = lead.to_dict()
    data["assigned_rep"] = lead.assigned_rep.to_dict() if lead.assigned_rep else None
    data["account"] = (
        {"id": lead.account.id, "firm_name": lead.account.firm_name, "status": lead.account.status}
        if lead.account else None
    )
    return data


class LeadService:
    """Lead creation, annotation, reassignment and read queries."""

    def __init__(self, repo: LeadRepository, notifier: Optional[NotificationClient] = None):
        self.repo = repo
        self.notifier = notifier

    def create_lead(self, fields: Dict[str, Any]) -> Lead:
        """Store an inbound registration as a NEW lead with its initial audit record."""
        missing = [name for name in REQUIRED_FIELDS if not (fields.get(name) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        data = {name: fields.get(name) for name in CREATE_FIELDS if fields.get(name) not in (None, "")}
        data["email"] = data["email"].strip().lower()
        data.setdefault("registration_type", "other")
        data.setdefault("research_interest", "unknown")
        if data.get("state"):
            data["state"] = data["state"].strip().upper()
        if data.get("country"):
            data["country"] = data["country"].strip().upper()

        now = utcnow()
        with self.repo.transaction() as session:
            # Status is always NEW regardless of what the caller sent
            lead = Lead(**data, status=LeadStatus.NEW, created_at=now, updated_at=now)
            session.add(lead)
            session.flush()
            session.add(LeadStatusChange(
                lead_id=lead.id,
                from_status=None,
                to_status=LeadStatus.NEW,
                changed_by=data.get("source") or "system",
                reason="Lead created",
                created_at=now,
            ))

        logger.info(f"Created lead {lead.id} for {lead.email} ({lead.firm_name})")
        return lead

    def add_note(self, lead_id: str, author: str, content: str) -> LeadNote:
        if not (content or "").strip():
            raise ValidationError("Note content is required")

        with self.repo.transaction() as session:
            if session.get(Lead, lead_id) is None:
                raise NotFoundError("Lead", lead_id)
            note = LeadNote(lead_id=lead_id, author=author or "User", content=content.strip(), created_at=utcnow())
            session.add(note)

        return note

    def reassign_lead(self, lead_id: str, new_rep_id: str, actor: str) -> None:
        """Point the lead at another rep and record the change as a note."""
        with self.repo.transaction() as session:
            lead = self.repo.lock_lead(session, lead_id)
            rep = session.get(SalesRep, new_rep_id)
            if rep is None:
                raise NotFoundError("SalesRep", new_rep_id)

            lead.assigned_rep_id = rep.id
            session.add(LeadNote(
                lead_id=lead_id,
                author=actor or "User",
                content=f"Reassigned to {rep.name}",
                created_at=utcnow(),
            ))

        logger.info(f"Lead {lead_id} reassigned to {rep.name} by {actor}")

    def list_leads(
        self,
        status: Optional[str] = None,
        brand: Optional[str] = None,
        territory: Optional[str] = None,
        rep_id: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        page = max(1, page or 1)
        page_size = min(MAX_PAGE_SIZE, max(1, page_size or DEFAULT_PAGE_SIZE))

        conditions = []
        if status:
            try:
                conditions.append(Lead.status == LeadStatus(status))
            except ValueError:
                raise ValidationError(f"Unknown lead status: {status}")
        if brand:
            conditions.append(Lead.research_interest == brand)
        if territory:
            conditions.append(Lead.territory_match == territory)
        if rep_id:
            conditions.append(Lead.assigned_rep_id == rep_id)
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(or_(
                func.lower(Lead.first_name).like(pattern),
                func.lower(Lead.last_name).like(pattern),
                func.lower(Lead.firm_name).like(pattern),
                func.lower(Lead.email).like(pattern),
            ))

        column = SORTABLE_FIELDS.get(sort_by, Lead.created_at)
        order = column.asc() if sort_dir == "asc" else column.desc()

        with self.repo.session() as session:
            total = session.scalar(select(func.count(Lead.id)).where(*conditions))
            leads = session.scalars(
                select(Lead)
                .options(selectinload(Lead.assigned_rep), selectinload(Lead.account))
                .where(*conditions)
                .order_by(order, Lead.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).all()
            items = [_summary(lead) for lead in leads]

        return {"leads": items, "total": total, "page": page, "page_size": page_size}

    def get_lead_detail(self, lead_id: str) -> Dict[str, Any]:
        """Lead with rep, account and full history, newest history first."""
        with self.repo.session() as session:
            lead = session.get(Lead, lead_id, options=[
                selectinload(Lead.assigned_rep),
                selectinload(Lead.account),
                selectinload(Lead.status_changes),
                selectinload(Lead.notes),
            ])
            if lead is None:
                raise NotFoundError("Lead", lead_id)

            data = _summary(lead)
            data["status_changes"] = [c.to_dict() for c in reversed(lead.status_changes)]
            data["notes"] = [n.to_dict() for n in reversed(lead.notes)]
            return data

    def list_stale_leads(self) -> list:
        with self.repo.session() as session:
            leads = session.scalars(
                select(Lead)
                .options(selectinload(Lead.assigned_rep), selectinload(Lead.account))
                .where(Lead.status == LeadStatus.STALE)
                .order_by(Lead.stale_at.desc())
            ).all()
            return [_summary(lead) for lead in leads]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_start = today - timedelta(days=today.weekday())
        month_start = today.replace(day=1)

        with self.repo.session() as session:
            total = session.scalar(select(func.count(Lead.id))) or 0
            this_week = session.scalar(select(func.count(Lead.id)).where(Lead.created_at >= week_start)) or 0
            this_month = session.scalar(select(func.count(Lead.id)).where(Lead.created_at >= month_start)) or 0

            by_status = {status.value: 0 for status in LeadStatus}
            for status, count in session.execute(select(Lead.status, func.count(Lead.id)).group_by(Lead.status)):
                by_status[status.value] = count

            by_brand = [
                {"brand": brand, "count": count}
                for brand, count in session.execute(
                    select(Lead.research_interest, func.count(Lead.id))
                    .group_by(Lead.research_interest)
                    .order_by(func.count(Lead.id).desc(), Lead.research_interest)
                )
            ]
            by_territory = [
                {"territory": name, "count": count}
                for name, count in session.execute(
                    select(Lead.territory_match, func.count(Lead.id))
                    .where(Lead.territory_match.is_not(None))
                    .group_by(Lead.territory_match)
                    .order_by(func.count(Lead.id).desc(), Lead.territory_match)
                )
            ]

            contacted = session.execute(
                select(Lead.routed_at, Lead.contacted_at)
                .where(Lead.routed_at.is_not(None), Lead.contacted_at.is_not(None))
            ).all()

        hours = [(c - r).total_seconds() / 3600 for r, c in contacted if c >= r]
        return {
            "total_leads": total,
            "leads_this_week": this_week,
            "leads_this_month": this_month,
            "by_status": by_status,
            "conversion_rate": round(by_status[LeadStatus.CONVERTED.value] / total, 4) if total else 0.0,
            "avg_hours_to_contact": round(sum(hours) / len(hours), 1) if hours else None,
            "leads_by_brand": by_brand,
            "leads_by_territory": by_territory,
        }

    def conversion_metrics(self) -> Dict[str, Any]:
        """Total and converted lead counts per territory and per brand."""
        converted = func.sum(case((Lead.status == LeadStatus.CONVERTED, 1), else_=0))

        with self.repo.session() as session:
            territory_rows = session.execute(
                select(Lead.territory_match, func.count(Lead.id), converted).group_by(Lead.territory_match)
            ).all()
            brand_rows = session.execute(
                select(Lead.research_interest, func.count(Lead.id), converted).group_by(Lead.research_interest)
            ).all()

        def _rates(rows, missing_label):
            metrics = {}
            for name, count, won in rows:
                won = int(won or 0)
                metrics[name or missing_label] = {
                    "total": count,
                    "converted": won,
                    "conversion_rate": round(won / count, 4) if count else 0.0,
                }
            return metrics

        return {
            "by_territory": _rates(territory_rows, "Unassigned"),
            "by_brand": _rates(brand_rows, "unknown"),
        }

    def daily_digest(self, now: Optional[datetime] = None) -> DailyDigest:
        """Leadership summary of the last 24 hours."""
        now = now or utcnow()
        since = now - timedelta(hours=24)

        with self.repo.session() as session:
            recent = select(Lead).where(Lead.created_at >= since).subquery()
            total = session.scalar(select(func.count()).select_from(recent)) or 0
            by_territory = dict(session.execute(
                select(func.coalesce(recent.c.territory_match, "Unassigned"), func.count())
                .group_by(recent.c.territory_match)
            ).all())
            by_brand = dict(session.execute(
                select(recent.c.research_interest, func.count()).group_by(recent.c.research_interest)
            ).all())
            stale = session.scalar(select(func.count(Lead.id)).where(Lead.status == LeadStatus.STALE)) or 0
            all_leads = session.scalar(select(func.count(Lead.id))) or 0
            won = session.scalar(select(func.count(Lead.id)).where(Lead.status == LeadStatus.CONVERTED)) or 0

        return {
            "date": now.date().isoformat(),
            "total_leads": total,
            "leads_by_territory": by_territory,
            "leads_by_brand": by_brand,
            "stale_leads": stale,
            "conversion_rate": round(won / all_leads, 4) if all_leads else 0.0,
        }

    def send_daily_digest(self, now: Optional[datetime] = None) -> DailyDigest:
        digest = self.daily_digest(now)
        if self.notifier is None:
            logger.warning("No notifier configured, daily digest not sent")
            return digest
        try:
            self.notifier.send_daily_digest(digest)
            logger.info(f"Daily digest sent: {digest['total_leads']} new leads")
        except Exception as e:
            logger.error(f"Failed to send daily digest: {e}")
        return digest
