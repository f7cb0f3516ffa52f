"""
Lead lifecycle: the status state machine and scheduled stale detection.

    NEW       -> ROUTED, STALE
    ROUTED    -> CONTACTED, STALE
    CONTACTED -> CONVERTED, STALE
    CONVERTED -> (terminal)
    STALE     -> ROUTED, CONTACTED   (revival)

Each status has a first-entry timestamp that is set once and never cleared.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from loguru import logger

from db.models import LeadStatus, LeadStatusChange, utcnow
from db.repository import LeadRepository
from services.errors import InvalidTransitionError, ValidationError
from tools.notifications import NotificationClient

VALID_TRANSITIONS: Dict[LeadStatus, frozenset] = {
    LeadStatus.NEW: frozenset({LeadStatus.ROUTED, LeadStatus.STALE}),
    LeadStatus.ROUTED: frozenset({LeadStatus.CONTACTED, LeadStatus.STALE}),
    LeadStatus.CONTACTED: frozenset({LeadStatus.CONVERTED, LeadStatus.STALE}),
    LeadStatus.CONVERTED: frozenset(),
    LeadStatus.STALE: frozenset({LeadStatus.ROUTED, LeadStatus.CONTACTED}),
}

STATUS_TIMESTAMPS = {
    LeadStatus.ROUTED: "routed_at",
    LeadStatus.CONTACTED: "contacted_at",
    LeadStatus.CONVERTED: "converted_at",
    LeadStatus.STALE: "stale_at",
}

SYSTEM_ACTOR = "system"


def can_transition(from_status: LeadStatus, to_status: LeadStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def subtract_business_days(moment: datetime, days: int) -> datetime:
    """Step back ``days`` weekdays from ``moment``, keeping the time of day."""
    result = moment
    remaining = days
    while remaining > 0:
        result -= timedelta(days=1)
        if result.weekday() < 5:
            remaining -= 1
    return result


def business_days_between(start: datetime, end: datetime) -> int:
    """Weekdays crossed going from ``start`` to ``end`` (0 when end <= start)."""
    count = 0
    cursor = start
    while True:
        cursor += timedelta(days=1)
        if cursor > end:
            return count
        if cursor.weekday() < 5:
            count += 1


class LifecycleManager:
    def __init__(self, repo: LeadRepository, notifier: NotificationClient, stale_threshold_days: int = 5):
        self.repo = repo
        self.notifier = notifier
        self.stale_threshold_days = stale_threshold_days

    def transition(self, lead_id: str, new_status, actor: str = SYSTEM_ACTOR, reason: Optional[str] = None,
                   expected_status: Optional[LeadStatus] = None) -> None:
        """Move a lead to ``new_status`` and append its audit record, atomically.

        ``expected_status`` additionally requires the lead to still be in that
        status when the row is locked.

        Raises:
            NotFoundError: lead does not exist
            InvalidTransitionError: move not allowed from the current status
            ValidationError: unknown status name
        """
        try:
            new_status = LeadStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown lead status: {new_status}")
        now = utcnow()

        with self.repo.transaction() as session:
            lead = self.repo.lock_lead(session, lead_id)
            current = lead.status

            if expected_status is not None and current != expected_status:
                raise InvalidTransitionError(current, new_status)
            if not can_transition(current, new_status):
                raise InvalidTransitionError(current, new_status)

            field = STATUS_TIMESTAMPS[new_status]
            if getattr(lead, field) is None:
                setattr(lead, field, now)
            lead.status = new_status
            lead.updated_at = now

            session.add(LeadStatusChange(
                lead_id=lead_id,
                from_status=current,
                to_status=new_status,
                changed_by=actor,
                reason=reason,
                created_at=now,
            ))

        logger.info(f"Lead {lead_id}: {current.value} -> {new_status.value} by {actor}")

    def stale_cutoff(self, now: Optional[datetime] = None) -> datetime:
        return subtract_business_days(now or utcnow(), self.stale_threshold_days)

    def detect_stale_leads(self, now: Optional[datetime] = None) -> int:
        """Mark ROUTED leads untouched past the threshold as STALE and remind their reps.

        One batched reminder per rep. Returns the number of leads staled.
        """
        now = now or utcnow()
        cutoff = self.stale_cutoff(now)
        overdue = self.repo.list_overdue_routed_leads(cutoff)
        reason = f"No action for {self.stale_threshold_days}+ business days"

        by_rep: "OrderedDict[str, List]" = OrderedDict()
        staled = 0

        for lead in overdue:
            try:
                self.transition(lead.id, LeadStatus.STALE, SYSTEM_ACTOR, reason, expected_status=LeadStatus.ROUTED)
            except InvalidTransitionError as e:
                # Lead moved on between the query and the update
                logger.info(f"Skipping stale mark for lead {lead.id}: {e}")
                continue
            staled += 1
            if lead.assigned_rep is not None:
                by_rep.setdefault(lead.assigned_rep.id, []).append(lead)

        for leads in by_rep.values():
            rep = leads[0].assigned_rep
            details = [
                {
                    "id": l.id,
                    "name": l.full_name,
                    "firm_name": l.firm_name,
                    "days_since_routed": business_days_between(l.routed_at, now) if l.routed_at else self.stale_threshold_days,
                }
                for l in leads
            ]
            try:
                self.notifier.send_stale_reminder(rep.email, rep.name, details)
            except Exception as e:
                logger.error(f"Failed to send stale reminder to {rep.name}: {e}")

        logger.info(f"Detected {staled} stale leads across {len(by_rep)} reps")
        return staled
