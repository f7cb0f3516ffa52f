from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from db.models import Account, Lead, SalesRep, Territory, utcnow
from db.repository import LeadRepository
from services.errors import NotFoundError, ValidationError

# Fields an import may overwrite on an existing account
ACCOUNT_UPDATE_FIELDS = ("domain", "territory", "firm_type", "aum", "products")


class DirectoryService:
    """Reps, territories and accounts: the reference data routing reads from."""

    def __init__(self, repo: LeadRepository):
        self.repo = repo

    def list_reps(self) -> List[Dict[str, Any]]:
        """Active reps by name, each with the number of leads assigned to them."""
        with self.repo.session() as session:
            counts = dict(session.execute(
                select(Lead.assigned_rep_id, func.count(Lead.id))
                .where(Lead.assigned_rep_id.is_not(None))
                .group_by(Lead.assigned_rep_id)
            ).all())
            reps = session.scalars(
                select(SalesRep).where(SalesRep.is_active.is_(True)).order_by(SalesRep.name)
            ).all()
            return [{**rep.to_dict(), "lead_count": counts.get(rep.id, 0)} for rep in reps]

    def list_territories(self) -> List[Dict[str, Any]]:
        with self.repo.session() as session:
            territories = session.scalars(
                select(Territory).options(selectinload(Territory.rep)).order_by(Territory.name)
            ).all()
            return [t.to_dict() for t in territories]

    def assign_territory_rep(self, territory_id: str, rep_id: Optional[str]) -> Dict[str, Any]:
        """Hand a territory to ``rep_id``; ``None`` leaves it unowned."""
        with self.repo.transaction() as session:
            territory = session.get(Territory, territory_id)
            if territory is None:
                raise NotFoundError("Territory", territory_id)
            if rep_id and session.get(SalesRep, rep_id) is None:
                raise NotFoundError("SalesRep", rep_id)

            territory.rep_id = rep_id or None
            session.flush()
            session.refresh(territory)
            result = territory.to_dict()

        logger.info(f"Territory {result['name']} assigned to {result['rep']['name'] if result['rep'] else 'nobody'}")
        return result

    def import_accounts(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Upsert accounts from a list of dicts.

        An existing account is matched by domain, then by exact firm name
        (both case-insensitive). ``rep_owner`` is resolved to the first rep
        whose name contains it. Records without ``firm_name`` are skipped;
        a record that fails to save is skipped and reported in ``errors``.
        """
        if not isinstance(records, list) or not records:
            raise ValidationError("accounts array is required")

        imported = 0
        skipped = 0
        errors: List[str] = []

        for record in records:
            firm_name = (record.get("firm_name") or "").strip()
            if not firm_name:
                skipped += 1
                continue
            try:
                self._upsert_account(firm_name, record)
                imported += 1
            except Exception as e:
                logger.error(f"Failed to import account {firm_name}: {e}")
                errors.append(f"Failed to import {firm_name}: {e}")
                skipped += 1

        logger.info(f"Account import finished: {imported} imported, {skipped} skipped")
        return {"imported": imported, "skipped": skipped, "errors": errors[:10]}

    def _upsert_account(self, firm_name: str, record: Dict[str, Any]) -> None:
        domain = (record.get("domain") or "").strip().lower() or None

        with self.repo.transaction() as session:
            rep_id = None
            if record.get("rep_owner"):
                pattern = f"%{record['rep_owner'].strip().lower()}%"
                rep = session.scalars(
                    select(SalesRep).where(func.lower(SalesRep.name).like(pattern)).order_by(SalesRep.name).limit(1)
                ).first()
                rep_id = rep.id if rep else None

            account = None
            if domain:
                account = session.scalars(
                    select(Account).where(func.lower(Account.domain) == domain).limit(1)
                ).first()
            if account is None:
                account = session.scalars(
                    select(Account).where(func.lower(Account.firm_name) == firm_name.lower()).limit(1)
                ).first()

            values = {
                "domain": domain,
                "territory": record.get("territory"),
                "firm_type": record.get("firm_type"),
                "aum": record.get("aum"),
                "products": record.get("products"),
            }

            if account is None:
                session.add(Account(
                    firm_name=firm_name,
                    rep_id=rep_id,
                    status=record.get("status") or "active",
                    city=record.get("city"),
                    state=(record.get("state") or "").strip().upper() or None,
                    country=(record.get("country") or "US").strip().upper(),
                    domain=values["domain"],
                    territory=values["territory"],
                    firm_type=values["firm_type"],
                    aum=values["aum"],
                    products=values["products"] or [],
                ))
                return

            # Only provided values overwrite what is stored
            for field in ACCOUNT_UPDATE_FIELDS:
                if values[field] not in (None, "", []):
                    setattr(account, field, values[field])
            if rep_id:
                account.rep_id = rep_id
            account.updated_at = utcnow()
