"""Builders for test databases and rows."""

import itertools
import os
import sys
from datetime import datetime, timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.database import create_db_engine, create_session_factory, init_db
from db.models import Account, Lead, LeadStatus, SalesRep, Territory
from db.repository import LeadRepository

_sequence = itertools.count()
BASE_TIME = datetime(2024, 1, 1, 9, 0, 0)


def make_repo(database_url: str = "sqlite://") -> LeadRepository:
    engine = create_db_engine(database_url)
    init_db(engine)
    return LeadRepository(create_session_factory(engine))


def _next_created_at() -> datetime:
    return BASE_TIME + timedelta(seconds=next(_sequence))


def add_rep(repo, name="Ted McCool", email=None, is_active=True) -> SalesRep:
    rep = SalesRep(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        is_active=is_active,
    )
    with repo.transaction() as session:
        session.add(rep)
    return rep


def add_territory(repo, name, regions, rep=None, country="US") -> Territory:
    territory = Territory(
        name=name,
        regions=regions,
        country=country,
        rep_id=rep.id if rep else None,
        created_at=_next_created_at(),
    )
    with repo.transaction() as session:
        session.add(territory)
    return territory


def add_account(repo, firm_name, domain=None, rep=None, **fields) -> Account:
    account = Account(
        firm_name=firm_name,
        domain=domain,
        rep_id=rep.id if rep else None,
        created_at=_next_created_at(),
        **fields,
    )
    with repo.transaction() as session:
        session.add(account)
    return account


def add_lead(repo, **fields) -> Lead:
    values = {
        "first_name": "Jane",
        "last_name": "Smith",
        "email": "jane.smith@example.com",
        "firm_name": "Example Capital",
        "registration_type": "trial",
        "research_interest": "unknown",
        "status": LeadStatus.NEW,
    }
    values.update(fields)
    lead = Lead(**values)
    with repo.transaction() as session:
        session.add(lead)
    return lead
