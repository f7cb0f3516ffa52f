import os
import sys
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.models import Account, LeadStatus
from factories import add_account, add_lead, add_rep, add_territory, make_repo
from services.directory import DirectoryService
from services.errors import NotFoundError, ValidationError
from services.leads import LeadService

NOW = datetime(2024, 5, 15, 12, 0, 0)


class TestLeadService:
    def setup_method(self):
        self.repo = make_repo()
        self.notifier = MagicMock()
        self.service = LeadService(self.repo, self.notifier)
        self.ted = add_rep(self.repo, "Ted McCool")
        self.dana = add_rep(self.repo, "Dana Peak")

    def test_create_lead(self):
        lead = self.service.create_lead({
            "first_name": "Sam",
            "last_name": "Lee",
            "email": " Sam@Acme.com ",
            "firm_name": "Acme",
            "state": "il",
            "source": "webhook",
            "status": "CONVERTED",
        })

        stored = self.repo.get_lead(lead.id)
        assert stored.status == LeadStatus.NEW
        assert stored.email == "sam@acme.com"
        assert stored.state == "IL"
        assert stored.country is None
        assert stored.registration_type == "other"
        assert stored.research_interest == "unknown"

        detail = self.service.get_lead_detail(lead.id)
        assert len(detail["status_changes"]) == 1
        assert detail["status_changes"][0]["from_status"] is None
        assert detail["status_changes"][0]["to_status"] == "NEW"
        assert detail["status_changes"][0]["changed_by"] == "webhook"

    def test_create_lead_requires_fields(self):
        with pytest.raises(ValidationError, match="last_name, firm_name"):
            self.service.create_lead({"first_name": "Sam", "email": "sam@acme.com", "last_name": " "})

    def test_add_note(self):
        lead = add_lead(self.repo)

        self.service.add_note(lead.id, "Ted", "Left a voicemail")

        notes = self.service.get_lead_detail(lead.id)["notes"]
        assert [n["content"] for n in notes] == ["Left a voicemail"]
        assert notes[0]["author"] == "Ted"

    def test_add_note_to_missing_lead(self):
        with pytest.raises(NotFoundError):
            self.service.add_note("missing", "Ted", "hello")

    def test_add_empty_note(self):
        lead = add_lead(self.repo)
        with pytest.raises(ValidationError):
            self.service.add_note(lead.id, "Ted", "  ")

    def test_reassign_lead(self):
        lead = add_lead(self.repo, status=LeadStatus.ROUTED, assigned_rep_id=self.ted.id)

        self.service.reassign_lead(lead.id, self.dana.id, "manager")

        detail = self.service.get_lead_detail(lead.id)
        assert detail["assigned_rep"]["id"] == self.dana.id
        assert detail["status"] == "ROUTED"
        assert detail["notes"][0]["content"] == "Reassigned to Dana Peak"
        assert detail["notes"][0]["author"] == "manager"

    def test_reassign_to_missing_rep_changes_nothing(self):
        lead = add_lead(self.repo, assigned_rep_id=self.ted.id)

        with pytest.raises(NotFoundError):
            self.service.reassign_lead(lead.id, "missing", "manager")

        detail = self.service.get_lead_detail(lead.id)
        assert detail["assigned_rep"]["id"] == self.ted.id
        assert detail["notes"] == []

    def test_get_missing_lead(self):
        with pytest.raises(NotFoundError):
            self.service.get_lead_detail("missing")


class TestLeadQueries:
    def setup_method(self):
        self.repo = make_repo()
        self.service = LeadService(self.repo)
        self.ted = add_rep(self.repo, "Ted McCool")
        base = NOW - timedelta(days=3)
        self.leads = [
            add_lead(self.repo, first_name="Alice", email="alice@walleye.com", firm_name="Walleye Capital",
                     research_interest="glj", territory_match="Midwest", assigned_rep_id=self.ted.id,
                     status=LeadStatus.ROUTED, lead_score=90, created_at=base),
            add_lead(self.repo, first_name="Bob", email="bob@pine.com", firm_name="Pine River",
                     research_interest="sankey", territory_match="Midwest", status=LeadStatus.CONTACTED,
                     lead_score=40, created_at=base + timedelta(hours=1)),
            add_lead(self.repo, first_name="Carol", email="carol@summit.com", firm_name="Summit View",
                     research_interest="glj", status=LeadStatus.NEW, lead_score=10,
                     created_at=base + timedelta(hours=2)),
        ]

    def test_default_sort_is_newest_first(self):
        result = self.service.list_leads()
        assert [l["first_name"] for l in result["leads"]] == ["Carol", "Bob", "Alice"]
        assert result["total"] == 3

    def test_filters(self):
        assert self.service.list_leads(status="ROUTED")["total"] == 1
        assert self.service.list_leads(brand="glj")["total"] == 2
        assert self.service.list_leads(territory="Midwest")["total"] == 2
        assert self.service.list_leads(rep_id=self.ted.id)["leads"][0]["assigned_rep"]["name"] == "Ted McCool"

    def test_search_is_case_insensitive(self):
        assert [l["first_name"] for l in self.service.list_leads(search="PINE")["leads"]] == ["Bob"]
        assert self.service.list_leads(search="summit.com")["total"] == 1

    def test_sort_and_pagination(self):
        result = self.service.list_leads(sort_by="lead_score", sort_dir="asc", page=2, page_size=2)
        assert [l["first_name"] for l in result["leads"]] == ["Alice"]
        assert result["total"] == 3
        assert result["page"] == 2

    def test_unknown_sort_field_falls_back(self):
        result = self.service.list_leads(sort_by="password")
        assert result["leads"][0]["first_name"] == "Carol"

    def test_unknown_status_filter(self):
        with pytest.raises(ValidationError):
            self.service.list_leads(status="WON")

    def test_stale_list(self):
        add_lead(self.repo, first_name="Old", status=LeadStatus.STALE, stale_at=NOW - timedelta(days=2))
        add_lead(self.repo, first_name="Older", status=LeadStatus.STALE, stale_at=NOW - timedelta(days=5))

        assert [l["first_name"] for l in self.service.list_stale_leads()] == ["Old", "Older"]


class TestLeadAggregates:
    def setup_method(self):
        self.repo = make_repo()
        self.notifier = MagicMock()
        self.service = LeadService(self.repo, self.notifier)
        routed = NOW - timedelta(days=2)

        add_lead(self.repo, email="a@x.com", research_interest="glj", territory_match="Midwest",
                 status=LeadStatus.CONVERTED, routed_at=routed, contacted_at=routed + timedelta(hours=4),
                 created_at=NOW - timedelta(hours=5))
        add_lead(self.repo, email="b@x.com", research_interest="glj", territory_match="Midwest",
                 status=LeadStatus.CONTACTED, routed_at=routed, contacted_at=routed + timedelta(hours=2),
                 created_at=NOW - timedelta(days=2))
        add_lead(self.repo, email="c@x.com", research_interest="sankey", territory_match="Mountain",
                 status=LeadStatus.STALE, routed_at=routed, created_at=NOW - timedelta(days=20))
        add_lead(self.repo, email="d@x.com", research_interest="unknown", status=LeadStatus.NEW,
                 created_at=NOW - timedelta(hours=1))

    def test_dashboard_stats(self):
        stats = self.service.dashboard_stats(now=NOW)

        assert stats["total_leads"] == 4
        # Wednesday: week starts Monday the 13th
        assert stats["leads_this_week"] == 3
        assert stats["leads_this_month"] == 3
        assert stats["by_status"] == {"NEW": 1, "ROUTED": 0, "CONTACTED": 1, "CONVERTED": 1, "STALE": 1}
        assert stats["conversion_rate"] == 0.25
        assert stats["avg_hours_to_contact"] == 3.0
        assert stats["leads_by_brand"][0] == {"brand": "glj", "count": 2}
        assert stats["leads_by_territory"] == [
            {"territory": "Midwest", "count": 2},
            {"territory": "Mountain", "count": 1},
        ]

    def test_conversion_metrics(self):
        metrics = self.service.conversion_metrics()

        assert metrics["by_territory"]["Midwest"] == {"total": 2, "converted": 1, "conversion_rate": 0.5}
        assert metrics["by_territory"]["Unassigned"]["total"] == 1
        assert metrics["by_brand"]["sankey"]["converted"] == 0

    def test_daily_digest(self):
        digest = self.service.daily_digest(now=NOW)

        assert digest["date"] == "2024-05-15"
        assert digest["total_leads"] == 2
        assert digest["leads_by_territory"] == {"Midwest": 1, "Unassigned": 1}
        assert digest["leads_by_brand"] == {"glj": 1, "unknown": 1}
        assert digest["stale_leads"] == 1
        assert digest["conversion_rate"] == 0.25

    def test_send_daily_digest(self):
        digest = self.service.send_daily_digest(now=NOW)
        self.notifier.send_daily_digest.assert_called_once_with(digest)

    def test_digest_notification_failure_is_logged(self):
        self.notifier.send_daily_digest.side_effect = RuntimeError("smtp down")
        assert self.service.send_daily_digest(now=NOW)["total_leads"] == 2


class TestDirectoryService:
    def setup_method(self):
        self.repo = make_repo()
        self.directory = DirectoryService(self.repo)
        self.ted = add_rep(self.repo, "Ted McCool")
        self.dana = add_rep(self.repo, "Dana Peak")
        add_rep(self.repo, "Retired Rep", is_active=False)
        self.mountain = add_territory(self.repo, "Mountain", ["WY"], rep=self.dana)
        self.midwest = add_territory(self.repo, "Midwest", ["MN"])

    def test_list_reps(self):
        add_lead(self.repo, assigned_rep_id=self.ted.id)

        reps = self.directory.list_reps()

        assert [r["name"] for r in reps] == ["Dana Peak", "Ted McCool"]
        assert reps[1]["lead_count"] == 1

    def test_list_territories_by_name(self):
        territories = self.directory.list_territories()
        assert [t["name"] for t in territories] == ["Midwest", "Mountain"]
        assert territories[1]["rep"]["name"] == "Dana Peak"

    def test_assign_territory_rep(self):
        result = self.directory.assign_territory_rep(self.midwest.id, self.ted.id)
        assert result["rep"]["id"] == self.ted.id

        cleared = self.directory.assign_territory_rep(self.midwest.id, None)
        assert cleared["rep"] is None

    def test_assign_missing(self):
        with pytest.raises(NotFoundError):
            self.directory.assign_territory_rep("missing", self.ted.id)
        with pytest.raises(NotFoundError):
            self.directory.assign_territory_rep(self.midwest.id, "missing")

    def test_import_accounts(self):
        add_account(self.repo, "Walleye Capital", domain="walleyecapital.com", aum=100)

        result = self.directory.import_accounts([
            {"firm_name": "Walleye Capital LP", "domain": "WalleyeCapital.com", "aum": 4500, "rep_owner": "mccool"},
            {"firm_name": "Pine River", "state": "mn", "products": ["Sankey"]},
            {"domain": "noname.com"},
        ])

        assert result == {"imported": 2, "skipped": 1, "errors": []}
        with self.repo.session() as session:
            accounts = {a.firm_name: a for a in session.query(Account).all()}
        assert len(accounts) == 2
        assert accounts["Walleye Capital"].aum == 4500
        assert accounts["Walleye Capital"].rep_id == self.ted.id
        assert accounts["Pine River"].state == "MN"
        assert accounts["Pine River"].country == "US"
        assert accounts["Pine River"].products == ["Sankey"]

    def test_import_matches_by_exact_name(self):
        add_account(self.repo, "Summit View Partners")

        self.directory.import_accounts([{"firm_name": "summit view partners", "territory": "Northeast"}])

        with self.repo.session() as session:
            accounts = session.query(Account).all()
        assert len(accounts) == 1
        assert accounts[0].territory == "Northeast"

    def test_import_requires_list(self):
        with pytest.raises(ValidationError):
            self.directory.import_accounts([])
