import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.models import Territory, parse_regions
from factories import add_account, add_rep, add_territory, make_repo
from services.accounts import AccountMatcher, extract_domain, is_business_email, is_free_email_domain
from services.territory import TerritoryMatcher


class TestTerritoryMatcher:
    """Region and Canadian fallback matching."""

    def setup_method(self):
        self.repo = make_repo()
        self.midwest_rep = add_rep(self.repo, "Ted McCool")
        self.mountain_rep = add_rep(self.repo, "Dana Peak")
        self.canada_rep = add_rep(self.repo, "Luc Tremblay")

        add_territory(self.repo, "Midwest", ["MN", "IL", "WI"], rep=self.midwest_rep)
        add_territory(self.repo, "Mountain", "WY, co, MT", rep=self.mountain_rep)
        add_territory(self.repo, "Orphaned", ["TX"])
        add_territory(self.repo, "Canada East", ["ON", "QC"], rep=self.canada_rep, country="CA")
        self.matcher = TerritoryMatcher(self.repo)

    def test_region_match(self):
        match = self.matcher.resolve("MN", "US")
        assert match["territory_name"] == "Midwest"
        assert match["rep"]["id"] == self.midwest_rep.id

    def test_region_match_is_case_insensitive(self):
        match = self.matcher.resolve(" co ", "US")
        assert match["territory_name"] == "Mountain"

    def test_first_territory_wins_on_overlap(self):
        add_territory(self.repo, "Overlap", ["MN"], rep=self.mountain_rep)
        match = self.matcher.resolve("MN", "US")
        assert match["territory_name"] == "Midwest"

    def test_territory_without_rep_is_ignored(self):
        assert self.matcher.resolve("TX", "US") is None

    def test_unknown_region(self):
        assert self.matcher.resolve("ZZ", "US") is None

    def test_missing_state(self):
        assert self.matcher.resolve(None, "US") is None
        assert self.matcher.resolve("  ", "CA") is None

    def test_canadian_fallback(self):
        match = self.matcher.resolve("BC", "CA")
        assert match["territory_name"] == "Canada East"
        assert match["rep"]["id"] == self.canada_rep.id

    def test_canadian_fallback_accepts_country_name(self):
        match = self.matcher.resolve("AB", "Canada")
        assert match["territory_name"] == "Canada East"

    def test_no_fallback_for_us(self):
        assert self.matcher.resolve("BC", "US") is None


class TestRegionParsing:
    def test_list(self):
        assert parse_regions(["mn", "IL", "mn"]) == ["MN", "IL"]

    def test_json_array_text(self):
        assert parse_regions('["ny", "nj"]') == ["NY", "NJ"]

    def test_comma_text(self):
        assert parse_regions("ny, nj ,") == ["NY", "NJ"]

    def test_territory_normalizes_on_assignment(self):
        territory = Territory(name="East", regions='["ny","ct"]')
        assert territory.regions == ["NY", "CT"]


class TestAccountMatcher:
    """Domain, exact name and guarded prefix matching."""

    def setup_method(self):
        self.repo = make_repo()
        self.rep = add_rep(self.repo, "Ted McCool")
        self.walleye = add_account(self.repo, "Walleye Capital", domain="walleyecapital.com", rep=self.rep)
        self.pine = add_account(self.repo, "Pine River Capital Management", domain="pinerivercap.com")
        self.sunshine = add_account(self.repo, "Sunshine Capital")
        self.ai = add_account(self.repo, "AI Capital Partners")
        self.gmail_firm = add_account(self.repo, "Gmail Holdings", domain="gmail.com")
        self.matcher = AccountMatcher(self.repo)

    def test_domain_match(self):
        account = self.matcher.resolve("Something Else", "WalleyeCapital.com")
        assert account.id == self.walleye.id
        assert account.rep.id == self.rep.id

    def test_free_mail_domain_is_not_a_firm_signal(self):
        assert self.matcher.resolve("Unrelated Firm LLC", "gmail.com") is None

    def test_exact_name_match(self):
        account = self.matcher.resolve("walleye capital", None)
        assert account.id == self.walleye.id

    def test_prefix_match_for_two_word_name(self):
        account = self.matcher.resolve("Pine River", None)
        assert account.id == self.pine.id

    def test_short_name_never_fuzzy_matches(self):
        assert self.matcher.resolve("AI", None) is None

    def test_no_substring_matching(self):
        assert self.matcher.resolve("Sun", None) is None
        assert self.matcher.resolve("Capital Management", None) is None

    def test_prefix_match_for_long_single_word(self):
        account = self.matcher.resolve("Sunshine", None)
        assert account.id == self.sunshine.id

    def test_prefix_wildcards_are_literal(self):
        assert self.matcher.resolve("Pine%River", None) is None

    def test_empty_name(self):
        assert self.matcher.resolve("", None) is None


class TestEmailDomains:
    def test_extract_domain(self):
        assert extract_domain("X@WalleyeCapital.com") == "walleyecapital.com"
        assert extract_domain("not-an-email") == ""
        assert extract_domain(None) == ""

    def test_free_mail(self):
        assert is_free_email_domain("Gmail.com")
        assert not is_free_email_domain("walleyecapital.com")

    def test_business_email(self):
        assert is_business_email("pm@walleyecapital.com")
        assert not is_business_email("pm@yahoo.com")
        assert not is_business_email("")
