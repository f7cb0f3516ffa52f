import httpx
from typing import Dict, Any, List, Optional, TypedDict
from loguru import logger


class FirmProfile(TypedDict, total=False):
    firm_name: str
    domain: Optional[str]
    firm_type: Optional[str]
    aum: Optional[float]
    city: Optional[str]
    state: Optional[str]
    country: Optional[str]
    employee_count: Optional[int]
    founded: Optional[int]
    description: Optional[str]
    sector_focus: List[str]
    strategy: Optional[str]
    source: str


# Clearbit sub-industry -> our firm type
CLEARBIT_FIRM_TYPES = {
    "asset management": "asset_manager",
    "investment management": "asset_manager",
    "hedge funds": "hedge_fund",
    "hedge fund": "hedge_fund",
    "banking": "bank",
    "banks": "bank",
    "investment banking & brokerage": "bank",
    "insurance": "insurance",
    "family offices": "family_office",
    "pension funds": "pension",
    "financial planning": "ria",
    "investment advice": "ria",
}


class EnrichmentClient:
    """Firmographic lookup by domain or firm name."""

    def enrich_firm(self, domain: Optional[str], firm_name: str) -> Optional[FirmProfile]:
        raise NotImplementedError


class ClearbitEnricher(EnrichmentClient):
    """Firm enrichment via the Clearbit Company API."""

    def __init__(self, api_key: str, timeout: float = 5.0,
                 base_url: str = "https://company.clearbit.com/v2"):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url

    def enrich_firm(self, domain: Optional[str], firm_name: str) -> Optional[FirmProfile]:
        # Company API is keyed by domain only
        if not domain:
            logger.info(f"No domain for {firm_name}, skipping Clearbit lookup")
            return None

        with httpx.Client(timeout=self.timeout) as client:
            response = client.get(
                f"{self.base_url}/companies/find",
                params={"domain": domain},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        if response.status_code == 404:
            logger.info(f"Clearbit has no company for {domain}")
            return None
        response.raise_for_status()
        return self._to_profile(response.json(), domain, firm_name)

    def _to_profile(self, company: Dict[str, Any], domain: str, firm_name: str) -> FirmProfile:
        geo = company.get("geo") or {}
        category = company.get("category") or {}
        metrics = company.get("metrics") or {}
        sub_industry = (category.get("subIndustry") or category.get("industry") or "").lower()

        return {
            "firm_name": company.get("name") or firm_name,
            "domain": company.get("domain") or domain,
            "firm_type": CLEARBIT_FIRM_TYPES.get(sub_industry),
            # Clearbit does not report assets under management
            "aum": None,
            "city": geo.get("city"),
            "state": geo.get("stateCode"),
            "country": geo.get("countryCode"),
            "employee_count": metrics.get("employees"),
            "founded": company.get("foundedYear"),
            "description": company.get("description"),
            "sector_focus": list(company.get("tags") or []),
            "source": "clearbit",
        }


MOCK_FIRMS: Dict[str, FirmProfile] = {
    "logosglobal.com": {
        "firm_name": "Logos Global Management", "domain": "logosglobal.com",
        "firm_type": "hedge_fund", "aum": 3200, "city": "Chicago", "state": "IL", "country": "US",
        "employee_count": 45, "founded": 2008, "strategy": "Long/Short Equity",
        "description": "Long/short equity hedge fund focused on TMT and industrials",
        "sector_focus": ["technology", "industrials"],
    },
    "pinerivercap.com": {
        "firm_name": "Pine River Capital Management", "domain": "pinerivercap.com",
        "firm_type": "hedge_fund", "aum": 6800, "city": "Minneapolis", "state": "MN", "country": "US",
        "employee_count": 120, "founded": 2002, "strategy": "Multi-Strategy",
        "description": "Multi-strategy hedge fund", "sector_focus": ["multi-strategy"],
    },
    "walleyecapital.com": {
        "firm_name": "Walleye Capital", "domain": "walleyecapital.com",
        "firm_type": "hedge_fund", "aum": 4500, "city": "Minneapolis", "state": "MN", "country": "US",
        "employee_count": 200, "founded": 2005, "strategy": "Multi-Strategy",
        "description": "Multi-strategy investment firm", "sector_focus": ["multi-strategy"],
    },
    "crescentcap.ca": {
        "firm_name": "Crescent Capital Group", "domain": "crescentcap.ca",
        "firm_type": "asset_manager", "aum": 2100, "city": "Toronto", "state": "ON", "country": "CA",
        "employee_count": 35, "founded": 2011, "strategy": "Fundamental Long",
        "description": "Canadian asset manager focused on energy and resources",
        "sector_focus": ["energy", "resources"],
    },
    "summitviewpartners.com": {
        "firm_name": "Summit View Partners", "domain": "summitviewpartners.com",
        "firm_type": "asset_manager", "aum": 12000, "city": "New York", "state": "NY", "country": "US",
        "employee_count": 250, "founded": 1995, "strategy": "Large-Cap Growth",
        "description": "Large-cap equity manager", "sector_focus": ["equities"],
    },
    "peachtreeadvisors.com": {
        "firm_name": "Peachtree Advisors", "domain": "peachtreeadvisors.com",
        "firm_type": "ria", "aum": 450, "city": "Atlanta", "state": "GA", "country": "US",
        "employee_count": 12, "founded": 2014, "strategy": "Balanced",
        "description": "Registered investment advisor serving HNW clients",
        "sector_focus": ["wealth management"],
    },
    "midwestpension.org": {
        "firm_name": "Midwest State Pension Fund", "domain": "midwestpension.org",
        "firm_type": "pension", "aum": 28000, "city": "Columbus", "state": "OH", "country": "US",
        "employee_count": 60, "founded": 1970, "strategy": "Liability-Driven",
        "description": "State pension fund for public employees", "sector_focus": ["diversified"],
    },
}


class MockEnricher(EnrichmentClient):
    """Canned firm data for development and demos."""

    def __init__(self, firms: Optional[Dict[str, FirmProfile]] = None):
        self.firms = MOCK_FIRMS if firms is None else firms

    def enrich_firm(self, domain: Optional[str], firm_name: str) -> Optional[FirmProfile]:
        if domain:
            key = domain.lower()
            if key.startswith("www."):
                key = key[4:]
            if key in self.firms:
                logger.info(f"Mock enrichment found firm by domain: {key}")
                return {**self.firms[key], "source": "mock"}

        name = (firm_name or "").strip().lower()
        if name:
            for firm in self.firms.values():
                if firm["firm_name"].lower() == name:
                    logger.info(f"Mock enrichment found firm by name: {firm['firm_name']}")
                    return {**firm, "source": "mock"}

        logger.info(f"Mock enrichment has no data for {firm_name}")
        return None


class NullEnricher(EnrichmentClient):
    def enrich_firm(self, domain: Optional[str], firm_name: str) -> Optional[FirmProfile]:
        return None


def build_enricher(settings) -> EnrichmentClient:
    """Pick the enrichment provider named in settings."""
    provider = settings.enrichment_provider
    if provider == "none":
        return NullEnricher()
    if provider == "clearbit":
        if settings.clearbit_api_key:
            return ClearbitEnricher(settings.clearbit_api_key, timeout=settings.enrichment_timeout)
        logger.warning("No Clearbit API key, using mock enrichment")
    return MockEnricher()
