from typing import Optional

AFFILIATE_BRANDS = {
    "cannonball": {"name": "Cannonball", "sector": "Adtech"},
    "fermium": {"name": "Fermium", "sector": "Chemicals"},
    "fftt": {"name": "FFTT", "sector": "Macro"},
    "glj": {"name": "GLJ", "sector": "Solar/EV/Steel"},
    "hjones": {"name": "HJones", "sector": "Agriculture"},
    "ironadvisor": {"name": "IronAdvisor", "sector": "Industrials"},
    "lightshed": {"name": "LightShed", "sector": "Media/Telecom"},
    "optimal": {"name": "Optimal", "sector": "Consumer"},
    "rubinson": {"name": "Rubinson", "sector": "Consumer"},
    "sankey": {"name": "Sankey", "sector": "Energy"},
    "schneider": {"name": "Schneider", "sector": "Energy"},
}

# Scanned in order; the first keyword contained in the input wins.
KEYWORD_BRAND_MAP = {
    "cannonball": "cannonball",
    "fermium": "fermium",
    "fftt": "fftt",
    "glj": "glj",
    "hjones": "hjones",
    "ironadvisor": "ironadvisor",
    "lightshed": "lightshed",
    "optimal": "optimal",
    "rubinson": "rubinson",
    "sankey": "sankey",
    "schneider": "schneider",
    "adtech": "cannonball",
    "ad tech": "cannonball",
    "advertising": "cannonball",
    "chemicals": "fermium",
    "chemical": "fermium",
    "macro": "fftt",
    "macroeconomic": "fftt",
    "solar": "glj",
    "ev": "glj",
    "electric vehicle": "glj",
    "steel": "glj",
    "agriculture": "hjones",
    "farming": "hjones",
    "agri": "hjones",
    "industrials": "ironadvisor",
    "industrial": "ironadvisor",
    "media": "lightshed",
    "telecom": "lightshed",
    "telecommunications": "lightshed",
    # Rubinson also covers consumer; Optimal is the default
    "consumer": "optimal",
    # Schneider also covers energy; Sankey is the default
    "energy": "sankey",
    "oil": "sankey",
    "gas": "sankey",
    "oil & gas": "sankey",
    "utilities": "schneider",
    "power": "schneider",
}


def match_brand(research_interest: Optional[str]) -> Optional[str]:
    """Map free-text research interest to an affiliate brand slug, or None."""
    text = (research_interest or "").strip().lower()
    if not text:
        return None

    if text in AFFILIATE_BRANDS:
        return text

    for keyword, slug in KEYWORD_BRAND_MAP.items():
        if keyword in text:
            return slug

    return None


def brand_label(slug: Optional[str]) -> str:
    brand = AFFILIATE_BRANDS.get(slug or "")
    if brand:
        return f"{brand['name']} ({brand['sector']})"
    return slug or ""
