from typing import Optional, TypedDict

from loguru import logger

from db.repository import LeadRepository

CANADA = ("CA", "CANADA")


class TerritoryMatch(TypedDict):
    rep: dict
    territory_name: str


class TerritoryMatcher:
    """Maps a state/province code (and country) to the owning rep.

    Territories are scanned in creation order and the first one listing the
    code with a rep attached wins, so region lists must not overlap.
    Canadian leads whose province is not listed anywhere fall back to the
    first Canadian territory that has a rep.
    """

    def __init__(self, repo: LeadRepository):
        self.repo = repo

    def resolve(self, state: Optional[str], country: Optional[str] = None) -> Optional[TerritoryMatch]:
        if not state or not state.strip():
            return None

        code = state.strip().upper()
        territories = self.repo.list_territories()

        for territory in territories:
            if territory.rep is not None and code in (territory.regions or []):
                logger.debug(f"Region {code} matched territory '{territory.name}'")
                return {"rep": territory.rep.to_dict(), "territory_name": territory.name}

        if (country or "").strip().upper() in CANADA:
            for territory in territories:
                if territory.rep is not None and territory.country == "CA":
                    logger.debug(f"Canadian fallback: {code} -> territory '{territory.name}'")
                    return {"rep": territory.rep.to_dict(), "territory_name": territory.name}

        logger.info(f"No territory with a rep covers region {code} ({country or 'unknown country'})")
        return None
