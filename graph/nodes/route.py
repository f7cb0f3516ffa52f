from graph.state import RoutingState
from services.territory import TerritoryMatcher
from loguru import logger

ACCOUNT_OWNER_TERRITORY = "Account Owner"

def route(state: RoutingState, territories: TerritoryMatcher) -> RoutingState:
    """Assign a rep: the matched account's owner first, then the territory owner."""
    logger.info(f"Starting routing for lead: {state.get('lead_id', 'unknown')}")

    account = state.get("account") or {}
    profile = state.get("profile", {})

    state["rep"] = None
    state["route_source"] = None
    state["territory_name"] = None

    if account.get("rep"):
        state["rep"] = account["rep"]
        state["route_source"] = "account"
        state["territory_name"] = account.get("territory") or ACCOUNT_OWNER_TERRITORY

    elif profile.get("state"):
        match = territories.resolve(profile["state"], profile.get("country"))
        if match:
            state["rep"] = match["rep"]
            state["route_source"] = "territory"
            state["territory_name"] = match["territory_name"]

    if state["rep"]:
        logger.info(f"Assigned {state['rep']['name']} via {state['route_source']} ({state['territory_name']})")
    else:
        logger.warning(f"No rep found for lead {state.get('lead_id')}, leaving it unrouted")

    return state
