from graph.state import RoutingState
from services.scoring import score_lead
from loguru import logger

def score(state: RoutingState) -> RoutingState:
    """Score lead quality from account, firm, AUM, registration and routing outcome."""
    lead = state.get("lead", {})
    profile = state.get("profile", {})

    breakdown = score_lead(
        is_existing_account=bool(state.get("account")),
        firm_type=profile.get("firm_type"),
        aum=profile.get("aum"),
        registration_type=lead.get("registration_type"),
        has_territory_match=bool(state.get("rep")),
    )
    state["score"] = breakdown.to_dict()

    logger.info(f"Final score: {breakdown.total} for {state.get('lead_id')}")
    return state
