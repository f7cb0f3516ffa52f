from graph.state import RoutingState
from services.accounts import extract_domain, is_free_email_domain
from loguru import logger

def capture(state: RoutingState) -> RoutingState:
    """Normalize the lead snapshot into the fields routing works from."""
    lead = state.get("lead", {})
    logger.info(f"Starting capture for lead: {state.get('lead_id', 'unknown')}")

    email = (lead.get("email") or "").strip().lower()
    domain = extract_domain(email)

    state["normalized"] = {
        "email": email,
        "domain": domain,
        # Free-mail domains say nothing about the firm
        "business_domain": None if is_free_email_domain(domain) else (domain or None),
        "firm_name": (lead.get("firm_name") or "").strip(),
    }
    state.setdefault("errors", [])
    state.setdefault("notifications", [])

    logger.info(f"Capture completed for {state.get('lead_id')}: domain={domain or 'none'}")
    return state
