from graph.state import RoutingState

PROFILE_FIELDS = ("city", "state", "country", "firm_type", "aum")
DEFAULT_COUNTRY = "US"

def _first(*values):
    for value in values:
        if value not in (None, ""):
            return value
    return None

def resolve_profile(state: RoutingState) -> RoutingState:
    """Pick each location/firm field from the lead, then enrichment, then the account."""
    lead = state.get("lead", {})
    enrichment = state.get("enrichment") or {}
    account = state.get("account") or {}

    profile = {
        field: _first(lead.get(field), enrichment.get(field), account.get(field))
        for field in PROFILE_FIELDS
    }
    profile["country"] = (profile["country"] or DEFAULT_COUNTRY).strip().upper()
    if profile["state"]:
        profile["state"] = profile["state"].strip().upper()

    state["profile"] = profile
    return state
