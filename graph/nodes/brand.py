from graph.state import RoutingState
from services.brands import match_brand

def brand(state: RoutingState) -> RoutingState:
    """Resolve the research interest to a brand slug, keeping the raw text otherwise."""
    raw = state.get("lead", {}).get("research_interest") or ""
    state["brand"] = match_brand(raw) or raw
    return state
