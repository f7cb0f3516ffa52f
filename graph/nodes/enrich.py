from graph.state import RoutingState
from tools.clearbit import EnrichmentClient
from loguru import logger

def enrich(state: RoutingState, enricher: EnrichmentClient) -> RoutingState:
    """Best-effort firmographic enrichment; any failure leaves enrichment empty."""
    logger.info(f"Starting enrichment for lead: {state.get('lead_id', 'unknown')}")

    norm = state.get("normalized", {})

    try:
        data = enricher.enrich_firm(norm.get("business_domain"), norm.get("firm_name", ""))
        state["enrichment"] = dict(data) if data else None
        logger.info(f"Enrichment completed for {state.get('lead_id')}: {'hit' if data else 'no data'}")

    except Exception as e:
        error_msg = f"Enrichment failed: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)
        state["enrichment"] = None

    return state
