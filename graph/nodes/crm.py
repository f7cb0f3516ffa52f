from graph.state import RoutingState
from tools.hubspot import HubSpotClient
from loguru import logger

def sync_crm(state: RoutingState, crm: HubSpotClient) -> RoutingState:
    """Upsert the contact and add it to the rep's distribution list. Never fatal."""
    lead = state.get("lead", {})
    rep = state.get("rep") or {}

    try:
        contact = crm.upsert_contact(
            first_name=lead.get("first_name", ""),
            last_name=lead.get("last_name", ""),
            email=lead.get("email", ""),
        )
        state["crm_contact_id"] = contact.get("id")
        crm.add_to_distribution_list(contact["id"], f"{rep.get('name')} - Sales")
        logger.info(f"CRM sync completed for {state.get('lead_id')}: {state['crm_contact_id']}")

    except Exception as e:
        error_msg = f"CRM sync failed: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)

    return state
