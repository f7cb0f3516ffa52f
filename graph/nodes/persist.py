from graph.state import RoutingState
from db.models import LeadStatus, LeadStatusChange, utcnow
from db.repository import LeadRepository
from loguru import logger

SYSTEM_ACTOR = "system"

def persist(state: RoutingState, repo: LeadRepository) -> RoutingState:
    """Write the routing outcome and, when routed, its audit record in one transaction.

    Errors propagate: the transaction rolls back and the lead stays NEW for
    the next sweep.
    """
    lead_id = state["lead_id"]
    rep = state.get("rep")
    account = state.get("account")
    profile = state.get("profile", {})
    enrichment = state.get("enrichment")
    norm = state.get("normalized", {})
    now = utcnow()

    state["routed"] = False

    with repo.transaction() as session:
        lead = repo.lock_lead(session, lead_id)
        if lead.status != LeadStatus.NEW:
            logger.warning(f"Lead {lead_id} moved to {lead.status.value} during routing, discarding result")
            return state

        lead.firm_domain = norm.get("business_domain") or lead.firm_domain
        lead.firm_type = profile.get("firm_type")
        lead.aum = profile.get("aum")
        lead.city = profile.get("city")
        lead.state = profile.get("state")
        lead.country = profile.get("country")
        lead.account_id = account["id"] if account else None
        lead.assigned_rep_id = rep["id"] if rep else None
        lead.territory_match = state.get("territory_name")
        lead.lead_score = state["score"]["total"]
        lead.score_breakdown = state["score"]
        lead.research_interest = state.get("brand") or lead.research_interest
        lead.enrichment_data = enrichment
        lead.enriched_at = now if enrichment else None
        lead.routing_attempted_at = now
        lead.processing_started_at = None

        if rep:
            lead.status = LeadStatus.ROUTED
            lead.routed_at = lead.routed_at or now
            if state.get("route_source") == "account":
                reason = f"Auto-routed to account owner ({account['firm_name']})"
            else:
                reason = f"Auto-routed by territory ({state.get('territory_name')})"
            session.add(LeadStatusChange(
                lead_id=lead_id,
                from_status=LeadStatus.NEW,
                to_status=LeadStatus.ROUTED,
                changed_by=SYSTEM_ACTOR,
                reason=reason,
                created_at=now,
            ))

    state["routed"] = bool(rep)
    logger.info(
        f"Lead {lead_id} persisted: score={state['score']['total']}, "
        f"rep={rep['name'] if rep else 'UNASSIGNED'}, territory={state.get('territory_name') or 'NONE'}"
    )
    return state
