from graph.state import RoutingState
from services.brands import brand_label
from services.scoring import score_label
from tools.notifications import NotificationClient
from loguru import logger

def notify(state: RoutingState, notifier: NotificationClient, app_url: str) -> RoutingState:
    """Alert the assigned rep. Failures are logged and dropped."""
    lead = state.get("lead", {})
    rep = state.get("rep") or {}
    lead_id = state.get("lead_id")
    total = state.get("score", {}).get("total", 0)

    payload = {
        "rep_name": rep.get("name"),
        "rep_email": rep.get("email"),
        "lead": {
            "id": lead_id,
            "name": f"{lead.get('first_name', '')} {lead.get('last_name', '')}".strip(),
            "title": lead.get("title"),
            "firm_name": lead.get("firm_name"),
            "research_interest": brand_label(state.get("brand")),
            "lead_score": total,
            "score_label": score_label(total),
            "is_existing_account": bool(state.get("account")),
            "score_breakdown": state.get("score", {}),
        },
        "dashboard_url": f"{app_url}/leads/{lead_id}",
    }

    try:
        notifier.send_lead_alert(payload)
        state.setdefault("notifications", []).append(f"lead_alert:{rep.get('email')}")

    except Exception as e:
        error_msg = f"Rep notification failed: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)

    return state
