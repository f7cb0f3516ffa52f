from graph.state import RoutingState
from services.accounts import AccountMatcher
from loguru import logger

def match_account(state: RoutingState, matcher: AccountMatcher) -> RoutingState:
    """Link the lead to an existing account (domain, exact name, then prefix)."""
    norm = state.get("normalized", {})

    account = matcher.resolve(norm.get("firm_name"), norm.get("domain") or None)
    state["account"] = account.to_dict() if account else None

    logger.info(f"Account match for {state.get('lead_id')}: {account.firm_name if account else 'none'}")
    return state
