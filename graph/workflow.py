from functools import partial
from typing import Dict

from langgraph.graph import StateGraph, START, END
from loguru import logger

from db.models import LeadStatus
from db.repository import LeadRepository
from graph.state import RoutingState
from graph.nodes.capture import capture
from graph.nodes.enrich import enrich
from graph.nodes.match_account import match_account
from graph.nodes.resolve import resolve_profile
from graph.nodes.route import route
from graph.nodes.score import score
from graph.nodes.brand import brand
from graph.nodes.persist import persist
from graph.nodes.crm import sync_crm
from graph.nodes.notify import notify
from services.accounts import AccountMatcher
from services.territory import TerritoryMatcher
from tools.clearbit import EnrichmentClient
from tools.hubspot import HubSpotClient
from tools.idempotency import Idem
from tools.notifications import NotificationClient


def build_workflow(repo: LeadRepository, enricher: EnrichmentClient, crm: HubSpotClient,
                   notifier: NotificationClient, app_url: str):
    """Build the lead routing workflow."""
    workflow = StateGraph(RoutingState)

    # Add nodes
    workflow.add_node("capture", capture)
    workflow.add_node("enrich", partial(enrich, enricher=enricher))
    workflow.add_node("match_account", partial(match_account, matcher=AccountMatcher(repo)))
    workflow.add_node("resolve_profile", resolve_profile)
    workflow.add_node("route", partial(route, territories=TerritoryMatcher(repo)))
    workflow.add_node("score", score)
    workflow.add_node("brand", brand)
    workflow.add_node("persist", partial(persist, repo=repo))
    workflow.add_node("sync_crm", partial(sync_crm, crm=crm))
    workflow.add_node("notify", partial(notify, notifier=notifier, app_url=app_url))

    # Steps run strictly in order; each needs the previous one's output
    workflow.add_edge(START, "capture")
    workflow.add_edge("capture", "enrich")
    workflow.add_edge("enrich", "match_account")
    workflow.add_edge("match_account", "resolve_profile")
    workflow.add_edge("resolve_profile", "route")
    workflow.add_edge("route", "score")
    workflow.add_edge("score", "brand")
    workflow.add_edge("brand", "persist")

    # Downstream side effects only for leads that were actually routed
    def after_persist(state: RoutingState) -> str:
        return "sync_crm" if state.get("routed") else "end"

    workflow.add_conditional_edges("persist", after_persist, {"sync_crm": "sync_crm", "end": END})
    workflow.add_edge("sync_crm", "notify")
    workflow.add_edge("notify", END)

    return workflow.compile()


class LeadRouter:
    """Runs the routing workflow at most once per lead's NEW -> ROUTED transition.

    Webhook and sweep triggers may fire for the same lead concurrently. Three
    guards keep that safe: the in-flight marker (Idem), the status re-check
    after loading, and the conditional database claim that also holds across
    processes. Marker and claim are always released on exit.
    """

    def __init__(self, repo: LeadRepository, enricher: EnrichmentClient, crm: HubSpotClient,
                 notifier: NotificationClient, idem: Idem, app_url: str = "http://localhost:8000",
                 lease_seconds: int = 300, sweep_batch_size: int = 50):
        self.repo = repo
        self.idem = idem
        self.lease_seconds = lease_seconds
        self.sweep_batch_size = sweep_batch_size
        self.graph = build_workflow(repo, enricher, crm, notifier, app_url)

    def process_new_lead(self, lead_id: str) -> None:
        if not self.idem.acquire(lead_id, ttl=self.lease_seconds):
            logger.info(f"Lead {lead_id} is already being processed, skipping")
            return

        try:
            lead = self.repo.get_lead(lead_id)
            if lead.status != LeadStatus.NEW:
                logger.info(f"Lead {lead_id} already has status {lead.status.value}, skipping")
                return

            if not self.repo.claim_for_routing(lead_id, self.lease_seconds):
                logger.info(f"Lead {lead_id} is claimed by another worker, skipping")
                return

            try:
                logger.info(f"Starting workflow execution for lead: {lead_id}")
                result = self.graph.invoke({
                    "lead_id": lead_id,
                    "lead": lead.to_dict(),
                    "errors": [],
                    "notifications": [],
                })
                if result.get("errors"):
                    logger.warning(f"Lead {lead_id} routed with degraded steps: {result['errors']}")
            finally:
                self.repo.release_claim(lead_id)
        finally:
            self.idem.release(lead_id)

    def sweep_new_leads(self, limit: int = None) -> Dict[str, int]:
        """Route NEW leads that no trigger has completed yet, oldest first."""
        lead_ids = self.repo.list_unprocessed_new_leads(limit or self.sweep_batch_size)
        logger.info(f"Sweep found {len(lead_ids)} unprocessed leads")

        processed = 0
        errors = 0
        for lead_id in lead_ids:
            try:
                self.process_new_lead(lead_id)
                processed += 1
            except Exception as e:
                logger.error(f"Sweep failed to process lead {lead_id}: {e}")
                errors += 1

        return {"found": len(lead_ids), "processed": processed, "errors": errors}
