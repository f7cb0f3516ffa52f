from typing import TypedDict, Optional, List, Dict, Any

class RoutingState(TypedDict, total=False):
    """State shape for one run of the lead routing workflow."""
    lead_id: str
    lead: Dict[str, Any]                 # snapshot of the Lead row when the run started
    normalized: Dict[str, Any]           # email, domain, business_domain, firm_name
    enrichment: Optional[Dict[str, Any]] # FirmProfile from the enrichment provider
    account: Optional[Dict[str, Any]]    # matched Account, rep included
    profile: Dict[str, Any]              # resolved city/state/country/firm_type/aum
    rep: Optional[Dict[str, Any]]        # assigned SalesRep
    route_source: Optional[str]          # "account" | "territory"
    territory_name: Optional[str]
    score: Dict[str, int]                # breakdown plus total
    brand: str                           # brand slug, or the raw research interest
    routed: bool                         # True once persisted as ROUTED
    crm_contact_id: Optional[str]
    notifications: List[str]
    errors: List[str]
