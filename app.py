import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import text

from config import get_settings
from services.container import Services, build_services
from services.errors import InvalidTransitionError, NotFoundError, ValidationError

VERSION = "1.0.0"


class LeadIn(BaseModel):
    first_name: str
    last_name: str
    email: str
    firm_name: str
    title: Optional[str] = None
    phone: Optional[str] = None
    registration_type: Optional[str] = None
    research_interest: Optional[str] = None
    source: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class LeadUpdate(BaseModel):
    status: Optional[str] = None
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    note: Optional[str] = None
    note_author: Optional[str] = None
    assign_to_rep_id: Optional[str] = None


class TerritoryUpdate(BaseModel):
    rep_id: Optional[str] = None


class AccountImport(BaseModel):
    accounts: List[Dict[str, Any]]


def _route_in_background(services: Services, lead_id: str) -> None:
    try:
        services.router.process_new_lead(lead_id)
    except Exception as e:
        # The sweep picks the lead up again
        logger.error(f"Background routing failed for lead {lead_id}: {e}")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the API. ``services`` is wired from the environment at startup when omitted."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            settings = get_settings()
            os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)
            logger.add(settings.log_file, rotation="1 day", retention="7 days", level=settings.log_level)
            app.state.services = build_services(settings)

        scheduler = None
        if app.state.services.settings.enable_scheduler:
            from scheduler import create_scheduler
            scheduler = create_scheduler(app.state.services)
            scheduler.start()

        logger.info("Lead router started")
        yield

        if scheduler is not None:
            scheduler.shutdown(wait=False)
        logger.info("Lead router stopped")

    app = FastAPI(
        title="Lead Router",
        description="Inbound lead routing, enrichment, scoring and lifecycle tracking",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    def svc(request: Request) -> Services:
        return request.app.state.services

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    @app.post("/webhooks/lead", status_code=201)
    def ingest_lead(payload: LeadIn, request: Request, background_tasks: BackgroundTasks):
        """Store a registration and route it after the response is sent."""
        services = svc(request)
        fields = payload.model_dump()
        fields["source"] = fields.get("source") or "webhook"
        logger.info(f"Received lead webhook: {payload.email}")

        lead = services.leads.create_lead(fields)
        background_tasks.add_task(_route_in_background, services, lead.id)
        return {"status": "success", "data": {"id": lead.id}, "message": "Lead received and processing"}

    @app.post("/leads", status_code=201)
    def create_lead(payload: LeadIn, request: Request, background_tasks: BackgroundTasks):
        services = svc(request)
        fields = payload.model_dump()
        fields["source"] = fields.get("source") or "api"

        lead = services.leads.create_lead(fields)
        background_tasks.add_task(_route_in_background, services, lead.id)
        return {"status": "success", "data": lead.to_dict()}

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    @app.get("/leads")
    def list_leads(
        request: Request,
        status: Optional[str] = None,
        brand: Optional[str] = None,
        territory: Optional[str] = None,
        rep_id: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        page: int = 1,
        page_size: int = 25,
    ):
        result = svc(request).leads.list_leads(
            status=status,
            brand=brand,
            territory=territory,
            rep_id=rep_id,
            search=search,
            sort_by=sort_by,
            sort_dir=sort_dir,
            page=page,
            page_size=page_size,
        )
        return {"status": "success", "data": result}

    @app.get("/leads/stale")
    def stale_leads(request: Request):
        return {"status": "success", "data": svc(request).leads.list_stale_leads()}

    @app.get("/leads/{lead_id}")
    def get_lead(lead_id: str, request: Request):
        return {"status": "success", "data": svc(request).leads.get_lead_detail(lead_id)}

    @app.patch("/leads/{lead_id}")
    def update_lead(lead_id: str, payload: LeadUpdate, request: Request):
        """Change status, add a note, and/or reassign, in that order."""
        services = svc(request)
        actor = payload.changed_by or "user"

        if payload.status:
            services.lifecycle.transition(lead_id, payload.status.upper(), actor, payload.reason)
        if payload.note:
            services.leads.add_note(lead_id, payload.note_author or "User", payload.note)
        if payload.assign_to_rep_id:
            services.leads.reassign_lead(lead_id, payload.assign_to_rep_id, actor)

        return {"status": "success", "data": services.leads.get_lead_detail(lead_id)}

    # ------------------------------------------------------------------
    # Reporting and reference data
    # ------------------------------------------------------------------

    @app.get("/stats")
    def stats(request: Request):
        services = svc(request)
        data = services.leads.dashboard_stats()
        data["conversion"] = services.leads.conversion_metrics()
        return {"status": "success", "data": data}

    @app.get("/reps")
    def reps(request: Request):
        return {"status": "success", "data": svc(request).directory.list_reps()}

    @app.get("/territories")
    def territories(request: Request):
        return {"status": "success", "data": svc(request).directory.list_territories()}

    @app.put("/territories/{territory_id}")
    def assign_territory(territory_id: str, payload: TerritoryUpdate, request: Request):
        data = svc(request).directory.assign_territory_rep(territory_id, payload.rep_id)
        return {"status": "success", "data": data}

    @app.post("/accounts/import")
    def import_accounts(payload: AccountImport, request: Request):
        return {"status": "success", "data": svc(request).directory.import_accounts(payload.accounts)}

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    @app.post("/cron/process-leads")
    def cron_process_leads(request: Request):
        start_time = time.time()
        result = svc(request).router.sweep_new_leads()
        processing_time = time.time() - start_time
        logger.info(f"Cron sweep completed in {processing_time:.2f}s: {result}")
        return {"status": "success", "data": result, "processing_time": processing_time}

    @app.post("/cron/stale-detection")
    def cron_stale_detection(request: Request):
        count = svc(request).lifecycle.detect_stale_leads()
        return {"status": "success", "data": {"stale_count": count}}

    @app.post("/cron/daily-digest")
    def cron_daily_digest(request: Request):
        return {"status": "success", "data": svc(request).leads.send_daily_digest()}

    @app.get("/health")
    def health(request: Request):
        """Health check endpoint."""
        services = svc(request)
        try:
            with services.repo.session() as session:
                session.execute(text("SELECT 1"))
            database = "connected"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            database = "disconnected"

        return {
            "status": "healthy" if database == "connected" else "degraded",
            "timestamp": time.time(),
            "version": VERSION,
            "services": {
                "database": database,
                "redis": "connected" if services.idem.r else "disconnected",
                "workflow": "ready",
            },
        }

    # ------------------------------------------------------------------
    # Error handlers
    # ------------------------------------------------------------------

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"status": "error", "message": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=400, content={"status": "error", "message": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"status": "error", "message": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) for err in exc.errors())
        return JSONResponse(status_code=400, content={"status": "error", "message": f"Invalid request: {fields}"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Lead Router")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
