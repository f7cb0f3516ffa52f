from dataclasses import dataclass

from loguru import logger

from config import Settings
from db.database import create_db_engine, create_session_factory, init_db
from db.repository import LeadRepository
from graph.workflow import LeadRouter
from services.directory import DirectoryService
from services.leads import LeadService
from services.lifecycle import LifecycleManager
from tools.clearbit import build_enricher
from tools.hubspot import HubSpotClient
from tools.idempotency import Idem
from tools.notifications import NotificationClient, build_notifier


@dataclass
class Services:
    settings: Settings
    repo: LeadRepository
    idem: Idem
    notifier: NotificationClient
    router: LeadRouter
    lifecycle: LifecycleManager
    leads: LeadService
    directory: DirectoryService


def build_services(settings: Settings) -> Services:
    """Wire every collaborator once from settings."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    repo = LeadRepository(create_session_factory(engine))

    idem = Idem(settings.redis_url)
    notifier = build_notifier(settings)
    router = LeadRouter(
        repo,
        enricher=build_enricher(settings),
        crm=HubSpotClient(settings.hubspot_api_key, timeout=settings.crm_timeout),
        notifier=notifier,
        idem=idem,
        app_url=settings.app_url,
        lease_seconds=settings.routing_lease_seconds,
        sweep_batch_size=settings.sweep_batch_size,
    )

    logger.info(
        f"Services ready: enrichment={settings.enrichment_provider}, "
        f"notifications={settings.notification_channel}, redis={'yes' if idem.r else 'no'}"
    )
    return Services(
        settings=settings,
        repo=repo,
        idem=idem,
        notifier=notifier,
        router=router,
        lifecycle=LifecycleManager(repo, notifier, stale_threshold_days=settings.stale_threshold_days),
        leads=LeadService(repo, notifier),
        directory=DirectoryService(repo),
    )
