import httpx
from typing import Any, Dict, List, Optional, Sequence, TypedDict
from loguru import logger


class AlertLead(TypedDict, total=False):
    id: str
    name: str
    title: Optional[str]
    firm_name: str
    research_interest: str
    lead_score: int
    score_label: str
    is_existing_account: bool
    score_breakdown: Dict[str, int]


class LeadAlert(TypedDict):
    rep_name: str
    rep_email: str
    lead: AlertLead
    dashboard_url: str


class StaleLead(TypedDict):
    id: str
    name: str
    firm_name: str
    days_since_routed: int


class DailyDigest(TypedDict):
    date: str
    total_leads: int
    leads_by_territory: Dict[str, int]
    leads_by_brand: Dict[str, int]
    stale_leads: int
    conversion_rate: float


class NotificationClient:
    """Outbound notifications to reps and leadership."""

    def send_lead_alert(self, payload: LeadAlert) -> None:
        raise NotImplementedError

    def send_stale_reminder(self, rep_email: str, rep_name: str, leads: List[StaleLead]) -> None:
        raise NotImplementedError

    def send_daily_digest(self, payload: DailyDigest) -> None:
        raise NotImplementedError


class ConsoleNotifier(NotificationClient):
    """Writes notifications to the log. Default for development."""

    def send_lead_alert(self, payload: LeadAlert) -> None:
        lead = payload["lead"]
        account = "EXISTING" if lead.get("is_existing_account") else "New Prospect"
        logger.info(
            f"LEAD ALERT to {payload['rep_name']} <{payload['rep_email']}>: "
            f"{lead['name']} at {lead['firm_name']} | score {lead['lead_score']} | "
            f"account {account} | {payload['dashboard_url']}"
        )

    def send_stale_reminder(self, rep_email: str, rep_name: str, leads: List[StaleLead]) -> None:
        summary = ", ".join(f"{l['name']} ({l['days_since_routed']}d)" for l in leads)
        logger.info(f"STALE REMINDER to {rep_name} <{rep_email}>: {len(leads)} lead(s): {summary}")

    def send_daily_digest(self, payload: DailyDigest) -> None:
        logger.info(
            f"DAILY DIGEST {payload['date']}: {payload['total_leads']} new leads, "
            f"conversion {payload['conversion_rate'] * 100:.1f}%, "
            f"{payload['stale_leads']} stale"
        )


class EmailNotifier(NotificationClient):
    """Email notifications through the Resend HTTP API."""

    def __init__(self, api_key: Optional[str], from_email: str, leadership_email: Optional[str] = None,
                 timeout: float = 10.0, base_url: str = "https://api.resend.com"):
        self.api_key = api_key
        self.from_email = from_email
        self.leadership_email = leadership_email
        self.timeout = timeout
        self.base_url = base_url

        if not self.api_key:
            logger.warning("RESEND_API_KEY not set, emails will fail")

    def _send(self, to: str, subject: str, html: str) -> None:
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(
                f"{self.base_url}/emails",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.from_email, "to": to, "subject": subject, "html": html},
            )
        if response.is_error:
            raise RuntimeError(f"Resend API error {response.status_code}: {response.text}")

    def send_lead_alert(self, payload: LeadAlert) -> None:
        lead = payload["lead"]
        title = f" - {lead['title']}" if lead.get("title") else ""
        account = "Existing Account" if lead.get("is_existing_account") else "New Prospect"
        html = (
            "<h2>New Lead Assigned</h2>"
            "<table>"
            f"<tr><td>Contact</td><td><b>{lead['name']}{title}</b></td></tr>"
            f"<tr><td>Firm</td><td><b>{lead['firm_name']}</b></td></tr>"
            f"<tr><td>Research Interest</td><td>{lead.get('research_interest', '')}</td></tr>"
            f"<tr><td>Lead Score</td><td>{lead['lead_score']} ({lead.get('score_label', '')})</td></tr>"
            f"<tr><td>Account Status</td><td>{account}</td></tr>"
            "</table>"
            f"<p><a href=\"{payload['dashboard_url']}\">View Lead Details</a></p>"
        )
        self._send(
            payload["rep_email"],
            f"New Lead: {lead['name']} at {lead['firm_name']} (Score: {lead['lead_score']})",
            html,
        )

    def send_stale_reminder(self, rep_email: str, rep_name: str, leads: List[StaleLead]) -> None:
        rows = "".join(
            f"<tr><td>{l['name']}</td><td>{l['firm_name']}</td><td>{l['days_since_routed']}d</td></tr>"
            for l in leads
        )
        html = (
            "<h2>Stale Lead Reminder</h2>"
            f"<p>Hi {rep_name}, you have <b>{len(leads)}</b> lead(s) awaiting action:</p>"
            f"<table><tr><th>Contact</th><th>Firm</th><th>Days</th></tr>{rows}</table>"
        )
        self._send(rep_email, f"Action Required: {len(leads)} stale lead(s) need attention", html)

    def send_daily_digest(self, payload: DailyDigest) -> None:
        if not self.leadership_email:
            logger.warning("No LEADERSHIP_EMAIL set for daily digest")
            return
        rows = "".join(
            f"<tr><td>{name}</td><td>{count}</td></tr>"
            for name, count in payload["leads_by_territory"].items()
        )
        html = (
            f"<h2>Daily Lead Digest - {payload['date']}</h2>"
            f"<p><b>New Leads:</b> {payload['total_leads']}</p>"
            f"<p><b>Conversion Rate:</b> {payload['conversion_rate'] * 100:.1f}%</p>"
            f"<p><b>Stale Leads:</b> {payload['stale_leads']}</p>"
            f"<h3>By Territory</h3><table><tr><th>Territory</th><th>Leads</th></tr>{rows}</table>"
        )
        self._send(self.leadership_email, f"Lead Digest - {payload['date']}", html)


class CompositeNotifier(NotificationClient):
    """Fans out to several channels; one channel failing does not stop the others."""

    def __init__(self, clients: Sequence[NotificationClient]):
        self.clients = list(clients)

    def _fan_out(self, method: str, *args: Any) -> None:
        for client in self.clients:
            try:
                getattr(client, method)(*args)
            except Exception as e:
                logger.error(f"{type(client).__name__}.{method} failed: {e}")

    def send_lead_alert(self, payload: LeadAlert) -> None:
        self._fan_out("send_lead_alert", payload)

    def send_stale_reminder(self, rep_email: str, rep_name: str, leads: List[StaleLead]) -> None:
        self._fan_out("send_stale_reminder", rep_email, rep_name, leads)

    def send_daily_digest(self, payload: DailyDigest) -> None:
        self._fan_out("send_daily_digest", payload)


def build_notifier(settings) -> NotificationClient:
    """Compose the notification channels named in NOTIFICATION_CHANNEL."""
    from tools.slack import SlackNotifier

    channel = settings.notification_channel
    names = ["email", "console"] if channel == "both" else [c.strip() for c in channel.split(",") if c.strip()]

    clients: List[NotificationClient] = []
    for name in names:
        if name == "console":
            clients.append(ConsoleNotifier())
        elif name == "email":
            clients.append(EmailNotifier(
                settings.resend_api_key,
                settings.notification_from_email,
                leadership_email=settings.leadership_email,
                timeout=settings.notification_timeout,
            ))
        elif name == "slack":
            clients.append(SlackNotifier(
                settings.slack_bot_token,
                default_channel=settings.slack_default_channel,
                timeout=settings.notification_timeout,
            ))
        else:
            logger.warning(f"Unknown notification channel '{name}', ignoring")

    if not clients:
        return ConsoleNotifier()
    if len(clients) == 1:
        return clients[0]
    return CompositeNotifier(clients)
