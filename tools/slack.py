from typing import Dict, Any, List, Optional
from loguru import logger
from slack_sdk.web import WebClient

from tools.notifications import DailyDigest, LeadAlert, NotificationClient, StaleLead


class SlackNotifier(NotificationClient):
    """Slack integration for sending lead notifications to sales teams."""

    def __init__(self, token: Optional[str], default_channel: str = "#sales-leads", timeout: float = 10.0):
        self.token = token
        self.default_channel = default_channel
        self.client = WebClient(token=token, timeout=int(timeout)) if token else None

        if not self.token:
            logger.warning("No Slack token provided, using mock mode")

    def _post(self, text: str, blocks: List[Dict[str, Any]], channel: Optional[str] = None) -> Optional[str]:
        target_channel = channel or self.default_channel
        if not self.client:
            logger.info(f"Mock mode: would post to {target_channel}: {text}")
            return None

        response = self.client.chat_postMessage(channel=target_channel, text=text, blocks=blocks)
        message_ts = response["ts"]
        logger.info(f"Slack notification sent to {target_channel}: {message_ts}")
        return message_ts

    def send_lead_alert(self, payload: LeadAlert) -> None:
        message = self._build_lead_message(payload)
        self._post(message["text"], message["blocks"])

    def send_stale_reminder(self, rep_email: str, rep_name: str, leads: List[StaleLead]) -> None:
        lines = "\n".join(
            f"• {l['name']} ({l['firm_name']}): {l['days_since_routed']} business days"
            for l in leads
        )
        text = f"{rep_name} has {len(leads)} stale lead(s) awaiting action"
        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": "Stale Lead Reminder"}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{rep_name}* <{rep_email}>\n{lines}"}},
        ]
        self._post(text, blocks)

    def send_daily_digest(self, payload: DailyDigest) -> None:
        territories = "\n".join(f"• {name}: {count}" for name, count in payload["leads_by_territory"].items())
        text = f"Daily lead digest {payload['date']}: {payload['total_leads']} new leads"
        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": f"Daily Lead Digest {payload['date']}"}},
            {
                "type": "section",
                "fields": [
                    _field("New Leads", payload["total_leads"]),
                    _field("Conversion", f"{payload['conversion_rate'] * 100:.1f}%"),
                    _field("Stale", payload["stale_leads"]),
                ]
            },
        ]
        if territories:
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"*By Territory:*\n{territories}"}})
        self._post(text, blocks)

    def _build_lead_message(self, payload: LeadAlert) -> Dict[str, Any]:
        """Build Slack message for lead notification."""
        lead = payload["lead"]
        score = lead.get("lead_score", 0)
        account = "Existing" if lead.get("is_existing_account") else "New Prospect"

        text = f"New Lead: {lead['name']} from {lead['firm_name']} (Score: {score})"
        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": "New Lead Assigned"}},
            {
                "type": "section",
                "fields": [
                    _field("Name", lead["name"]),
                    _field("Firm", lead["firm_name"]),
                    _field("Title", lead.get("title") or "Unknown"),
                    _field("Score", f"{score}/100 ({lead.get('score_label', '')})"),
                ],
            },
            {
                "type": "section",
                "fields": [
                    _field("Research Interest", lead.get("research_interest") or "Unknown"),
                    _field("Account", account),
                ],
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*Assigned to:* {payload['rep_name']}"}},
            {
                "type": "actions",
                "elements": [{
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Lead"},
                    "url": payload["dashboard_url"],
                    "style": "primary",
                }],
            },
        ]
        return {"text": text, "blocks": blocks}


def _field(label: str, value: Any) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}
