import httpx
from typing import Dict, Any, Optional
from urllib.parse import quote
from loguru import logger


class HubSpotClient:
    """HubSpot CRM integration client."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0,
                 base_url: str = "https://api.hubapi.com"):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url
        self._list_ids: Dict[str, str] = {}

        if not self.api_key:
            logger.warning("No HubSpot API key provided, using mock mode")

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for HubSpot API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, headers=self._get_headers(), timeout=self.timeout)

    def upsert_contact(self, first_name: str, last_name: str, email: str) -> Dict[str, Any]:
        """
        Create or update a contact keyed by email.

        Returns:
            Contact record with at least an ``id``
        """
        if not self.api_key:
            logger.info(f"Mock mode: would upsert HubSpot contact {email}")
            return {"id": f"mock-{email}", "email": email, "action": "created"}

        properties = {"email": email, "firstname": first_name, "lastname": last_name}

        with self._client() as client:
            existing = self._find_contact_by_email(client, email)
            if existing:
                contact_id = existing["id"]
                response = client.patch(
                    f"/crm/v3/objects/contacts/{contact_id}",
                    json={"properties": properties},
                )
                response.raise_for_status()
                logger.info(f"Updated existing contact {contact_id}")
                return {"id": contact_id, "email": email, "action": "updated"}

            response = client.post("/crm/v3/objects/contacts", json={"properties": properties})
            response.raise_for_status()
            contact_id = response.json().get("id")
            logger.info(f"Created new contact {contact_id}")
            return {"id": contact_id, "email": email, "action": "created"}

    def add_to_distribution_list(self, contact_id: str, list_name: str) -> None:
        """Add a contact to a static contact list, looked up by name."""
        if not self.api_key:
            logger.info(f"Mock mode: would add contact {contact_id} to list '{list_name}'")
            return

        with self._client() as client:
            list_id = self._list_id(client, list_name)
            response = client.put(
                f"/crm/v3/lists/{list_id}/memberships/add",
                json=[contact_id],
            )
            response.raise_for_status()
        logger.info(f"Added contact {contact_id} to list '{list_name}'")

    def _find_contact_by_email(self, client: httpx.Client, email: str) -> Optional[Dict[str, Any]]:
        """Find contact by email address."""
        response = client.post(
            "/crm/v3/objects/contacts/search",
            json={
                "filterGroups": [{
                    "filters": [{
                        "propertyName": "email",
                        "operator": "EQ",
                        "value": email
                    }]
                }]
            }
        )
        response.raise_for_status()
        results = response.json().get("results") or []
        return results[0] if results else None

    def _list_id(self, client: httpx.Client, list_name: str) -> str:
        if list_name in self._list_ids:
            return self._list_ids[list_name]

        # 0-1 is HubSpot's object type id for contacts
        response = client.get(f"/crm/v3/lists/object-type-id/0-1/name/{quote(list_name, safe='')}")
        response.raise_for_status()
        list_id = str(response.json()["list"]["listId"])
        self._list_ids[list_name] = list_id
        return list_id
