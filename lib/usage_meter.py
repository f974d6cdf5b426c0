"""Best-effort usage metering against OpenMeter's HTTP API."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from lib.config import OPENMETER_BASE_URL, OPENMETER_TOKEN

logger = logging.getLogger(__name__)

AGENT_REQUESTS_EVENT = "agent_requests"
EVENT_SOURCE = "salescoach-agent"


class UsageMeter:
    """
    Sends ``agent_requests`` CloudEvents for a user.

    Metering never fails a request: every error is logged and dropped. The
    meter is disabled when no token is configured.
    """

    def __init__(
        self,
        token: Optional[str] = OPENMETER_TOKEN,
        base_url: str = OPENMETER_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout = timeout
        # Customers already created (or found) in this process
        self._known_customers: Set[str] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        return self._client

    async def ensure_customer(self, subject: str, display_name: Optional[str] = None) -> bool:
        if subject in self._known_customers:
            return True
        response = await self._http().post(
            "/api/v1/customers",
            json={
                "key": subject,
                "name": display_name or subject,
                "usageAttribution": {"subjectKeys": [subject]},
            },
        )
        if response.status_code == 409 or "already exists" in response.text:
            self._known_customers.add(subject)
            return True
        if response.is_error:
            logger.warning("OpenMeter customer creation returned %s: %s", response.status_code, response.text[:200])
            # Do not retry creation for this subject on every request
            self._known_customers.add(subject)
            return False
        self._known_customers.add(subject)
        logger.info("OpenMeter customer created: %s", subject)
        return True

    async def ingest(self, event_type: str, subject: str, data: Dict[str, Any]) -> None:
        event = {
            "specversion": "1.0",
            "id": str(uuid.uuid4()),
            "source": EVENT_SOURCE,
            "type": event_type,
            "subject": subject,
            "time": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }
        response = await self._http().post(
            "/api/v1/events",
            json=event,
            headers={"Content-Type": "application/cloudevents+json"},
        )
        response.raise_for_status()

    async def track_agent_request(
        self,
        user_id: str,
        prompt_tokens: int,
        completion_tokens: int,
        model: str,
        company_id: Optional[Any] = None,
    ) -> bool:
        """Record one completed agent request; returns False when it was not sent."""
        if not self.enabled or not user_id:
            return False
        data: Dict[str, Any] = {
            "promptTokens": prompt_tokens,
            "completionTokens": completion_tokens,
            "totalTokens": prompt_tokens + completion_tokens,
            "model": model,
            "count": 1,
        }
        if company_id is not None:
            data["companyId"] = company_id
        try:
            await self.ensure_customer(user_id)
            await self.ingest(AGENT_REQUESTS_EVENT, user_id, data)
        except Exception as exc:  # surfaced in logs only
            logger.warning("OpenMeter tracking failed: %s: %s", type(exc).__name__, exc)
            return False
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
