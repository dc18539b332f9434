"""
Client for the external activation service.

Answers "which of these emails are already activated over there" in one
batched call. Callers treat every failure as "nothing is activated".
"""
import logging
from typing import Iterable, Optional, Set

import httpx

from ..config.settings import settings

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/employer/activate_license"


class ActivationStatusClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.base_url)

    async def fetch_activated(self, emails: Iterable[str]) -> Set[str]:
        """
        Return the subset of ``emails`` the service reports as activated.

        Raises httpx errors on transport problems or non-2xx responses.
        """
        emails = list(emails)
        if not self.enabled or not emails:
            return set()

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}{STATUS_PATH}",
                json={"emails": emails},
                headers={"x-api-key": self.api_key},
            )
            response.raise_for_status()
            payload = response.json()

        results = ((payload or {}).get("data") or {}).get("results")
        if not isinstance(results, list):
            return set()
        requested = set(emails)
        activated = set()
        for result in results:
            if not isinstance(result, dict) or result.get("license_status") != "activated":
                continue
            email = (result.get("email") or "").strip().lower()
            if email in requested:
                activated.add(email)
        logger.info(f"Activation service reported {len(activated)}/{len(emails)} already activated")
        return activated


def build_activation_client() -> ActivationStatusClient:
    return ActivationStatusClient(
        base_url=settings.ACTIVATION_SERVICE_URL,
        api_key=settings.ACTIVATION_API_KEY,
        timeout=settings.ACTIVATION_TIMEOUT_SECONDS,
    )
