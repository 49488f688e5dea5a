import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import Settings
from services.exceptions import RegistryFeedError

logger = logging.getLogger(__name__)


class RegistryClient:
    """Fetches the electric vehicle registry feed in a single request."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.url = settings.registry_url
        self.timeout = settings.request_timeout
        self._http = http_client

    async def fetch_vehicles(self) -> List[Dict[str, Any]]:
        if not self.url:
            raise RegistryFeedError("GET_VEHICLES_API_URL is not configured")

        try:
            if self._http is not None:
                response = await self._http.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise RegistryFeedError(f"registry feed request failed: {e}") from e
        except ValueError as e:
            raise RegistryFeedError(f"registry feed is not JSON: {e}") from e

        # The feed wraps its records in "result"
        records = payload.get("result") if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise RegistryFeedError("registry feed has no record list")

        logger.info(f"Fetched {len(records)} registry records")
        return records
