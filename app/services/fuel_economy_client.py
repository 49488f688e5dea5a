import json
import logging
from typing import Any, Dict, Optional, Union

import httpx
import xmltodict
from xml.parsers.expat import ExpatError

from core.config import Settings
from core.retry import async_retry
from services.exceptions import CatalogFetchError, CatalogRecordNotFoundError, PayloadDecodeError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/xml, text/xml, application/json"

Payload = Union[str, bytes, Dict[str, Any], list]


def _decode_xml(text: str) -> Any:
    try:
        return xmltodict.parse(text)
    except ExpatError as e:
        raise PayloadDecodeError(f"invalid XML payload: {e}") from e


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise PayloadDecodeError(f"invalid JSON payload: {e}") from e


def decode_payload(payload: Payload, content_type: Optional[str] = None) -> Any:
    """
    Decode a catalog payload into Python structures.

    The content type decides first. Without a usable content type the
    leading character of the body decides. Structured payloads pass through.
    """
    if isinstance(payload, (dict, list)):
        return payload

    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PayloadDecodeError(f"payload is not UTF-8: {e}") from e

    media_type = (content_type or "").split(";")[0].strip().lower()
    if "xml" in media_type:
        return _decode_xml(payload)
    if "json" in media_type:
        return _decode_json(payload)

    text = payload.strip()
    if text.startswith("<"):
        return _decode_xml(text)
    if text.startswith(("[", "{")):
        return _decode_json(text)

    raise PayloadDecodeError(f"unrecognized payload starting with {text[:20]!r}")


def collapse_sequences(record: Dict[str, Any]) -> Dict[str, Any]:
    """Single element lists become scalars and empty lists become None."""
    flattened = {}
    for key, value in record.items():
        if isinstance(value, list) and len(value) == 1:
            value = value[0]
        elif isinstance(value, list) and not value:
            value = None
        flattened[key] = value
    return flattened


def extract_vehicle(decoded: Any) -> Optional[Dict[str, Any]]:
    """
    Pull the flat vehicle record out of a decoded payload.

    XML answers wrap the record in a <vehicle> root, JSON answers may or may
    not. A JSON array yields its first object.
    """
    if isinstance(decoded, list):
        decoded = next((item for item in decoded if isinstance(item, dict)), None)

    if not isinstance(decoded, dict):
        return None

    vehicle = decoded.get("vehicle", decoded)
    if isinstance(vehicle, list):
        vehicle = vehicle[0] if vehicle else None
    if not isinstance(vehicle, dict) or not vehicle:
        return None

    return collapse_sequences(vehicle)


class FuelEconomyClient:
    """Client for the fuel economy catalog, one record per sequential numeric ID."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = settings.catalog_url.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            headers={"Accept": ACCEPT_HEADER},
            timeout=settings.request_timeout,
        )
        self._fetch_with_retry = async_retry(
            max_attempts=max(settings.fetch_attempts, 1),
            base_delay=0.5,
            max_delay=5.0,
        )(self._fetch_once)

    async def _fetch_once(self, vehicle_id: int) -> Optional[Dict[str, Any]]:
        response = await self.http.get(f"{self.base_url}/{vehicle_id}", headers={"Accept": ACCEPT_HEADER})

        if response.status_code == 404:
            raise CatalogRecordNotFoundError(f"no catalog record at ID {vehicle_id}")
        if response.status_code == 429 or response.status_code >= 500:
            raise CatalogFetchError(f"catalog answered {response.status_code} for ID {vehicle_id}")
        if response.status_code >= 400:
            raise CatalogRecordNotFoundError(f"catalog answered {response.status_code} for ID {vehicle_id}")

        if not response.content.strip():
            return None

        decoded = decode_payload(response.content, response.headers.get("content-type"))
        return extract_vehicle(decoded)

    async def fetch_vehicle(self, vehicle_id: int) -> Optional[Dict[str, Any]]:
        """Fetch one catalog record. Raises CatalogFetchError, CatalogRecordNotFoundError or PayloadDecodeError."""
        return await self._fetch_with_retry(vehicle_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False
