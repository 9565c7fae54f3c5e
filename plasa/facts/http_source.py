"""
HTTP client for a JSON fact gateway.

Implements FactSource against a gateway that exposes ledger facts as:

    GET /anchors/latest                         -> {"height", "timestamp"}
    GET /anchors?timestamp=<t>                  -> {"height", "timestamp"}
    GET /facts/<kind>/<id>/<field>[?height=<h>] -> {"value", "anchor"}

404 means the fact is absent, 410 that the requested anchor is no longer
(or not yet) served.
"""
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from plasa.config.common_settings import FACT_READ_TIMEOUT, FACT_SOURCE_URL
from plasa.data_models.fact_schemas import Anchor, EntityKind, RawFact, normalize_address
from plasa.utils.logger import logger

from .base import AnchorUnavailable, FactNotFound, FactSource, FactSourceError


class HttpFactSource(FactSource):
    """
    Async HTTP client for the fact gateway.

    Provides methods to:
    - Read the latest anchor
    - Resolve the anchor at a timestamp
    - Read one fact as of the latest or a historical anchor
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = FACT_READ_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the fact gateway client.

        Args:
            base_url: Base URL of the gateway (default from FACT_SOURCE_URL)
            timeout: Request timeout in seconds
            client: Pre-built httpx client, mostly for tests
        """
        self.base_url = (base_url or FACT_SOURCE_URL).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _handle_response(self, response: httpx.Response) -> Dict[str, Any]:
        """
        Parse a gateway response and raise errors if needed.

        Raises:
            FactSourceError: on any status >= 400 or an unparseable body
        """
        try:
            data = response.json()
        except ValueError:
            data = {"error": "Failed to parse response", "raw": response.text}

        if response.status_code >= 400:
            error_msg = "Unknown error"
            if isinstance(data, dict):
                error_msg = data.get("message") or data.get("error") or error_msg
            raise FactSourceError(error_msg, response.status_code, data if isinstance(data, dict) else None)

        if not isinstance(data, dict):
            raise FactSourceError("Expected a JSON object", response.status_code)
        return data

    def _parse_anchor(self, payload: Any) -> Anchor:
        try:
            return Anchor.model_validate(payload)
        except ValidationError as e:
            raise FactSourceError(f"Invalid anchor payload: {e}", 502)

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            return await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"GET {url} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"[FactSource:http] GET {url} failed: {e}")
            raise FactSourceError(str(e), 503)

    async def latest_anchor(self) -> Anchor:
        response = await self._get(f"{self.base_url}/anchors/latest")
        return self._parse_anchor(self._handle_response(response))

    async def anchor_at(self, timestamp: int) -> Anchor:
        response = await self._get(f"{self.base_url}/anchors", params={"timestamp": timestamp})
        if response.status_code in (404, 410):
            raise AnchorUnavailable(None, f"no anchor served at or before {timestamp}")
        return self._parse_anchor(self._handle_response(response))

    async def read(
        self,
        entity_kind: Union[EntityKind, str],
        entity_id: str,
        field: str,
        anchor: Optional[Anchor] = None,
    ) -> RawFact:
        kind = entity_kind.value if isinstance(entity_kind, EntityKind) else str(entity_kind)
        entity = normalize_address(entity_id)
        url = f"{self.base_url}/facts/{kind}/{quote(entity, safe='')}/{quote(field, safe='')}"
        params = {"height": anchor.height} if anchor is not None else None

        response = await self._get(url, params=params)
        if response.status_code == 404:
            raise FactNotFound(kind, entity, field, anchor)
        if response.status_code == 410:
            raise AnchorUnavailable(anchor, "gone")

        data = self._handle_response(response)
        if "value" not in data:
            raise FactSourceError(f"Missing value for {kind}/{entity}/{field}", 502, data)
        return RawFact(value=data["value"], anchor=self._parse_anchor(data.get("anchor")))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()
