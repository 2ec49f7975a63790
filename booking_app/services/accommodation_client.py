"""
Accommodation Service Client

Thin httpx wrapper around the accommodation service:
- auto-confirm policy lookup for a single accommodation
- ids of every accommodation owned by a host

Every transport or protocol failure is raised as PolicyLookupError; callers
decide the fallback.
"""

import logging
from typing import Dict, List, Optional

import httpx

from ..config import settings
from ..errors import PolicyLookupError
from ..utils.logging_config import request_id_var

logger = logging.getLogger(__name__)


class AccommodationClient:
    """Synchronous client for accommodation service lookups."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = (base_url or settings.accommodation_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.accommodation_timeout_seconds
        self.transport = transport

    def _get_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": "Booking-Service/1.0",
        }
        request_id = request_id_var.get()
        if request_id:
            headers["X-Request-ID"] = request_id
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _get_json(self, endpoint: str, token: Optional[str] = None):
        url = f"{self.base_url}{endpoint}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, headers=self._get_headers(token))
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Accommodation service returned {e.response.status_code} for {url}")
            raise PolicyLookupError(
                f"Accommodation service returned {e.response.status_code}",
                details={"url": url, "status_code": e.response.status_code}
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Accommodation service lookup failed for {url}: {e}")
            raise PolicyLookupError(
                f"Accommodation service lookup failed: {e}",
                details={"url": url}
            ) from e

    def is_auto_confirm(self, accommodation_id: str) -> bool:
        """
        Ask whether new requests for the accommodation are approved immediately.

        Raises:
            PolicyLookupError: on timeout, non-2xx response or malformed body
        """
        data = self._get_json(f"/api/accommodations/{accommodation_id}/auto-confirm")
        if isinstance(data, bool):
            return data
        if isinstance(data, dict) and isinstance(data.get("autoConfirm"), bool):
            return data["autoConfirm"]
        raise PolicyLookupError(
            "Malformed auto-confirm response",
            details={"accommodation_id": accommodation_id}
        )

    def get_host_accommodation_ids(self, host_id: str, token: Optional[str] = None) -> List[str]:
        """Ids of every accommodation owned by `host_id`."""
        data = self._get_json(f"/api/accommodations/host/{host_id}", token=token)
        if not isinstance(data, list):
            raise PolicyLookupError(
                "Malformed host accommodations response",
                details={"host_id": host_id}
            )
        return [str(item["id"]) if isinstance(item, dict) else str(item) for item in data]


def get_accommodation_client() -> AccommodationClient:
    """FastAPI dependency / factory for the default client."""
    return AccommodationClient()
