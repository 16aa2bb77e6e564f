"""
Client HTTP asynchrone de l'API réservations (wizard, scripts, front de retour Stripe).
Branche le ConfirmationPoller sur GET /status et POST /verify.
"""
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from backend.config import BASE_URL
from backend.reservations.polling import ConfirmationPoller

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


# module backend.reservations.client
class ReservationApiClient:
    def __init__(
        self,
        base_url: str = BASE_URL,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ReservationApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Tuple[int, Dict[str, Any]]:
        response = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        return response.status_code, response.json() if response.content else {}

    async def quote(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        return await self._request("POST", "/quote", json=payload)

    async def submit(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        return await self._request("POST", "/reservations", json=payload)

    async def availability(self, pack_key: str, start_at: str, end_at: str) -> Tuple[int, Dict[str, Any]]:
        params = {"pack_key": pack_key, "start_at": start_at, "end_at": end_at}
        return await self._request("GET", "/availability", params=params)

    async def get_status(self, reservation_id: str) -> Optional[Dict[str, Any]]:
        """Statut stocké {id, status, has_session}; None si la réservation est inconnue."""
        status_code, data = await self._request("GET", f"/reservations/{reservation_id}/status")
        if status_code == 404:
            return None
        if status_code >= 400:
            raise httpx.HTTPStatusError(
                f"status read failed ({status_code})",
                request=httpx.Request("GET", f"{API_PREFIX}/reservations/{reservation_id}/status"),
                response=httpx.Response(status_code),
            )
        return data

    async def verify(self, reservation_id: str) -> Dict[str, Any]:
        """Demande au serveur de revérifier la session auprès de Stripe."""
        status_code, data = await self._request("POST", f"/reservations/{reservation_id}/verify")
        if status_code >= 400:
            # 429 (rate limit) ou 5xx: échec transitoire, compté dans le budget du polling
            return {"status": None, "verified": False, "error": data.get("detail") or f"HTTP {status_code}"}
        return data

    def poller_for(
        self,
        reservation_id: str,
        *,
        is_visible: Optional[Callable[[], bool]] = None,
        **options,
    ) -> ConfirmationPoller:
        return ConfirmationPoller(
            lambda: self.get_status(reservation_id),
            lambda: self.verify(reservation_id),
            is_visible=is_visible,
            **options,
        )
