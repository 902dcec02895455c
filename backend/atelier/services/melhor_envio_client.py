"""
Melhor Envio API Client

Thin async wrapper over the Melhor Envio v2 REST API:
- Account (me, balance)
- Rate calculation
- Cart / checkout / label generation and printing
- Cancellation
- Tracking

Every call is a single request with no retry: purchase, print and cancel
have real-world (billable) effects and must only be repeated by the operator.
All external API calls are logged; any non-2xx status, network failure or
non-JSON body raises CarrierAPIError.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from atelier.core.config import settings
from atelier.core.exceptions import CarrierAPIError

logger = logging.getLogger(__name__)

# Melhor Envio API URLs
MELHOR_ENVIO_PRODUCTION_URL = "https://melhorenvio.com.br/api/v2"
MELHOR_ENVIO_SANDBOX_URL = "https://sandbox.melhorenvio.com.br/api/v2"

# API endpoints
ME_PATH = "/me"
BALANCE_PATH = "/me/balance"
CALCULATE_PATH = "/me/shipment/calculate"
CART_PATH = "/me/cart"
CHECKOUT_PATH = "/me/shipment/checkout"
GENERATE_PATH = "/me/shipment/generate"
PRINT_PATH = "/me/shipment/print"
CANCEL_PATH = "/me/shipment/cancel"
TRACKING_PATH = "/me/shipment/tracking"

# Carrier error text is logged and returned, but capped
ERROR_TEXT_LIMIT = 500


@dataclass
class MelhorEnvioCredentials:
    """Melhor Envio API credentials."""
    token: str
    environment: str = "production"

    @property
    def base_url(self) -> str:
        if self.environment == "sandbox":
            return MELHOR_ENVIO_SANDBOX_URL
        return MELHOR_ENVIO_PRODUCTION_URL


class MelhorEnvioClient:
    """
    Melhor Envio API client authenticated with a personal access token.

    The HTTP client is created lazily and must be released with close().
    """

    def __init__(
        self,
        credentials: MelhorEnvioCredentials,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.credentials.base_url,
                timeout=settings.MELHOR_ENVIO_TIMEOUT_SECONDS,
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.credentials.token}",
                    "User-Agent": settings.MELHOR_ENVIO_USER_AGENT,
                },
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Any] = None,
        params: Optional[Dict] = None,
    ) -> Any:
        """Make authenticated API request and return the decoded JSON body."""
        client = await self._get_http_client()

        try:
            if method.upper() == "GET":
                response = await client.get(path, params=params)
            elif method.upper() == "POST":
                response = await client.post(path, json=data, params=params)
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")
        except httpx.RequestError as e:
            logger.error(f"[MelhorEnvio] {method} {path} failed: {e}")
            raise CarrierAPIError(
                message=f"Could not reach Melhor Envio: {e}",
                code="NETWORK_ERROR",
            )

        logger.debug(f"[MelhorEnvio] {method} {path} -> {response.status_code}")

        if response.status_code >= 400:
            error_text = response.text[:ERROR_TEXT_LIMIT]
            logger.error(f"[MelhorEnvio] {method} {path} error {response.status_code}: {error_text}")

            if response.status_code in (401, 403):
                raise CarrierAPIError(
                    message="Melhor Envio rejected the credentials. Check the API token.",
                    code="AUTH_FAILED",
                    status_code=response.status_code,
                    response_text=error_text,
                )
            raise CarrierAPIError(
                message=f"Melhor Envio error: {error_text}",
                code=str(response.status_code),
                status_code=response.status_code,
                response_text=error_text,
            )

        try:
            return response.json()
        except ValueError:
            error_text = response.text[:ERROR_TEXT_LIMIT]
            logger.error(f"[MelhorEnvio] {method} {path} returned non-JSON body: {error_text}")
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response",
                code="MALFORMED_RESPONSE",
                status_code=response.status_code,
                response_text=error_text,
            )

    # ==================== Account ====================

    async def get_me(self) -> Dict:
        """Account owner of the token."""
        return await self._make_request("GET", ME_PATH)

    async def get_balance(self) -> Dict:
        """Prepaid wallet balance."""
        return await self._make_request("GET", BALANCE_PATH)

    # ==================== Rating ====================

    async def calculate(self, payload: Dict) -> Any:
        """Quote all services for the payload's package."""
        return await self._make_request("POST", CALCULATE_PATH, data=payload)

    # ==================== Labels ====================

    async def add_to_cart(self, payload: Dict) -> Dict:
        """Insert a label order into the cart. Returns the cart order (with id)."""
        return await self._make_request("POST", CART_PATH, data=payload)

    async def checkout(self, order_ids: List[str]) -> Dict:
        """Pay for cart orders from the wallet."""
        return await self._make_request("POST", CHECKOUT_PATH, data={"orders": order_ids})

    async def generate(self, order_ids: List[str]) -> Dict:
        """Ask the carrier to render labels for paid orders."""
        return await self._make_request("POST", GENERATE_PATH, data={"orders": order_ids})

    async def print_labels(self, order_ids: List[str]) -> Dict:
        """Get a public URL for the rendered labels."""
        return await self._make_request(
            "POST",
            PRINT_PATH,
            data={"mode": "public", "orders": order_ids},
        )

    async def cancel(self, order_id: str, reason_id: str, description: str = "") -> Dict:
        """Cancel a label; the amount is refunded to the wallet."""
        return await self._make_request(
            "POST",
            CANCEL_PATH,
            data={
                "order": {
                    "id": order_id,
                    "reason_id": reason_id,
                    "description": description,
                }
            },
        )

    # ==================== Tracking ====================

    async def tracking(self, order_ids: List[str]) -> Dict:
        """Tracking state for many orders, keyed by order id."""
        return await self._make_request("POST", TRACKING_PATH, data={"orders": order_ids})
