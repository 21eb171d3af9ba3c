"""
Xendit API client for hosted invoices.

Provides async methods for:
- Creating an invoice (hosted payment page)
- Fetching an invoice by id
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.datetime_utils import parse_iso

logger = logging.getLogger(__name__)


@dataclass
class Invoice:
    """Hosted invoice as returned by Xendit."""

    id: str
    external_id: str
    invoice_url: str
    status: str  # PENDING, PAID, SETTLED, EXPIRED
    amount: float
    expiry_date: Optional[datetime]


class XenditError(Exception):
    """Base exception for Xendit API errors."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


class XenditClient:
    """Async client for the Xendit Invoice API.

    Constructed once per process (see the app lifespan) and closed on
    shutdown; the underlying ``httpx.AsyncClient`` keeps its connection pool.
    """

    def __init__(
        self,
        secret_key: str = None,
        base_url: str = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport = None,
    ):
        settings = get_settings()
        self.secret_key = (
            secret_key if secret_key is not None else settings.XENDIT_SECRET_KEY
        )
        self.base_url = (base_url or settings.XENDIT_API_BASE_URL).rstrip("/")
        # Xendit uses basic auth: secret key as username, empty password.
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.secret_key, ""),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict = None,
    ) -> dict:
        """Make an async request to the Xendit API."""
        if not self.secret_key:
            raise XenditError(message="XENDIT_SECRET_KEY is not configured")

        response = await self._http.request(method, endpoint, json=json_data)

        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}

        if not response.is_success:
            logger.error(f"Xendit API error: {response.status_code} - {data}")
            raise XenditError(
                message=data.get("message", "Unknown Xendit error"),
                status_code=response.status_code,
                response_data=data,
            )

        return data

    # =========================================================================
    # Invoice Methods
    # =========================================================================

    async def create_invoice(self, payload: dict) -> Invoice:
        """
        Create a hosted invoice.

        Args:
            payload: Invoice request body (external_id, amount, payer_email,
                description, invoice_duration, currency, customer, redirect URLs)

        Returns:
            Invoice with id, invoice_url and expiry_date

        Raises:
            XenditError: If Xendit rejects the request
        """
        data = await self._request("POST", "/v2/invoices", json_data=payload)
        return self._to_invoice(data)

    async def get_invoice(self, invoice_id: str) -> Invoice:
        data = await self._request("GET", f"/v2/invoices/{invoice_id}")
        return self._to_invoice(data)

    @staticmethod
    def _to_invoice(data: dict) -> Invoice:
        if not data.get("id") or not data.get("invoice_url"):
            raise XenditError(
                message="Xendit response is missing the invoice id or URL",
                response_data=data,
            )
        return Invoice(
            id=data["id"],
            external_id=data.get("external_id", ""),
            invoice_url=data["invoice_url"],
            status=data.get("status", "PENDING"),
            amount=data.get("amount", 0),
            expiry_date=parse_iso(data.get("expiry_date")),
        )
