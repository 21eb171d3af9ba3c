import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InvoiceRequest(BaseModel):
    order_id: uuid.UUID = Field(alias="orderId")

    model_config = ConfigDict(populate_by_name=True)


class InvoiceResponse(BaseModel):
    invoice_url: str
    invoice_id: str
    expiry_date: Optional[datetime] = None


class CallbackStatus(str, enum.Enum):
    """Invoice statuses reported by Xendit callbacks."""

    PAID = "PAID"
    SETTLED = "SETTLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    # Anything else Xendit sends; routed to the unhandled branch.
    UNKNOWN = "UNKNOWN"


class InvoiceCallback(BaseModel):
    """Xendit invoice callback body.

    Only the fields the settlement processor reads are declared; the rest of
    the payload is kept for the transaction audit record.
    """

    external_id: str
    status: CallbackStatus
    raw_status: Optional[str] = None
    id: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        value = str(v or "").strip().upper()
        if value in CallbackStatus.__members__ and value != "UNKNOWN":
            return CallbackStatus(value)
        return CallbackStatus.UNKNOWN

    @classmethod
    def parse_payload(cls, payload: dict) -> "InvoiceCallback":
        """Validate a raw callback, remembering the status string as sent."""
        data = dict(payload)
        data["raw_status"] = payload.get("status")
        return cls.model_validate(data)

    @property
    def is_paid(self) -> bool:
        return self.status in (CallbackStatus.PAID, CallbackStatus.SETTLED)


class WebhookAck(BaseModel):
    """Acknowledgement body; Xendit only looks at the 200."""

    received: bool = True
    status: Optional[str] = None
    error: Optional[str] = None
