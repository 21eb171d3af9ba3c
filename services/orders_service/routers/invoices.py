"""Invoice router: start an online payment for an order."""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.dependencies import get_xendit_client
from services.orders_service.errors import NotFound
from services.orders_service.schemas import InvoiceRequest, InvoiceResponse
from services.orders_service.services.invoices import issue_invoice
from services.orders_service.services.order_builder import get_order
from services.orders_service.xendit_client import XenditClient
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/invoices", response_model=InvoiceResponse)
async def create_invoice(
    payload: InvoiceRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    client: XenditClient = Depends(get_xendit_client),
):
    """
    Issue a Xendit invoice for an order. Repeated calls return the same invoice.
    """
    order = await get_order(db, payload.order_id)
    if order is None or not current_user.can_act_for(order.user_id):
        raise NotFound(f"Order {payload.order_id} not found")

    return await issue_invoice(db, order_id=payload.order_id, client=client)
