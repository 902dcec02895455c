"""
Shipping API Routes

Provides endpoints for:
- Melhor Envio account (connection test, balance)
- Quotes for a task
- Shipments (create, list, label, cancel, tracking sync)

All endpoints require an operator token.
"""
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.api.deps import Operator, get_current_operator
from atelier.core.database import get_db
from atelier.core.exceptions import (
    CarrierAPIError,
    ShippingConfigurationError,
    ShippingError,
    ShippingNotFoundError,
    ShippingStateError,
)
from atelier.models.shipment import ShipmentHistory, ShipmentStatus
from atelier.services.shipping_service import ShippingService, get_shipping_service
from atelier.schemas.shipping import (
    BalanceResponse,
    CancelShipmentRequest,
    ConnectionResponse,
    LabelResponse,
    QuoteRequest,
    QuoteResponse,
    ShipmentCreate,
    ShipmentListItem,
    ShipmentListResponse,
    ShipmentResponse,
    SyncResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipping", tags=["shipping"])


# ==================== Helper Functions ====================


async def shipping_service_dependency(db: AsyncSession = Depends(get_db)):
    """Shipping service bound to the request session, closed afterwards."""
    service = await get_shipping_service(db)
    try:
        yield service
    finally:
        await service.close()


def raise_http_error(e: ShippingError) -> NoReturn:
    """Translate a shipping error into an HTTP response."""
    if isinstance(e, ShippingNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ShippingStateError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(e, CarrierAPIError):
        status_code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(e, ShippingConfigurationError):
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    logger.warning(f"Shipping request failed: {e.code} {e.message}")
    raise HTTPException(
        status_code=status_code,
        detail={"code": e.code, "message": e.message, "details": e.details},
    )


def shipment_to_response(shipment: ShipmentHistory) -> ShipmentResponse:
    return ShipmentResponse(
        id=shipment.id,
        task_id=shipment.task_id,
        melhor_envio_id=shipment.melhor_envio_id,
        carrier_name=shipment.carrier_name,
        service_name=shipment.service_name,
        price=shipment.price,
        status=ShipmentStatus(shipment.status).value,
        tracking_code=shipment.tracking_code,
        label_url=shipment.label_url,
        status_history=shipment.status_history or [],
        posted_at=shipment.posted_at,
        delivered_at=shipment.delivered_at,
        cancelled_at=shipment.cancelled_at,
        created_by=shipment.created_by,
        created_at=shipment.created_at,
        updated_at=shipment.updated_at,
    )


def shipment_to_list_item(shipment: ShipmentHistory) -> ShipmentListItem:
    task = shipment.task
    customer = task.customer if task else None
    return ShipmentListItem(
        **shipment_to_response(shipment).model_dump(),
        order_number=task.order_number if task else None,
        customer_name=customer.name if customer else None,
    )


# ==================== Account Endpoints ====================


@router.get("/connection", response_model=ConnectionResponse)
async def test_connection(
    current_operator: Operator = Depends(get_current_operator),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """Check the Melhor Envio token against the account endpoint."""
    try:
        account = await shipping_service.test_connection()
    except ShippingError as e:
        raise_http_error(e)
    return ConnectionResponse(**account)


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_operator: Operator = Depends(get_current_operator),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """Prepaid wallet balance used to pay for labels."""
    try:
        balance = await shipping_service.get_balance()
    except ShippingError as e:
        raise_http_error(e)
    return BalanceResponse(balance=balance)


# ==================== Quote Endpoints ====================


@router.post("/quotes", response_model=QuoteResponse)
async def calculate_shipping(
    quote_request: QuoteRequest,
    current_operator: Operator = Depends(get_current_operator),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """
    Quote shipping for a task.

    Returns enabled services cheapest first, with the carrier price, the
    price after markup, and the package used (plus any data warnings).
    """
    try:
        return await shipping_service.calculate_shipping(
            task_id=quote_request.task_id,
            customer_id=quote_request.customer_id,
        )
    except ShippingError as e:
        raise_http_error(e)


# ==================== Shipment Endpoints ====================


@router.post("/shipments", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    shipment_data: ShipmentCreate,
    current_operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """
    Buy a label for the chosen rate.

    This spends wallet credit. A failed purchase records nothing.
    """
    try:
        shipment = await shipping_service.create_shipment(
            task_id=shipment_data.task_id,
            service_id=shipment_data.service_id,
            carrier_name=shipment_data.carrier_name,
            service_name=shipment_data.service_name,
            price=shipment_data.final_price,
            delivery_time=shipment_data.delivery_time,
            customer_id=shipment_data.customer_id,
            created_by=current_operator.id,
        )
    except ShippingError as e:
        raise_http_error(e)

    await db.commit()
    return shipment_to_response(shipment)


@router.get("/shipments", response_model=ShipmentListResponse)
async def list_shipments(
    status_filter: Optional[ShipmentStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    current_operator: Operator = Depends(get_current_operator),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """List shipments newest first."""
    shipments = await shipping_service.list_shipments(status=status_filter, limit=limit)
    return ShipmentListResponse(
        shipments=[shipment_to_list_item(s) for s in shipments],
        total=len(shipments),
    )


@router.post("/shipments/sync", response_model=SyncResponse)
async def sync_all_shipments(
    limit: Optional[int] = Query(None, ge=1),
    current_operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """Refresh tracking for every open shipment in one carrier call."""
    try:
        summary = await shipping_service.sync_all(limit=limit)
    except ShippingError as e:
        raise_http_error(e)

    await db.commit()
    return SyncResponse(**summary)


@router.post("/shipments/{melhor_envio_id}/label", response_model=LabelResponse)
async def print_label(
    melhor_envio_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """Get the printable label URL. Safe to repeat."""
    try:
        shipment = await shipping_service.print_label(melhor_envio_id)
    except ShippingError as e:
        raise_http_error(e)

    await db.commit()
    return LabelResponse(melhor_envio_id=melhor_envio_id, label_url=shipment.label_url)


@router.post("/shipments/{melhor_envio_id}/cancel", response_model=ShipmentResponse)
async def cancel_shipment(
    melhor_envio_id: str,
    request: CancelShipmentRequest,
    current_operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """Cancel a label; the carrier refunds the wallet."""
    try:
        shipment = await shipping_service.cancel_shipment(
            melhor_envio_id,
            reason_id=request.reason_id,
            description=request.description,
        )
    except ShippingError as e:
        raise_http_error(e)

    await db.commit()
    logger.info(f"Shipment {melhor_envio_id} cancelled by {current_operator.id}")
    return shipment_to_response(shipment)


@router.post("/shipments/{melhor_envio_id}/sync", response_model=ShipmentResponse)
async def sync_shipment(
    melhor_envio_id: str,
    current_operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    shipping_service: ShippingService = Depends(shipping_service_dependency),
):
    """Refresh tracking for one shipment."""
    try:
        shipment = await shipping_service.sync_tracking(melhor_envio_id)
    except ShippingError as e:
        raise_http_error(e)

    await db.commit()
    return shipment_to_response(shipment)
