"""
Shipping Schemas

Pydantic models for shipping API requests and responses.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field


# ==================== Account Schemas ====================


class ConnectionResponse(BaseModel):
    """Account behind the configured Melhor Envio token."""
    success: bool = True
    email: Optional[str] = None
    name: str
    document: Optional[str] = None


class BalanceResponse(BaseModel):
    balance: Decimal
    currency: str = "BRL"


# ==================== Quote Schemas ====================


class QuoteRequest(BaseModel):
    """Quote shipping for a task."""
    task_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = Field(None, description="Recipient override; defaults to the task's customer")


class RateResponse(BaseModel):
    """One offered service. price/discount are the carrier's, final_price includes markup."""
    service_id: int
    service_name: str
    carrier_name: str
    carrier_picture: Optional[str] = None
    price: Decimal
    discount: Decimal
    final_price: Decimal
    currency: str = "BRL"
    delivery_time: Optional[int] = None
    delivery_min: Optional[int] = None
    delivery_max: Optional[int] = None


class PackageDimensions(BaseModel):
    weight: Decimal = Field(..., description="Total weight in kg")
    width: Decimal = Field(..., description="cm")
    height: Decimal = Field(..., description="cm")
    length: Decimal = Field(..., description="cm")
    total_quantity: int
    insurance_value: Decimal


class DimensionsResponse(BaseModel):
    calculated: PackageDimensions
    warnings: List[str] = []


class QuoteResponse(BaseModel):
    rates: List[RateResponse]
    dimensions: DimensionsResponse


# ==================== Shipment Schemas ====================


class ShipmentCreate(BaseModel):
    """Buy a label for a rate chosen from a quote."""
    task_id: str = Field(..., min_length=1)
    service_id: int = Field(..., gt=0)
    carrier_name: str = Field(..., min_length=1, max_length=100)
    service_name: str = Field(..., min_length=1, max_length=100)
    final_price: Decimal = Field(..., ge=0)
    delivery_time: Optional[int] = Field(None, ge=0)
    customer_id: Optional[str] = None


class CancelShipmentRequest(BaseModel):
    reason_id: Optional[str] = Field(None, max_length=10)
    description: str = Field("", max_length=255)


class StatusHistoryEntry(BaseModel):
    status: str
    carrier_status: Optional[str] = None
    tracking_code: Optional[str] = None
    observed_at: Optional[str] = None
    source: Optional[str] = None


class ShipmentResponse(BaseModel):
    """Shipment history row."""
    id: str
    task_id: Optional[str] = None
    melhor_envio_id: str
    carrier_name: str
    service_name: str
    price: Decimal
    status: str
    tracking_code: Optional[str] = None
    label_url: Optional[str] = None
    status_history: List[StatusHistoryEntry] = []
    posted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ShipmentListItem(ShipmentResponse):
    """Shipment with task and customer display fields."""
    order_number: Optional[str] = None
    customer_name: Optional[str] = None


class ShipmentListResponse(BaseModel):
    shipments: List[ShipmentListItem]
    total: int


class LabelResponse(BaseModel):
    melhor_envio_id: str
    label_url: str


class SyncResponse(BaseModel):
    """Batch tracking sync summary."""
    checked: int
    updated: int
    missing: List[str] = []


# ==================== Webhook Schemas ====================


class WebhookResponse(BaseModel):
    success: bool
    status: Optional[str] = None
    changed: Optional[bool] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
