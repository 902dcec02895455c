"""
Shipping Service for the Melhor Envio integration

High-level service that coordinates:
- Package resolution (dimensions and declared value)
- Rate quoting, carrier/service filtering and markup
- Label purchase, printing and cancellation
- Tracking sync (single, batch and webhook)

Carrier calls are never retried here: each one is a single operator action.
The service flushes; committing is the caller's job.
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from atelier.core.config import settings
from atelier.core.exceptions import (
    CarrierAPIError,
    ShippingConfigurationError,
    ShippingNotFoundError,
    ShippingStateError,
)
from atelier.core.utils import only_digits, utcnow
from atelier.models.carrier import CarrierCode, ShippingCarrier
from atelier.models.company_settings import CompanySettings
from atelier.models.customer import Customer
from atelier.models.quote import DECLARED_VALUE_QUOTE_STATUSES, Quote
from atelier.models.shipment import ShipmentHistory, ShipmentStatus, TERMINAL_STATUSES
from atelier.models.task import DesignTask, DesignTaskLayout
from atelier.modules.shipping.carriers import get_carrier
from atelier.modules.shipping.carriers.base import (
    BaseCarrier,
    Package,
    Party,
    ProductLine,
    PurchaseRequest,
    QuoteRequest,
    TrackingUpdate,
)
from atelier.modules.shipping.dimensions import (
    LayoutInput,
    ModelInput,
    ResolvedPackage,
    resolve_declared_value,
    resolve_package,
)
from atelier.modules.shipping.filters import CarrierRule, filter_rates
from atelier.modules.shipping.lifecycle import Transition, apply_status
from atelier.modules.shipping.pricing import Markup, price_rates, to_cents
from atelier.services.melhor_envio_client import MelhorEnvioCredentials

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


def _layout_input(layout: DesignTaskLayout) -> LayoutInput:
    model = None
    if layout.model is not None:
        m = layout.model
        model = ModelInput(
            id=str(m.id),
            name=m.name,
            weight=m.weight,
            width=m.width,
            height=m.height,
            depth=m.depth,
            uniform_type=m.uniform_type,
        )
    return LayoutInput(quantity=layout.quantity, uniform_type=layout.uniform_type, model=model)


class ShippingService:
    """
    Central service for all shipping operations.
    """

    def __init__(self, db: AsyncSession, carrier: Optional[BaseCarrier] = None):
        self.db = db
        self._carrier = carrier
        self._company: Optional[CompanySettings] = None

    async def _get_company_settings(self) -> Optional[CompanySettings]:
        """Single company settings row, cached for the service lifetime."""
        if self._company is None:
            result = await self.db.execute(select(CompanySettings).limit(1))
            self._company = result.scalar_one_or_none()
        return self._company

    async def _get_carrier(self) -> BaseCarrier:
        """Get or create the carrier; credentials come from company settings, then env."""
        if self._carrier:
            return self._carrier

        company = await self._get_company_settings()
        token = (company.melhor_envio_token if company else None) or settings.MELHOR_ENVIO_TOKEN
        if not token:
            raise ShippingConfigurationError(
                message="Melhor Envio token is not configured",
                details={"missing": "melhor_envio_token"},
            )
        environment = (
            (company.melhor_envio_environment if company else None)
            or settings.MELHOR_ENVIO_ENVIRONMENT
        )

        self._carrier = get_carrier(
            CarrierCode.MELHOR_ENVIO,
            MelhorEnvioCredentials(token=token, environment=environment),
        )
        return self._carrier

    async def close(self):
        """Clean up resources."""
        if self._carrier:
            await self._carrier.close()
            self._carrier = None

    # ==================== Account ====================

    async def test_connection(self) -> Dict[str, Any]:
        """Check the token by fetching the account it belongs to."""
        carrier = await self._get_carrier()
        info = await carrier.account_info()
        logger.info(f"Melhor Envio connection OK for {info.email}")
        return {"email": info.email, "name": info.name, "document": info.document}

    async def get_balance(self) -> Decimal:
        carrier = await self._get_carrier()
        return await carrier.balance()

    # ==================== Loaders ====================

    async def _get_task(self, task_id: str) -> DesignTask:
        result = await self.db.execute(
            select(DesignTask)
            .where(DesignTask.id == task_id)
            .options(
                selectinload(DesignTask.customer),
                selectinload(DesignTask.layouts).selectinload(DesignTaskLayout.model),
            )
        )
        task = result.scalar_one_or_none()
        if not task:
            raise ShippingNotFoundError(message="Task not found", details={"task_id": task_id})
        return task

    async def _get_customer(self, customer_id: str) -> Customer:
        result = await self.db.execute(select(Customer).where(Customer.id == customer_id))
        customer = result.scalar_one_or_none()
        if not customer:
            raise ShippingNotFoundError(
                message="Customer not found", details={"customer_id": customer_id}
            )
        return customer

    async def _get_latest_quote_total(self, task_id: str) -> Optional[Decimal]:
        """Total of the most recent approved/sent quote (ties broken by id)."""
        result = await self.db.execute(
            select(Quote.total_amount)
            .where(
                Quote.task_id == task_id,
                Quote.status.in_(DECLARED_VALUE_QUOTE_STATUSES),
            )
            .order_by(Quote.created_at.desc(), Quote.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_carrier_rules(self) -> List[CarrierRule]:
        result = await self.db.execute(
            select(ShippingCarrier).order_by(ShippingCarrier.display_order, ShippingCarrier.name)
        )
        return [CarrierRule.from_model(carrier) for carrier in result.scalars().all()]

    async def _get_shipment(self, melhor_envio_id: str) -> ShipmentHistory:
        result = await self.db.execute(
            select(ShipmentHistory).where(ShipmentHistory.melhor_envio_id == melhor_envio_id)
        )
        shipment = result.scalar_one_or_none()
        if not shipment:
            raise ShippingNotFoundError(
                message="Shipment not found", details={"melhor_envio_id": melhor_envio_id}
            )
        return shipment

    # ==================== Package Resolution ====================

    async def _resolve_context(
        self,
        task_id: str,
        customer_id: Optional[str] = None,
    ) -> Tuple[DesignTask, Customer, CompanySettings, ResolvedPackage, Decimal]:
        """
        Load and validate everything a quote or purchase needs.

        Configuration errors are raised here, before any carrier call.
        """
        task = await self._get_task(task_id)

        customer = await self._get_customer(customer_id) if customer_id else task.customer
        if customer is None:
            raise ShippingConfigurationError(
                message="Task has no customer linked",
                details={"task_id": task_id, "missing": "customer"},
            )
        if not only_digits(customer.postal_code):
            raise ShippingConfigurationError(
                message=f"Customer {customer.name} has no postal code",
                details={"customer_id": customer.id, "missing": "postal_code"},
            )

        company = await self._get_company_settings()
        if company is None or not only_digits(company.postal_code):
            raise ShippingConfigurationError(
                message="Company origin postal code is not configured",
                details={"missing": "origin_postal_code"},
            )

        package = resolve_package(
            [_layout_input(layout) for layout in task.layouts or []],
            fallback_quantity=task.quantity,
        )

        quote_total = None
        if not (task.order_value and task.order_value > 0):
            quote_total = await self._get_latest_quote_total(task.id)
        declared_value, warning = resolve_declared_value(
            task.order_value,
            quote_total,
            settings.SHIPPING_DEFAULT_DECLARED_VALUE,
        )
        if warning:
            package.warnings.append(warning)

        return task, customer, company, package, declared_value

    # ==================== Quotes ====================

    async def calculate_shipping(
        self,
        task_id: str,
        customer_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Quote a task: resolve the package, ask the carrier, filter and mark up.

        Returns:
            {"rates": [...], "dimensions": {"calculated": {...}, "warnings": [...]}}
        """
        task, customer, company, package, declared_value = await self._resolve_context(
            task_id, customer_id
        )
        carrier = await self._get_carrier()

        request = QuoteRequest(
            from_postal_code=company.postal_code,
            to_postal_code=customer.postal_code,
            package=Package(
                weight=package.weight,
                width=package.width,
                height=package.height,
                length=package.length,
                insurance_value=declared_value,
            ),
            reference=task.order_number or str(task.id),
        )
        rates = await carrier.calculate(request)

        rules = await self._get_carrier_rules()
        allowed = filter_rates(rates, rules)
        markup = Markup.from_settings(company.shipping_markup_type, company.shipping_markup_value)
        options = price_rates(allowed, markup)

        logger.info(
            f"Quoted task {task.id}: {len(rates)} rates, {len(allowed)} after filter"
        )

        calculated = package.as_dict()
        calculated["insurance_value"] = declared_value
        return {
            "rates": [option.as_dict() for option in options],
            "dimensions": {"calculated": calculated, "warnings": package.warnings},
        }

    # ==================== Shipments ====================

    def _sender(self, company: CompanySettings) -> Party:
        return Party(
            name=company.legal_name or "",
            postal_code=company.postal_code,
            address=company.street,
            number=company.number,
            complement=company.complement,
            district=company.neighborhood,
            city=company.city,
            state_abbr=company.state,
            phone=company.phone,
            email=company.email,
            company_document=company.tax_id,
            state_register=company.state_registration,
        )

    def _recipient(self, customer: Customer) -> Party:
        individual = customer.person_type == "Física"
        return Party(
            name=customer.name,
            postal_code=customer.postal_code,
            address=customer.street,
            number=customer.number,
            complement=customer.complement,
            district=customer.neighborhood,
            city=customer.city,
            state_abbr=customer.state,
            phone=customer.phone,
            email=customer.email,
            document=customer.cpf if individual else None,
            company_document=None if individual else customer.cnpj,
        )

    async def create_shipment(
        self,
        task_id: str,
        service_id: int,
        carrier_name: str,
        service_name: str,
        price: Decimal,
        delivery_time: Optional[int] = None,
        customer_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ShipmentHistory:
        """
        Buy a label for the chosen rate and record it.

        Args:
            task_id: Task being shipped
            service_id: Carrier service id from the quote
            carrier_name: Carrier display name from the quote
            service_name: Service display name from the quote
            price: Final price charged to the customer (after markup)
            delivery_time: Quoted delivery time in business days
            customer_id: Recipient override
            created_by: Operator id

        Returns:
            New ShipmentHistory in pending status

        If the carrier rejects the purchase nothing is recorded and the
        carrier's error is raised unchanged.
        """
        task, customer, company, package, declared_value = await self._resolve_context(
            task_id, customer_id
        )
        carrier = await self._get_carrier()

        units = max(package.total_quantity, 1)
        request = PurchaseRequest(
            service_id=service_id,
            sender=self._sender(company),
            recipient=self._recipient(customer),
            package=Package(
                weight=package.weight,
                width=package.width,
                height=package.height,
                length=package.length,
                insurance_value=declared_value,
            ),
            products=[ProductLine(
                name=f"Uniformes pedido {task.order_number or task.id}",
                quantity=units,
                unitary_value=to_cents(declared_value / units),
            )],
            insurance_value=declared_value,
            invoice_key=task.invoice_number,
            non_commercial=not task.invoice_number,
            tag=task.order_number,
        )

        result = await carrier.purchase(request)

        final_price = to_cents(Decimal(str(price)))
        shipment = ShipmentHistory(
            id=str(uuid.uuid4()),
            task_id=task.id,
            melhor_envio_id=result.shipment_id,
            carrier_name=carrier_name,
            service_name=service_name,
            price=final_price,
            status=ShipmentStatus.PENDING,
            tracking_code=result.tracking_code,
            status_history=[{
                "status": ShipmentStatus.PENDING.value,
                "carrier_status": result.status,
                "tracking_code": result.tracking_code,
                "observed_at": utcnow().isoformat(),
                "source": "purchase",
            }],
            created_by=created_by,
        )
        self.db.add(shipment)

        task.shipping_option = {
            "service": service_name,
            "company": carrier_name,
            "price": str(final_price),
            "delivery_time": delivery_time,
            "melhor_envio_id": result.shipment_id,
        }
        task.shipping_value = final_price

        await self.db.flush()

        logger.info(
            f"Shipment created: {result.shipment_id} for task {task.id} "
            f"({carrier_name} {service_name}, {final_price})"
        )
        return shipment

    async def print_label(self, melhor_envio_id: str) -> ShipmentHistory:
        """Fetch (or refetch) the label URL. Not allowed for cancelled shipments."""
        shipment = await self._get_shipment(melhor_envio_id)
        if shipment.status == ShipmentStatus.CANCELLED:
            raise ShippingStateError(
                message="Cannot print the label of a cancelled shipment",
                details={"melhor_envio_id": melhor_envio_id},
            )

        carrier = await self._get_carrier()
        shipment.label_url = await carrier.print_label(melhor_envio_id)
        await self.db.flush()

        logger.info(f"Label URL stored for shipment {melhor_envio_id}")
        return shipment

    async def cancel_shipment(
        self,
        melhor_envio_id: str,
        reason_id: Optional[str] = None,
        description: str = "",
    ) -> ShipmentHistory:
        """
        Cancel a label with the carrier, then mark the record cancelled.

        State is not pre-validated: the carrier rejects invalid cancellations.
        """
        shipment = await self._get_shipment(melhor_envio_id)
        carrier = await self._get_carrier()

        reason = reason_id or settings.SHIPPING_DEFAULT_CANCEL_REASON
        cancelled = await carrier.cancel(melhor_envio_id, reason, description)
        if not cancelled:
            raise CarrierAPIError(
                message=f"Melhor Envio did not cancel shipment {melhor_envio_id}",
                code="CANCEL_REJECTED",
            )

        apply_status(
            shipment,
            ShipmentStatus.CANCELLED,
            carrier_status="canceled",
            source="cancel",
        )
        await self.db.flush()
        return shipment

    # ==================== Tracking ====================

    def _apply_tracking(
        self,
        carrier: BaseCarrier,
        shipment: ShipmentHistory,
        update: TrackingUpdate,
        source: str,
    ) -> Transition:
        return apply_status(
            shipment,
            carrier.map_status(update.carrier_status),
            carrier_status=update.carrier_status,
            tracking_code=update.tracking_code,
            source=source,
            posted_at=update.posted_at,
            delivered_at=update.delivered_at,
            cancelled_at=update.cancelled_at,
        )

    async def sync_tracking(self, melhor_envio_id: str) -> ShipmentHistory:
        """Refresh one shipment from the carrier."""
        shipment = await self._get_shipment(melhor_envio_id)
        carrier = await self._get_carrier()

        updates = await carrier.track([melhor_envio_id])
        update = updates.get(melhor_envio_id)
        if update is None:
            raise CarrierAPIError(
                message=f"Melhor Envio has no tracking for shipment {melhor_envio_id}",
                code="TRACKING_NOT_FOUND",
            )

        self._apply_tracking(carrier, shipment, update, source="sync")
        await self.db.flush()
        return shipment

    async def sync_all(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Refresh every non-terminal shipment with a single carrier call.

        Args:
            limit: Max shipments per call, capped at SHIPPING_SYNC_BATCH_LIMIT

        Returns:
            Counts plus the ids the carrier did not report
        """
        cap = settings.SHIPPING_SYNC_BATCH_LIMIT
        limit = min(limit, cap) if limit else cap

        result = await self.db.execute(
            select(ShipmentHistory)
            .where(ShipmentHistory.status.notin_(list(TERMINAL_STATUSES)))
            .order_by(ShipmentHistory.created_at)
            .limit(limit)
        )
        shipments = list(result.scalars().all())

        summary: Dict[str, Any] = {"checked": len(shipments), "updated": 0, "missing": []}
        if not shipments:
            return summary

        carrier = await self._get_carrier()
        updates = await carrier.track([s.melhor_envio_id for s in shipments])

        for shipment in shipments:
            update = updates.get(shipment.melhor_envio_id)
            if update is None:
                summary["missing"].append(shipment.melhor_envio_id)
                continue
            transition = self._apply_tracking(carrier, shipment, update, source="sync")
            if transition.changed or transition.recorded:
                summary["updated"] += 1

        await self.db.flush()

        logger.info(
            f"Tracking sync: {summary['checked']} checked, {summary['updated']} updated, "
            f"{len(summary['missing'])} missing"
        )
        return summary

    async def apply_webhook(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a carrier status notification.

        Unknown shipments are acknowledged with success False so the
        carrier stops redelivering.
        """
        melhor_envio_id = str(payload.get("order_id") or payload.get("id") or "")
        carrier_status = str(payload.get("status") or "")
        if not melhor_envio_id or not carrier_status:
            return {"success": False, "message": "Missing order_id or status"}

        try:
            shipment = await self._get_shipment(melhor_envio_id)
        except ShippingNotFoundError:
            logger.warning(f"Webhook for unknown shipment {melhor_envio_id}")
            return {"success": False, "message": "Shipment not found"}

        carrier = await self._get_carrier()
        update = TrackingUpdate(
            shipment_id=melhor_envio_id,
            carrier_status=carrier_status,
            tracking_code=payload.get("tracking") or payload.get("melhor_tracking"),
            raw_response=payload,
        )
        transition = self._apply_tracking(carrier, shipment, update, source="webhook")
        await self.db.flush()

        return {
            "success": True,
            "status": transition.current.value,
            "changed": transition.changed,
        }

    # ==================== Listing ====================

    async def list_shipments(
        self,
        status: Optional[ShipmentStatus] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[ShipmentHistory]:
        """Newest first, with task and customer loaded for display."""
        query = (
            select(ShipmentHistory)
            .options(selectinload(ShipmentHistory.task).selectinload(DesignTask.customer))
            .order_by(ShipmentHistory.created_at.desc())
            .limit(limit)
        )
        if status:
            query = query.where(ShipmentHistory.status == status)

        result = await self.db.execute(query)
        return list(result.scalars().all())


# Factory function for dependency injection
async def get_shipping_service(db: AsyncSession) -> ShippingService:
    """Create shipping service instance."""
    return ShippingService(db)
