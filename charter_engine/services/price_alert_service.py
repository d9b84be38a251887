"""Price alert watcher: notifies customers when a charter price drops to their target."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher, NotificationKind
from ..core.clock import utcnow
from ..core.exceptions import NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.charter import Charter
from ..models.price_alert import PriceAlert, PriceAlertStatus
from ..schemas.price_alert import CreatePriceAlertRequest, PriceScanResult
from .charter_service import CharterService, parse_uuid

logger = logging.getLogger(__name__)


class PriceAlertService:
    """
    Owns PriceAlert rows and reads charters only.

    An alert fires once per downward crossing: ``active`` becomes
    ``triggered`` when the price reaches the target, and only a price back
    above the target re-arms it.
    """

    def __init__(self, db: AsyncSession, notifier: NotificationDispatcher):
        self.db = db
        self.notifier = notifier
        self.charters = CharterService(db)

    async def register(self, request: CreatePriceAlertRequest) -> PriceAlert:
        """
        Watch a charter's price for a customer.

        Raises:
            NotFoundError: If charter not found
            ValidationError: If the target is not below the current price
        """
        charter = await self.charters.get_charter_by_id_or_raise(parse_uuid(request.charter_id, "charter_id"))
        current_price = charter.price_for(request.duration.value)

        if request.target_price >= current_price:
            raise ValidationError(
                detail=f"Target price {request.target_price} must be below the current price {current_price}",
                field="target_price",
                code="TARGET_NOT_BELOW_CURRENT_PRICE"
            )

        alert = PriceAlert(
            charter_id=charter.id,
            customer_ref=request.customer_ref,
            duration=request.duration.value,
            target_price=request.target_price,
            price_at_creation=current_price,
            last_seen_price=current_price,
            status=PriceAlertStatus.ACTIVE.value,
            trigger_count=0,
        )
        self.db.add(alert)
        await self.db.commit()
        await self.db.refresh(alert)

        logger.info(
            "Price alert registered",
            extra={
                "alert_id": str(alert.id),
                "charter_id": str(charter.id),
                "customer_ref": alert.customer_ref,
                "target_price": alert.target_price,
                "current_price": current_price,
            }
        )
        return alert

    async def scan(self, now: Optional[datetime] = None) -> PriceScanResult:
        """
        Compare every live alert against its charter's current price.

        Alerts are evaluated independently; each state change is a
        conditional update on the alert's previous status.
        """
        now = now or utcnow()
        stmt = (
            select(PriceAlert, Charter)
            .join(Charter, Charter.id == PriceAlert.charter_id)
            .where(PriceAlert.status.in_([PriceAlertStatus.ACTIVE.value, PriceAlertStatus.TRIGGERED.value]))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        rows = list(result.all())

        summary = PriceScanResult(scanned=len(rows))
        for alert, charter in rows:
            price = charter.price_for(alert.duration)

            if alert.status == PriceAlertStatus.ACTIVE.value and price <= alert.target_price:
                if await self._move(alert.id, PriceAlertStatus.ACTIVE, PriceAlertStatus.TRIGGERED, price, now):
                    summary.triggered += 1
                    metrics_collector.record_price_alert_triggered()
                    logger.info(
                        "Price alert triggered",
                        extra={
                            "alert_id": str(alert.id),
                            "charter_id": str(charter.id),
                            "target_price": alert.target_price,
                            "price": price,
                        }
                    )
                    await self.notifier.send(
                        NotificationKind.PRICE_DROP,
                        alert.customer_ref,
                        {
                            "alert_id": str(alert.id),
                            "charter_id": str(charter.id),
                            "charter_name": charter.name,
                            "duration": alert.duration,
                            "target_price": alert.target_price,
                            "price": price,
                            "currency": charter.currency,
                        },
                    )
            elif alert.status == PriceAlertStatus.TRIGGERED.value and price > alert.target_price:
                if await self._move(alert.id, PriceAlertStatus.TRIGGERED, PriceAlertStatus.ACTIVE, price, now):
                    summary.rearmed += 1
                    metrics_collector.record_price_alert_rearmed()
                    logger.info(
                        "Price alert re-armed",
                        extra={"alert_id": str(alert.id), "price": price}
                    )
            elif alert.last_seen_price != price:
                await self.db.execute(
                    update(PriceAlert)
                    .where(PriceAlert.id == alert.id)
                    .values(last_seen_price=price)
                    .execution_options(synchronize_session=False)
                )

        await self.db.commit()
        return summary

    async def _move(
        self,
        alert_id: UUID,
        current: PriceAlertStatus,
        target: PriceAlertStatus,
        price: int,
        now: datetime,
    ) -> bool:
        values = {"status": target.value, "last_seen_price": price, "updated_at": now}
        if target == PriceAlertStatus.TRIGGERED:
            values["trigger_count"] = PriceAlert.trigger_count + 1
            values["last_triggered_at"] = now
        result = await self.db.execute(
            update(PriceAlert)
            .where(PriceAlert.id == alert_id, PriceAlert.status == current.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def cancel(self, alert_id: str, customer_ref: str) -> PriceAlert:
        """
        Stop watching. Only the owning customer may cancel.

        Raises:
            NotFoundError: If the alert does not exist for this customer
        """
        alert = await self._get_for_customer(parse_uuid(alert_id, "alert_id"), customer_ref)
        if alert.status != PriceAlertStatus.CANCELLED.value:
            alert.status = PriceAlertStatus.CANCELLED.value
            await self.db.commit()
            await self.db.refresh(alert)
            logger.info(
                "Price alert cancelled",
                extra={"alert_id": str(alert.id), "customer_ref": customer_ref}
            )
        return alert

    async def list_for_customer(self, customer_ref: str) -> List[PriceAlert]:
        """A customer's alerts, newest first, cancelled ones excluded."""
        stmt = (
            select(PriceAlert)
            .where(
                PriceAlert.customer_ref == customer_ref,
                PriceAlert.status != PriceAlertStatus.CANCELLED.value
            )
            .order_by(PriceAlert.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def _get_for_customer(self, alert_id: UUID, customer_ref: str) -> PriceAlert:
        stmt = select(PriceAlert).where(
            PriceAlert.id == alert_id,
            PriceAlert.customer_ref == customer_ref
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        alert = result.scalar_one_or_none()
        if alert is None:
            raise NotFoundError(resource_type="price alert", resource_id=str(alert_id))
        return alert
