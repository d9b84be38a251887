"""Referral code validation, pricing and redemption."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import to_naive_utc, utcnow
from ..core.database import insert_ignoring_conflicts
from ..core.exceptions import (
    AlreadyUsedReferralError,
    ConflictError,
    ExpiredReferralError,
    InvalidReferralError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.referral import RedemptionState, ReferralCode, ReferralRedemption
from ..schemas.referral import CreateReferralCodeRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quote:
    """Price breakdown for one booking attempt, in minor units."""

    base_price: int
    discount: int
    final_price: int
    referral_code: Optional[str] = None


def normalize_code(code: Optional[str]) -> Optional[str]:
    if code is None or not code.strip():
        return None
    return code.strip().upper()


def _already_used(code: str, state: RedemptionState) -> AlreadyUsedReferralError:
    if state == RedemptionState.RESERVED:
        return AlreadyUsedReferralError(
            code, f"Referral code '{code}' is already applied to another booking in progress"
        )
    return AlreadyUsedReferralError(code)


def _cap_reached(code: str) -> AlreadyUsedReferralError:
    return AlreadyUsedReferralError(code, f"Referral code '{code}' has reached its redemption limit")


class ReferralService:
    """
    Resolves referral discounts.

    Policy: a code is single-use per customer unless ``multi_use`` is set;
    ``max_redemptions`` optionally caps uses across all customers.
    Validation never consumes a code. Pricing a booking reserves one use,
    confirmation redeems it, and expiry or cancellation gives it back.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_code(self, code: str) -> Optional[ReferralCode]:
        stmt = select(ReferralCode).where(ReferralCode.code == code).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def validate(
        self,
        code: str,
        customer_ref: str,
        exclude_booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> ReferralCode:
        """
        Check that customer_ref may use code right now.

        This is a read; ``reserve`` is what actually takes the use.

        Args:
            code: Referral code as entered
            customer_ref: Customer applying the code
            exclude_booking_id: Booking whose own use of the code should be ignored
            now: Evaluation time

        Returns:
            The referral code row

        Raises:
            InvalidReferralError: Unknown or deactivated code
            ExpiredReferralError: Code past its expiry
            AlreadyUsedReferralError: Customer already redeemed it, has it on another
                booking in progress, or the global cap is reached
        """
        now = now or utcnow()
        normalized = normalize_code(code)
        referral = await self.get_code(normalized) if normalized else None

        if referral is None or not referral.is_active:
            logger.info(
                "Referral code rejected as invalid",
                extra={"referral_code": normalized or code, "customer_ref": customer_ref}
            )
            raise InvalidReferralError(normalized or code)

        if referral.expires_at is not None and referral.expires_at <= now:
            logger.info(
                "Referral code rejected as expired",
                extra={
                    "referral_code": referral.code,
                    "customer_ref": customer_ref,
                    "expired_at": referral.expires_at.isoformat()
                }
            )
            raise ExpiredReferralError(referral.code, referral.expires_at)

        if referral.max_redemptions is not None and referral.times_redeemed >= referral.max_redemptions:
            raise _cap_reached(referral.code)

        if not referral.multi_use:
            held = await self._use_by_customer(referral.code, customer_ref, exclude_booking_id)
            if held is not None:
                logger.info(
                    "Referral code rejected as already used",
                    extra={"referral_code": referral.code, "customer_ref": customer_ref, "state": held.state}
                )
                raise _already_used(referral.code, RedemptionState(held.state))

        return referral

    async def price(
        self,
        base_price: int,
        code: Optional[str],
        customer_ref: str,
        now: Optional[datetime] = None,
    ) -> Quote:
        """Final price for a booking attempt; raises the referral errors of ``validate``."""
        normalized = normalize_code(code)
        if normalized is None:
            return Quote(base_price=base_price, discount=0, final_price=base_price)

        referral = await self.validate(normalized, customer_ref, now=now)
        # Discount never exceeds the price
        discount = min(referral.discount_amount, base_price)
        return Quote(
            base_price=base_price,
            discount=discount,
            final_price=max(0, base_price - discount),
            referral_code=referral.code
        )

    async def _use_by_customer(
        self,
        code: str,
        customer_ref: str,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Optional[ReferralRedemption]:
        stmt = select(ReferralRedemption).where(
            ReferralRedemption.referral_code == code,
            ReferralRedemption.customer_ref == customer_ref
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(ReferralRedemption.booking_id != exclude_booking_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def has_redeemed(self, code: str, customer_ref: str) -> bool:
        """True once a booking of customer_ref carrying code has confirmed."""
        stmt = select(ReferralRedemption.id).where(
            ReferralRedemption.referral_code == code,
            ReferralRedemption.customer_ref == customer_ref,
            ReferralRedemption.state == RedemptionState.REDEEMED.value
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def reserve(self, booking: Booking, now: Optional[datetime] = None) -> None:
        """
        Take one use of the booking's referral code.

        Runs inside the caller's transaction, after the booking is flushed
        and before it is committed; on error the caller rolls both back.
        The per-customer partial unique index and the capped counter
        update are the only arbiters, so of two concurrent attempts by one
        customer exactly one keeps its discount.

        Raises:
            InvalidReferralError: If the code vanished or was deactivated since validation
            AlreadyUsedReferralError: If the customer or the global cap got there first
        """
        now = now or utcnow()
        referral = await self.get_code(booking.referral_code)
        if referral is None:
            raise InvalidReferralError(booking.referral_code)

        inserted = await self.db.execute(
            insert_ignoring_conflicts(
                self.db,
                ReferralRedemption.__table__,
                None,
                id=uuid4(),
                referral_code=referral.code,
                customer_ref=booking.customer_ref,
                booking_id=booking.id,
                exclusive=not referral.multi_use,
                state=RedemptionState.RESERVED.value,
                reserved_at=now,
            )
        )
        if inserted.rowcount != 1:
            logger.info(
                "Referral reservation lost to another booking of the customer",
                extra={
                    "booking_id": str(booking.id),
                    "referral_code": referral.code,
                    "customer_ref": booking.customer_ref
                }
            )
            raise _already_used(referral.code, RedemptionState.RESERVED)

        counter = update(ReferralCode).where(
            ReferralCode.code == referral.code,
            ReferralCode.is_active.is_(True)
        )
        if referral.max_redemptions is not None:
            counter = counter.where(ReferralCode.times_redeemed < referral.max_redemptions)
        counted = await self.db.execute(
            counter.values(times_redeemed=ReferralCode.times_redeemed + 1)
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount != 1:
            logger.info(
                "Referral reservation refused; global cap reached",
                extra={
                    "booking_id": str(booking.id),
                    "referral_code": referral.code,
                    "max_redemptions": referral.max_redemptions
                }
            )
            raise _cap_reached(referral.code)

        logger.info(
            "Referral code reserved",
            extra={"booking_id": str(booking.id), "referral_code": referral.code, "customer_ref": booking.customer_ref}
        )

    async def release_reservation(self, booking: Booking) -> bool:
        """
        Give back the use reserved by a booking that will never confirm.

        Runs in the caller's transaction. Redeemed uses are kept.
        Returns True when a reservation was released.
        """
        if not booking.referral_code:
            return False

        released = await self.db.execute(
            delete(ReferralRedemption).where(
                ReferralRedemption.booking_id == booking.id,
                ReferralRedemption.state == RedemptionState.RESERVED.value
            )
        )
        if released.rowcount != 1:
            return False

        await self.db.execute(
            update(ReferralCode)
            .where(ReferralCode.code == booking.referral_code, ReferralCode.times_redeemed > 0)
            .values(times_redeemed=ReferralCode.times_redeemed - 1)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Referral reservation released",
            extra={"booking_id": str(booking.id), "referral_code": booking.referral_code}
        )
        return True

    async def record_redemption(self, booking: Booking, now: Optional[datetime] = None) -> bool:
        """
        Turn the booking's reservation into a redemption. Called only after confirmation.

        Returns False when the booking carries no code or holds no reservation.
        """
        if not booking.referral_code:
            return False

        now = now or utcnow()
        redeemed = await self.db.execute(
            update(ReferralRedemption)
            .where(
                ReferralRedemption.booking_id == booking.id,
                ReferralRedemption.state == RedemptionState.RESERVED.value
            )
            .values(state=RedemptionState.REDEEMED.value, redeemed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if redeemed.rowcount != 1:
            logger.warning(
                "Confirmed booking holds no referral reservation",
                extra={"booking_id": str(booking.id), "referral_code": booking.referral_code}
            )
            return False

        metrics_collector.record_referral_redeemed()
        logger.info(
            "Referral code redeemed",
            extra={
                "booking_id": str(booking.id),
                "referral_code": booking.referral_code,
                "customer_ref": booking.customer_ref,
                "discount": booking.discount
            }
        )
        return True

    async def create_code(self, request: CreateReferralCodeRequest) -> ReferralCode:
        """
        Issue a referral code.

        Raises:
            ConflictError: If the code already exists
        """
        existing = await self.get_code(request.code)
        if existing is not None:
            raise ConflictError(
                detail=f"Referral code '{request.code}' already exists",
                code="REFERRAL_CODE_EXISTS",
                conflicting_resource={"code": existing.code}
            )

        referral = ReferralCode(
            code=request.code,
            discount_amount=request.discount_amount,
            multi_use=request.multi_use,
            max_redemptions=request.max_redemptions,
            expires_at=to_naive_utc(request.expires_at) if request.expires_at else None,
        )
        self.db.add(referral)
        await self.db.commit()
        await self.db.refresh(referral)

        logger.info(
            "Referral code created",
            extra={
                "referral_code": referral.code,
                "discount_amount": referral.discount_amount,
                "multi_use": referral.multi_use,
                "max_redemptions": referral.max_redemptions
            }
        )
        return referral
