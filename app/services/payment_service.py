"""
Payment orchestration: initiation, verification, booking settlement and refunds
"""

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
import logging
import secrets
import time

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import db_manager
from app.core.exceptions import (
    NotFoundError,
    ValidationError,
    AuthorizationError,
    InvalidStateError,
    VenuelyException,
)
from app.core.metrics import PAYMENT_INITIATIONS, PAYMENT_VERIFICATIONS
from app.models.booking import Booking, BookingPaymentStatus, TERMINAL_BOOKING_STATUSES
from app.models.payment import Payment, PaymentGateway, PaymentStatus, PaymentType
from app.models.user import User, UserRole
from app.models.venue import Venue
from app.schemas.payment import PaymentInitiate
from app.services.gateways import (
    PaymentGatewayAdapter,
    GatewayOutcome,
    VerificationSucceeded,
    VerificationFailed,
    default_adapters,
)
from app.services.notification_service import notification_dispatcher

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def generate_reference_id() -> str:
    return f"PAY-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class PaymentService:
    """
    Payment lifecycle. Gateway calls never run inside a database
    transaction: the payment row is committed first and re-read under
    `FOR UPDATE` before the outcome is applied.
    """

    def __init__(self, adapters: Optional[Dict[PaymentGateway, PaymentGatewayAdapter]] = None):
        self.adapters = adapters if adapters is not None else default_adapters()

    def adapter_for(self, gateway) -> PaymentGatewayAdapter:
        adapter = self.adapters.get(PaymentGateway(gateway))
        if adapter is None:
            raise ValidationError("Invalid payment gateway", field="gateway")
        return adapter

    @staticmethod
    def validate_amount(booking: Booking, payment_type: PaymentType, amount: Decimal):
        """Amount rules per payment type; messages carry the expected value"""
        total = Decimal(booking.total_amount)
        amount = Decimal(amount)

        if payment_type == PaymentType.ADVANCE:
            minimum = _money(total * Decimal(str(settings.ADVANCE_PAYMENT_MIN_RATIO)))
            if amount < minimum:
                percent = int(settings.ADVANCE_PAYMENT_MIN_RATIO * 100)
                raise ValidationError(
                    f"Advance payment must be at least {percent}% of total amount (Rs. {minimum})",
                    field="amount",
                    details={"expected_minimum": str(minimum)}
                )
            if amount > total:
                raise ValidationError(
                    f"Advance payment cannot exceed the total amount (Rs. {total})",
                    field="amount",
                    details={"expected_maximum": str(total)}
                )
        elif payment_type == PaymentType.FULL:
            if amount != total:
                raise ValidationError(
                    f"Full payment amount must match booking total (Rs. {total})",
                    field="amount",
                    details={"expected": str(total)}
                )
        elif payment_type == PaymentType.BALANCE:
            expected = total - Decimal(booking.advance_paid)
            if amount != expected:
                raise ValidationError(
                    f"Balance payment must be Rs. {expected}",
                    field="amount",
                    details={"expected": str(expected)}
                )
        else:
            raise ValidationError("REFUND payments are created through the refund endpoint", field="paymentType")

    @staticmethod
    def apply_payment_to_booking(booking: Booking, payment: Payment):
        """The only place verified money reaches a booking"""
        amount = Decimal(payment.amount)
        if payment.payment_type == PaymentType.ADVANCE:
            booking.advance_paid = amount
            booking.balance_amount = Decimal(booking.total_amount) - amount
            booking.payment_status = BookingPaymentStatus.PARTIAL
        elif payment.payment_type == PaymentType.FULL:
            booking.advance_paid = amount
            booking.balance_amount = Decimal("0")
            booking.payment_status = BookingPaymentStatus.PAID
        elif payment.payment_type == PaymentType.BALANCE:
            booking.advance_paid = Decimal(booking.advance_paid) + amount
            booking.balance_amount = Decimal("0")
            booking.payment_status = BookingPaymentStatus.PAID

    @staticmethod
    async def _get_booking(db: AsyncSession, booking_id: UUID, for_update: bool = False) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        booking = await db.scalar(stmt)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    async def _get_payment(db: AsyncSession, payment_id: UUID, for_update: bool = False) -> Payment:
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        payment = await db.scalar(stmt)
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    @staticmethod
    async def _can_view(db: AsyncSession, payment: Payment, user: User) -> bool:
        if payment.user_id == user.id or user.role == UserRole.ADMIN:
            return True
        owner_id = await db.scalar(select(Venue.owner_id).where(Venue.id == payment.venue_id))
        return owner_id == user.id

    async def initiate(self, db: AsyncSession, data: PaymentInitiate, user: User) -> Dict[str, Any]:
        gateway = PaymentGateway(data.gateway)
        payment_type = PaymentType(data.payment_type)
        adapter = self.adapter_for(gateway)

        booking = await self._get_booking(db, data.booking_id)
        if booking.user_id != user.id:
            raise AuthorizationError("You can only pay for your own bookings")
        if booking.status in TERMINAL_BOOKING_STATUSES:
            raise InvalidStateError(f"Cannot pay for a {booking.status.value.lower()} booking")
        if booking.payment_status == BookingPaymentStatus.PAID:
            raise InvalidStateError("Booking is already fully paid")
        self.validate_amount(booking, payment_type, data.amount)

        payment = Payment(
            booking_id=booking.id,
            user_id=user.id,
            venue_id=booking.venue_id,
            amount=Decimal(data.amount),
            gateway=gateway,
            payment_type=payment_type,
            status=PaymentStatus.INITIATED,
            reference_id=generate_reference_id(),
        )
        async with db_manager.transaction(db):
            db.add(payment)

        try:
            result = await adapter.build_initiation(payment, booking)
        except VenuelyException as e:
            # The INITIATED row stays for a later verification retry
            PAYMENT_INITIATIONS.labels(gateway=gateway.value, outcome=e.code).inc()
            logger.warning(f"Initiation of payment {payment.reference_id} via {gateway.value} failed: {e.message}")
            raise

        async with db_manager.transaction(db):
            payment.gateway_token = result.gateway_token
            payment.gateway_response = result.raw or None

        PAYMENT_INITIATIONS.labels(gateway=gateway.value, outcome="mock" if result.mock else "success").inc()
        logger.info(
            f"Payment {payment.reference_id} initiated: {payment_type.value} Rs. {payment.amount} "
            f"via {gateway.value} for booking {booking.id}"
        )
        return {
            "payment_id": payment.id,
            "reference_id": payment.reference_id,
            "gateway": gateway,
            "amount": payment.amount,
            "payment_url": result.payment_url,
            "form_data": result.form_data,
            "pidx": result.gateway_token if gateway == PaymentGateway.KHALTI else None,
            "mock": result.mock,
        }

    async def verify(self, db: AsyncSession, callback) -> Dict[str, Any]:
        """Reconcile one gateway callback; repeat calls never re-credit the booking"""
        gateway = PaymentGateway(callback.gateway)
        adapter = self.adapter_for(gateway)

        key = adapter.correlation_key(callback)
        conditions = [getattr(Payment, column) == value for column, value in key.items()]
        payment = await db.scalar(select(Payment).where(Payment.gateway == gateway, *conditions))
        if not payment:
            raise NotFoundError("Payment", next(iter(key.values())))
        if payment.status == PaymentStatus.COMPLETED:
            return self._already_verified(payment)

        # End the read transaction before talking to the gateway
        await db.commit()
        try:
            outcome = await adapter.interpret_callback(callback, payment)
        except VenuelyException as e:
            PAYMENT_VERIFICATIONS.labels(gateway=gateway.value, outcome=e.code).inc()
            raise
        return await self._apply_outcome(db, payment.id, outcome)

    async def retry_verification(self, db: AsyncSession, payment_id: UUID, user: User) -> Dict[str, Any]:
        """Ask the gateway again using only the stored reference id / provider token"""
        payment = await self._get_payment(db, payment_id)
        if payment.user_id != user.id and user.role != UserRole.ADMIN:
            raise AuthorizationError("You can only verify your own payments")
        if payment.payment_type == PaymentType.REFUND:
            raise InvalidStateError("Refund records are settled manually")
        if payment.status == PaymentStatus.COMPLETED:
            return self._already_verified(payment)

        await db.commit()
        adapter = self.adapter_for(payment.gateway)
        try:
            outcome = await adapter.check_status(payment)
        except VenuelyException as e:
            PAYMENT_VERIFICATIONS.labels(gateway=payment.gateway.value, outcome=e.code).inc()
            raise
        return await self._apply_outcome(db, payment.id, outcome)

    @staticmethod
    def _already_verified(payment: Payment) -> Dict[str, Any]:
        logger.info(f"Payment {payment.reference_id} already verified")
        return {
            "success": True,
            "message": "Payment already verified",
            "already_verified": True,
            "payment": payment,
        }

    async def _apply_outcome(self, db: AsyncSession, payment_id: UUID, outcome: GatewayOutcome) -> Dict[str, Any]:
        booking = None
        already_verified = False
        async with db_manager.transaction(db):
            payment = await self._get_payment(db, payment_id, for_update=True)
            gateway = payment.gateway.value
            now = datetime.now(timezone.utc)

            if payment.status == PaymentStatus.COMPLETED:
                # A concurrent verification got here first
                already_verified = True
            elif isinstance(outcome, VerificationSucceeded):
                payment.status = PaymentStatus.COMPLETED
                payment.transaction_id = outcome.provider_txn_id
                payment.gateway_response = outcome.raw
                payment.completed_at = now
                booking = await self._get_booking(db, payment.booking_id, for_update=True)
                if booking.status in TERMINAL_BOOKING_STATUSES:
                    logger.warning(f"Payment {payment.reference_id} completed for {booking.status.value} booking {booking.id}")
                self.apply_payment_to_booking(booking, payment)
            elif isinstance(outcome, VerificationFailed):
                payment.status = PaymentStatus.FAILED
                payment.gateway_response = outcome.raw
                payment.failed_at = now
            else:
                payment.status = PaymentStatus.PENDING
                payment.gateway_response = outcome.raw

        if already_verified:
            return self._already_verified(payment)

        PAYMENT_VERIFICATIONS.labels(gateway=gateway, outcome=outcome.outcome).inc()
        if booking is not None:
            logger.info(
                f"Payment {payment.reference_id} completed; booking {booking.id} "
                f"paid {booking.advance_paid}, balance {booking.balance_amount}"
            )
            await notification_dispatcher.payment_received(db, payment, booking)
            return {"success": True, "message": "Payment verified successfully", "payment": payment}

        if payment.status == PaymentStatus.FAILED:
            logger.warning(f"Payment {payment.reference_id} failed: {outcome.reason}")
            await notification_dispatcher.payment_failed(db, payment)
            return {"success": False, "message": f"Payment failed: {outcome.reason}", "payment": payment}

        logger.info(f"Payment {payment.reference_id} still pending at the gateway")
        return {"success": False, "message": "Payment is still pending", "payment": payment}

    async def initiate_refund(self, db: AsyncSession, payment_id: UUID, reason: str, user: User) -> Dict[str, Any]:
        """Record a refund request; settlement with the gateway happens outside the system"""
        async with db_manager.transaction(db):
            original = await self._get_payment(db, payment_id, for_update=True)
            if not await self._can_view(db, original, user):
                raise AuthorizationError("You do not have access to this payment")
            if original.status != PaymentStatus.COMPLETED:
                raise InvalidStateError("Can only refund completed payments")
            if original.payment_type == PaymentType.REFUND:
                raise InvalidStateError("Refund records cannot be refunded")

            existing = await db.scalar(
                select(Payment.id).where(
                    Payment.original_payment_id == original.id,
                    Payment.payment_type == PaymentType.REFUND
                )
            )
            if existing is not None:
                raise InvalidStateError(
                    "A refund has already been requested for this payment", {"refund_id": str(existing)}
                )

            refund = Payment(
                booking_id=original.booking_id,
                user_id=user.id,
                venue_id=original.venue_id,
                amount=-Decimal(original.amount),
                gateway=original.gateway,
                payment_type=PaymentType.REFUND,
                status=PaymentStatus.PENDING,
                reference_id=generate_reference_id(),
                original_payment_id=original.id,
                refund_reason=reason,
            )
            db.add(refund)

        logger.info(f"Refund initiated: {refund.reference_id} for payment {payment_id}")
        await notification_dispatcher.refund_requested(db, refund)
        return {
            "message": "Refund request submitted. It will be processed within 3-5 business days.",
            "refund": refund,
        }

    async def get_payment(self, db: AsyncSession, payment_id: UUID, user: User) -> Payment:
        payment = await self._get_payment(db, payment_id)
        if not await self._can_view(db, payment, user):
            raise AuthorizationError("You do not have access to this payment")
        return payment

    async def list_booking_payments(self, db: AsyncSession, booking_id: UUID, user: User) -> List[Payment]:
        booking = await self._get_booking(db, booking_id)
        if booking.user_id != user.id and user.role != UserRole.ADMIN:
            owner_id = await db.scalar(select(Venue.owner_id).where(Venue.id == booking.venue_id))
            if owner_id != user.id:
                raise AuthorizationError("You do not have access to this booking")
        result = await db.execute(
            select(Payment).where(Payment.booking_id == booking_id).order_by(Payment.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_user_payments(self, db: AsyncSession, user: User) -> List[Payment]:
        result = await db.execute(
            select(Payment).where(Payment.user_id == user.id).order_by(Payment.created_at.desc())
        )
        return list(result.scalars().all())

    async def owner_earnings(self, db: AsyncSession, owner: User) -> Dict[str, Any]:
        """
        Ledger view over the owner's venues:
        net = completed - refunds - completed * platform fee
        """
        result = await db.execute(
            select(Payment, Venue.name)
            .join(Venue, Venue.id == Payment.venue_id)
            .where(Venue.owner_id == owner.id)
        )
        rows = result.all()

        completed = [
            (payment, venue_name) for payment, venue_name in rows
            if payment.status == PaymentStatus.COMPLETED and payment.payment_type != PaymentType.REFUND
        ]
        total_earnings = sum((Decimal(p.amount) for p, _ in completed), Decimal("0"))
        total_refunds = sum(
            (abs(Decimal(p.amount)) for p, _ in rows if p.payment_type == PaymentType.REFUND),
            Decimal("0")
        )
        fee_percentage = Decimal(str(settings.PLATFORM_FEE_PERCENTAGE))
        platform_fee = _money(total_earnings * fee_percentage / 100)
        average = _money(total_earnings / len(completed)) if completed else Decimal("0")

        monthly: Dict[Tuple[int, int], List[Decimal]] = defaultdict(list)
        by_venue: Dict[UUID, Dict[str, Any]] = {}
        for payment, venue_name in completed:
            monthly[(payment.created_at.year, payment.created_at.month)].append(Decimal(payment.amount))
            entry = by_venue.setdefault(
                payment.venue_id,
                {"venue_id": payment.venue_id, "venue_name": venue_name, "earnings": Decimal("0"), "transactions": 0}
            )
            entry["earnings"] += Decimal(payment.amount)
            entry["transactions"] += 1

        return {
            "total_earnings": total_earnings,
            "total_refunds": total_refunds,
            "platform_fee": platform_fee,
            "platform_fee_percentage": float(fee_percentage),
            "net_earnings": total_earnings - total_refunds - platform_fee,
            "total_transactions": len(completed),
            "average_transaction": average,
            "monthly": [
                {"year": year, "month": month, "earnings": sum(amounts, Decimal("0")), "transactions": len(amounts)}
                for (year, month), amounts in sorted(monthly.items(), reverse=True)[:12]
            ],
            "by_venue": sorted(by_venue.values(), key=lambda v: v["earnings"], reverse=True),
        }

    async def owner_transactions(
        self,
        db: AsyncSession,
        owner: User,
        page: int = 1,
        limit: int = 20,
        venue_id: Optional[UUID] = None
    ) -> Tuple[List[Payment], int]:
        conditions = [Venue.owner_id == owner.id]
        if venue_id is not None:
            conditions.append(Payment.venue_id == venue_id)

        total = await db.scalar(
            select(func.count(Payment.id)).join(Venue, Venue.id == Payment.venue_id).where(*conditions)
        )
        result = await db.execute(
            select(Payment)
            .join(Venue, Venue.id == Payment.venue_id)
            .where(*conditions)
            .order_by(Payment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0


payment_service = PaymentService()


def get_payment_service() -> PaymentService:
    return payment_service
