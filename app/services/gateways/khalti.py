"""
Khalti ePayment adapter: server-side initiation, lookup by pidx
"""

from typing import Dict, Optional
import logging

from app.config import settings
from app.core.exceptions import GatewayError, InvalidStateError
from app.models.booking import Booking
from app.models.payment import Payment, PaymentGateway
from app.services.gateways.base import (
    PaymentGatewayAdapter,
    InitiationResult,
    KhaltiCallback,
    GatewayOutcome,
    VerificationSucceeded,
    VerificationFailed,
    VerificationPending,
)

logger = logging.getLogger(__name__)

COMPLETED = "Completed"
STILL_OPEN = ("Pending", "Initiated")


def to_paisa(amount) -> int:
    return int(round(amount * 100))


class KhaltiAdapter(PaymentGatewayAdapter):
    gateway = PaymentGateway.KHALTI

    def __init__(self, secret_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.secret_key = settings.KHALTI_SECRET_KEY if secret_key is None else secret_key

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Key {self.secret_key}"}

    async def build_initiation(self, payment: Payment, booking: Booking) -> InitiationResult:
        if not self.configured:
            pidx = f"mock_{payment.reference_id}"
            logger.warning(f"[DEV MODE] Khalti not configured, payment {payment.reference_id} will auto-complete")
            return InitiationResult(
                payment_url=f"{settings.payment_success_url}?gateway=khalti&pidx={pidx}",
                gateway_token=pidx,
                raw={"mock": True, "pidx": pidx},
                mock=True,
            )

        body = await self._request(
            "initiate",
            "POST",
            settings.khalti_initiate_url,
            json_body={
                "return_url": f"{settings.payment_success_url}?gateway=khalti",
                "website_url": settings.FRONTEND_URL,
                "amount": to_paisa(payment.amount),
                "purchase_order_id": payment.reference_id,
                "purchase_order_name": f"Venue booking {booking.id}",
                "customer_info": {
                    "name": booking.contact_name,
                    "email": booking.contact_email,
                    "phone": booking.contact_phone,
                },
            },
            headers=self._auth_headers,
            failure_message="Failed to initiate Khalti payment",
        )
        pidx = body.get("pidx")
        payment_url = body.get("payment_url")
        if not pidx or not payment_url:
            logger.error(f"Khalti initiation response missing pidx/payment_url: {body}")
            raise GatewayError("khalti", "Failed to initiate Khalti payment", {"reason": "malformed response"})
        return InitiationResult(payment_url=payment_url, gateway_token=pidx, raw=body)

    def correlation_key(self, callback: KhaltiCallback) -> Dict[str, str]:
        return {"gateway_token": callback.pidx}

    async def _lookup(self, pidx: str) -> GatewayOutcome:
        if not self.configured:
            return VerificationSucceeded(provider_txn_id=pidx, raw={"mock": True, "pidx": pidx})

        body = await self._request(
            "lookup",
            "POST",
            settings.khalti_lookup_url,
            json_body={"pidx": pidx},
            headers=self._auth_headers,
            failure_message="Payment verification failed",
        )
        status = body.get("status")
        if status == COMPLETED:
            return VerificationSucceeded(provider_txn_id=str(body.get("transaction_id") or pidx), raw=body)
        if status in STILL_OPEN:
            return VerificationPending(raw=body)
        return VerificationFailed(reason=f"Payment status: {status}", raw=body)

    async def interpret_callback(self, callback: KhaltiCallback, payment: Payment) -> GatewayOutcome:
        # The redirect itself is not trusted; only the lookup answer is
        return await self._lookup(callback.pidx)

    async def check_status(self, payment: Payment) -> GatewayOutcome:
        if not payment.gateway_token:
            raise InvalidStateError(
                "Khalti never acknowledged this payment; initiate a new payment instead"
            )
        return await self._lookup(payment.gateway_token)
