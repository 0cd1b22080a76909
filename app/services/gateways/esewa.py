"""
eSewa ePay v2 adapter: signed form post, base64 JSON callback
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
import base64
import binascii
import hashlib
import hmac
import json
import logging
from urllib.parse import urlencode

from pydantic import BaseModel, ValidationError as PydanticValidationError

from app.config import settings
from app.core.exceptions import GatewayError
from app.models.booking import Booking
from app.models.payment import Payment, PaymentGateway
from app.services.gateways.base import (
    PaymentGatewayAdapter,
    InitiationResult,
    EsewaCallback,
    GatewayOutcome,
    VerificationSucceeded,
    VerificationFailed,
    VerificationPending,
    format_amount,
)

logger = logging.getLogger(__name__)

SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"
# A callback signature must at least cover what we act on
CALLBACK_SIGNED_FIELDS = {"transaction_uuid", "total_amount", "status"}


class EsewaCallbackData(BaseModel):
    """Decoded `data` parameter eSewa appends to the success URL"""
    transaction_uuid: str
    total_amount: str
    status: str
    transaction_code: Optional[str] = None
    product_code: Optional[str] = None
    signed_field_names: Optional[str] = None
    signature: Optional[str] = None

    def __init__(self, **data: Any):
        # eSewa sends total_amount as a number or a string such as "1,000.0"
        if "total_amount" in data and data["total_amount"] is not None:
            data["total_amount"] = str(data["total_amount"])
        super().__init__(**data)


def sign(message: str, secret_key: str) -> str:
    digest = hmac.new(secret_key.encode(), message.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def signature_message(fields: Dict[str, Any], signed_field_names: str) -> str:
    return ",".join(f"{name}={fields.get(name, '')}" for name in signed_field_names.split(","))


def decode_callback(data: str) -> Dict[str, Any]:
    try:
        decoded = json.loads(base64.b64decode(data, validate=False).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GatewayError("esewa", "Payment verification failed", {"reason": f"undecodable callback: {exc}"})
    if not isinstance(decoded, dict):
        raise GatewayError("esewa", "Payment verification failed", {"reason": "callback is not an object"})
    return decoded


def _amount(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value.replace(",", ""))
    except (InvalidOperation, AttributeError):
        return None


class EsewaAdapter(PaymentGatewayAdapter):
    gateway = PaymentGateway.ESEWA

    def __init__(self, secret_key: Optional[str] = None, merchant_code: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.secret_key = settings.ESEWA_SECRET_KEY if secret_key is None else secret_key
        self.merchant_code = merchant_code or settings.ESEWA_MERCHANT_CODE

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    async def build_initiation(self, payment: Payment, booking: Booking) -> InitiationResult:
        amount = format_amount(payment.amount)
        form_data = {
            "amount": amount,
            "tax_amount": "0",
            "total_amount": amount,
            "transaction_uuid": payment.reference_id,
            "product_code": self.merchant_code,
            "product_service_charge": "0",
            "product_delivery_charge": "0",
            "success_url": f"{settings.payment_success_url}?gateway=esewa",
            "failure_url": f"{settings.payment_failure_url}?gateway=esewa",
            "signed_field_names": SIGNED_FIELD_NAMES,
        }

        if not self.configured:
            logger.warning(f"[DEV MODE] eSewa not configured, payment {payment.reference_id} will auto-complete")
            mock_callback = base64.b64encode(json.dumps({
                "transaction_uuid": payment.reference_id,
                "total_amount": amount,
                "transaction_code": f"mock_{payment.reference_id}",
                "status": "COMPLETE",
            }).encode()).decode()
            form_data["signature"] = ""
            return InitiationResult(
                payment_url=f"{settings.payment_success_url}?{urlencode({'gateway': 'esewa', 'data': mock_callback})}",
                form_data=form_data,
                raw={"mock": True},
                mock=True,
            )

        form_data["signature"] = sign(signature_message(form_data, SIGNED_FIELD_NAMES), self.secret_key)
        return InitiationResult(payment_url=settings.esewa_payment_url, form_data=form_data)

    def parse(self, callback: EsewaCallback) -> EsewaCallbackData:
        decoded = decode_callback(callback.data)
        try:
            return EsewaCallbackData(**decoded)
        except PydanticValidationError as exc:
            raise GatewayError("esewa", "Payment verification failed", {"reason": str(exc)})

    def correlation_key(self, callback: EsewaCallback) -> Dict[str, str]:
        return {"reference_id": self.parse(callback).transaction_uuid}

    async def interpret_callback(self, callback: EsewaCallback, payment: Payment) -> GatewayOutcome:
        data = self.parse(callback)
        raw = data.model_dump(exclude_none=True)

        if not self.configured:
            return VerificationSucceeded(
                provider_txn_id=data.transaction_code or f"mock_{payment.reference_id}",
                raw={"mock": True, **raw},
            )

        if not data.signature or not data.signed_field_names:
            logger.error(f"Unsigned eSewa callback for {data.transaction_uuid}")
            raise GatewayError("esewa", "Payment verification failed", {"reason": "missing signature"})
        if not CALLBACK_SIGNED_FIELDS <= set(data.signed_field_names.split(",")):
            logger.error(f"eSewa callback for {data.transaction_uuid} signs only {data.signed_field_names}")
            raise GatewayError("esewa", "Payment verification failed", {"reason": "incomplete signature"})
        expected = sign(signature_message(raw, data.signed_field_names), self.secret_key)
        if not hmac.compare_digest(expected, data.signature):
            logger.error(f"eSewa callback signature mismatch for {data.transaction_uuid}")
            raise GatewayError("esewa", "Payment verification failed", {"reason": "invalid signature"})

        paid = _amount(data.total_amount)
        if paid is None or paid != Decimal(payment.amount):
            logger.error(f"eSewa callback amount {data.total_amount} does not match payment {payment.reference_id}")
            raise GatewayError("esewa", "Payment verification failed", {"reason": "amount mismatch"})

        if data.status == "COMPLETE":
            return VerificationSucceeded(provider_txn_id=data.transaction_code or "", raw=raw)
        if data.status == "PENDING":
            return VerificationPending(raw=raw)
        return VerificationFailed(reason=f"eSewa status {data.status}", raw=raw)

    async def check_status(self, payment: Payment) -> GatewayOutcome:
        if not self.configured:
            return VerificationSucceeded(
                provider_txn_id=f"mock_{payment.reference_id}",
                raw={"mock": True, "transaction_uuid": payment.reference_id},
            )

        body = await self._request(
            "status",
            "GET",
            settings.esewa_status_url,
            params={
                "product_code": self.merchant_code,
                "total_amount": format_amount(payment.amount),
                "transaction_uuid": payment.reference_id,
            },
            failure_message="Payment verification failed",
        )
        status = body.get("status")
        if status == "COMPLETE":
            return VerificationSucceeded(provider_txn_id=str(body.get("ref_id") or ""), raw=body)
        if status in ("PENDING", "AMBIGUOUS"):
            return VerificationPending(raw=body)
        return VerificationFailed(reason=f"eSewa status {status}", raw=body)
