"""
Common types for payment gateway adapters
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Optional, Union
import logging
import time

import httpx
from pydantic import BaseModel, Field

from app.config import settings
from app.core.exceptions import GatewayError, GatewayTimeoutError
from app.core.metrics import GATEWAY_REQUEST_DURATION
from app.models.booking import Booking
from app.models.payment import Payment, PaymentGateway

logger = logging.getLogger(__name__)


# Callback payloads, validated at the adapter boundary

class EsewaCallback(BaseModel):
    gateway: Literal["ESEWA"] = "ESEWA"
    data: str = Field(..., min_length=1)


class KhaltiCallback(BaseModel):
    gateway: Literal["KHALTI"] = "KHALTI"
    pidx: str = Field(..., min_length=1)


GatewayCallback = Annotated[Union[EsewaCallback, KhaltiCallback], Field(discriminator="gateway")]


# Verification outcomes

class VerificationSucceeded(BaseModel):
    outcome: Literal["success"] = "success"
    provider_txn_id: str
    raw: Dict[str, Any]


class VerificationFailed(BaseModel):
    outcome: Literal["failure"] = "failure"
    reason: str
    raw: Dict[str, Any]


class VerificationPending(BaseModel):
    outcome: Literal["pending"] = "pending"
    raw: Dict[str, Any]


GatewayOutcome = Annotated[
    Union[VerificationSucceeded, VerificationFailed, VerificationPending],
    Field(discriminator="outcome")
]


@dataclass
class InitiationResult:
    """What the client needs to reach the gateway, plus what we keep for verification"""
    payment_url: Optional[str] = None
    form_data: Optional[Dict[str, str]] = None
    gateway_token: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)
    mock: bool = False


def format_amount(amount: Decimal) -> str:
    """Amounts as gateways expect them: no trailing zeros for whole rupees"""
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount.quantize(Decimal("0.01")))


class PaymentGatewayAdapter(ABC):
    """Protocol translation between our Payment rows and one provider"""

    gateway: PaymentGateway

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS

    @property
    @abstractmethod
    def configured(self) -> bool:
        """False means credentials are missing and the adapter runs in mock mode"""

    @abstractmethod
    async def build_initiation(self, payment: Payment, booking: Booking) -> InitiationResult:
        ...

    @abstractmethod
    def correlation_key(self, callback) -> Dict[str, str]:
        """Payment column and value identifying the payment a callback belongs to"""

    @abstractmethod
    async def interpret_callback(self, callback, payment: Payment) -> GatewayOutcome:
        ...

    @abstractmethod
    async def check_status(self, payment: Payment) -> GatewayOutcome:
        """Ask the provider about a payment using only what we stored at initiation"""

    @property
    def name(self) -> str:
        return self.gateway.value.lower()

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        failure_message: str
    ) -> Dict[str, Any]:
        started = time.perf_counter()
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            try:
                response = await client.request(method, url, json=json_body, params=params, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as exc:
                logger.warning(f"{self.name} {operation} timed out after {self._timeout}s: {exc}")
                raise GatewayTimeoutError(self.name, f"{failure_message}: gateway timed out, please retry")
            except httpx.HTTPStatusError as exc:
                logger.error(
                    f"{self.name} {operation} failed with {exc.response.status_code}: {exc.response.text}"
                )
                raise GatewayError(self.name, failure_message, {"status_code": exc.response.status_code})
            except (httpx.HTTPError, ValueError) as exc:
                logger.error(f"{self.name} {operation} failed: {exc}")
                raise GatewayError(self.name, failure_message)
            finally:
                GATEWAY_REQUEST_DURATION.labels(gateway=self.name, operation=operation).observe(
                    time.perf_counter() - started
                )
