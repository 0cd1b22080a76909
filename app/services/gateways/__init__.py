"""
Payment gateway adapters
"""

from typing import Dict

from app.models.payment import PaymentGateway
from app.services.gateways.base import (
    PaymentGatewayAdapter,
    InitiationResult,
    EsewaCallback,
    KhaltiCallback,
    GatewayCallback,
    GatewayOutcome,
    VerificationSucceeded,
    VerificationFailed,
    VerificationPending,
)
from app.services.gateways.esewa import EsewaAdapter
from app.services.gateways.khalti import KhaltiAdapter


def default_adapters() -> Dict[PaymentGateway, PaymentGatewayAdapter]:
    return {
        PaymentGateway.ESEWA: EsewaAdapter(),
        PaymentGateway.KHALTI: KhaltiAdapter(),
    }


__all__ = [
    "PaymentGatewayAdapter",
    "InitiationResult",
    "EsewaCallback",
    "KhaltiCallback",
    "GatewayCallback",
    "GatewayOutcome",
    "VerificationSucceeded",
    "VerificationFailed",
    "VerificationPending",
    "EsewaAdapter",
    "KhaltiAdapter",
    "default_adapters",
]
