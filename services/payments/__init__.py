"""Payments service helpers."""

from .pricing import InvalidPaymentAmount, calculate_request_price, is_project_payment_path
from .provider import (
    InvalidPaymentProof,
    PaymentProof,
    PaymentProvider,
    PaymentProviderClient,
    PaymentProviderError,
    PaymentSettlement,
    build_payment_provider,
)

__all__ = [
    "InvalidPaymentAmount",
    "InvalidPaymentProof",
    "PaymentProof",
    "PaymentProvider",
    "PaymentProviderClient",
    "PaymentProviderError",
    "PaymentSettlement",
    "build_payment_provider",
    "calculate_request_price",
    "is_project_payment_path",
]
