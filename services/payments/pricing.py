"""Per-request pricing."""

from __future__ import annotations

from typing import Any

PROJECT_PREFIX = "/api/v1/project/"
PAYMENT_SUFFIX = "/pay"
AMOUNT_FIELD = "amount"


class InvalidPaymentAmount(ValueError):
    """Raised when a priced request carries an unusable amount."""


def is_project_payment_path(path: str) -> bool:
    return path.startswith(PROJECT_PREFIX) and path.endswith(PAYMENT_SUFFIX)


def calculate_request_price(path: str, body: Any) -> int:
    """Return the amount (smallest currency unit) the request must pay; 0 is free.

    Project payment routes charge exactly the ``amount`` the caller submits.
    """
    if not is_project_payment_path(path):
        return 0
    amount = body.get(AMOUNT_FIELD) if isinstance(body, dict) else None
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidPaymentAmount("Payment amount must be a non-negative integer.")
    return amount


__all__ = ["InvalidPaymentAmount", "calculate_request_price", "is_project_payment_path"]
