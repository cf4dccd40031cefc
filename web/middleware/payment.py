"""Compute the price of each request and require settlement before dispatch."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from core.logging import get_logger
from core.request_context import bind_request_context, current_request_context
from services.payments import (
    InvalidPaymentAmount,
    InvalidPaymentProof,
    PaymentProof,
    PaymentProvider,
    PaymentProviderError,
    calculate_request_price,
    is_project_payment_path,
)
from web.routing import classify_request

logger = get_logger(__name__)

HEADER_PAYMENT = "x-payment"
HEADER_AMOUNT_REQUIRED = "X-Payment-Amount-Required"
HEADER_AMOUNT_PAID = "X-Payment-Amount-Paid"
HEADER_PAYMENT_NETWORK = "X-Payment-Network"


def _payment_error(
    status_code: int,
    code: str,
    message: str,
    *,
    amount: Optional[int] = None,
    network: str = "",
) -> JSONResponse:
    detail: dict[str, Any] = {"code": code, "message": message}
    headers = {}
    if amount is not None:
        detail["amount"] = amount
        detail["network"] = network
        headers = {HEADER_AMOUNT_REQUIRED: str(amount), HEADER_PAYMENT_NETWORK: network}
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


async def _read_json_body(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


def build_payment_middleware(provider: PaymentProvider) -> Callable:
    """Payment gate bound to one provider (always the primary network)."""

    async def payment_middleware(request: Request, call_next):
        if not classify_request(request.method, request.url.path).requires_payment:
            return await call_next(request)

        path = request.url.path
        body = await _read_json_body(request) if is_project_payment_path(path) else None
        try:
            price = calculate_request_price(path, body)
        except InvalidPaymentAmount as exc:
            return _payment_error(400, "payment.invalid_amount", str(exc))

        context = current_request_context()
        if price == 0:
            with bind_request_context(context.with_payment(0, None)):
                return await call_next(request)

        raw_proof = request.headers.get(HEADER_PAYMENT)
        if not raw_proof:
            return _payment_error(
                402,
                "payment.required",
                "Payment is required for this request.",
                amount=price,
                network=provider.network,
            )
        try:
            proof = PaymentProof.from_header(raw_proof)
        except InvalidPaymentProof as exc:
            return _payment_error(402, "payment.invalid_proof", str(exc), amount=price, network=provider.network)

        payer = context.identity.identity_key if context.identity else ""
        try:
            settlement = await provider.settle(proof, required_amount=price, payer=payer)
        except PaymentProviderError as exc:
            logger.warning("Payment settlement failed for %s: status=%s", path, exc.status_code)
            detail = {"code": "payment.provider_error", "message": "Payment could not be settled."}
            return JSONResponse(status_code=502, content={"detail": detail})

        if not settlement.settled or settlement.amount < price:
            logger.info(
                "Insufficient payment for %s: required=%s settled=%s status=%s",
                path,
                price,
                settlement.amount,
                settlement.status,
            )
            return _payment_error(
                402,
                "payment.insufficient",
                "Settled payment does not cover the price.",
                amount=price,
                network=provider.network,
            )

        with bind_request_context(context.with_payment(price, settlement)):
            response = await call_next(request)
        response.headers[HEADER_AMOUNT_PAID] = str(settlement.amount)
        return response

    return payment_middleware


__all__ = ["HEADER_AMOUNT_PAID", "HEADER_AMOUNT_REQUIRED", "HEADER_PAYMENT", "build_payment_middleware"]
