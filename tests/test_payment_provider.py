import asyncio
import json

import httpx
import pytest

from services.payments import PaymentProof, PaymentProviderClient, PaymentProviderError

_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _install_transport(monkeypatch, handler):
    def _client(*args, **kwargs):
        return _REAL_ASYNC_CLIENT(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client)


def _client_under_test() -> PaymentProviderClient:
    return PaymentProviderClient(network="mainnet", api_key="main_api_key", base_url="https://pay.test/")


def test_settle_posts_proof(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"reference": "tx-1", "amount": 500, "status": "settled"})

    _install_transport(monkeypatch, handler)

    settlement = asyncio.run(
        _client_under_test().settle(PaymentProof("tx-1", 500), required_amount=500, payer="02ab")
    )

    assert seen["url"] == "https://pay.test/v1/payments/settle"
    assert seen["auth"] == "Bearer main_api_key"
    assert seen["body"]["requiredAmount"] == 500
    assert seen["body"]["network"] == "mainnet"
    assert settlement.settled
    assert settlement.amount == 500


def test_rejection_raises_provider_error(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(409, json={"error": "already used"}))

    with pytest.raises(PaymentProviderError) as excinfo:
        asyncio.run(_client_under_test().settle(PaymentProof("tx-1", 5), required_amount=5, payer=""))

    assert excinfo.value.status_code == 409
    assert excinfo.value.payload == {"error": "already used"}


def test_transport_failure_raises_provider_error(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _install_transport(monkeypatch, handler)

    with pytest.raises(PaymentProviderError) as excinfo:
        asyncio.run(_client_under_test().settle(PaymentProof("tx-1", 5), required_amount=5, payer=""))

    assert excinfo.value.status_code == 503


def test_unknown_status_is_not_settled(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(200, json={"amount": 5, "status": "pending"}))

    settlement = asyncio.run(_client_under_test().settle(PaymentProof("tx-9", 5), required_amount=5, payer=""))

    assert settlement.reference == "tx-9"
    assert not settlement.settled


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>ok</html>"),
        httpx.Response(200, json=["settled"]),
    ],
)
def test_unreadable_success_body_raises_provider_error(monkeypatch, response):
    _install_transport(monkeypatch, lambda request: response)

    with pytest.raises(PaymentProviderError) as excinfo:
        asyncio.run(_client_under_test().settle(PaymentProof("tx-1", 5), required_amount=5, payer=""))

    assert excinfo.value.status_code == 502
