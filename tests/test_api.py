"""HTTP tests for the checkout, webhook, transaction and system routes."""

import json

import pytest
import pytest_asyncio
from sqlalchemy import select

from paylink.api.dependencies import get_broker, get_registry, get_settings
from paylink.engine.merchants import hash_api_key
from paylink.engine.worker import WebhookWorker
from paylink.errors import BrokerUnavailableError, InvalidArgumentError
from paylink.main import app
from paylink.metrics import MetricsRegistry, metrics
from paylink.models.transaction import Merchant, Transaction
from paylink.providers.midtrans import MidtransProvider
from paylink.queue.broker import InMemoryBroker
from paylink.queue.enqueuer import QUEUE_KEY, WebhookJob

from tests.conftest import SERVER_KEY, XENDIT_TOKEN, midtrans_payload


def checkout_body(**overrides) -> dict:
    body = {
        "merchant_id": "m1",
        "amount": 50000,
        "currency": "IDR",
        "order_id": "order-123",
        "provider_preference": "midtrans",
    }
    body.update(overrides)
    return body


class BrokenMidtrans(MidtransProvider):
    async def create_payment(self, tx):
        raise RuntimeError("connection reset by peer")


class FlakyMidtrans(MidtransProvider):
    """Raises on the first ``failures`` payment creations."""

    def __init__(self, server_key, failures):
        super().__init__(server_key)
        self.failures = failures
        self.calls = 0

    async def create_payment(self, tx):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("upstream 503")
        return await super().create_payment(tx)


class RejectingMidtrans(MidtransProvider):
    async def create_payment(self, tx):
        raise InvalidArgumentError("currency not supported")


class StaticRegistry:
    def __init__(self, *providers):
        self._providers = {p.name: p for p in providers}

    def get(self, name):
        return self._providers[name]


class RejectingBroker(InMemoryBroker):
    async def push_left(self, key, value):
        raise BrokerUnavailableError("connection refused")


async def _transactions(session_factory, order_id: str) -> list[Transaction]:
    async with session_factory() as session:
        result = await session.execute(select(Transaction).where(Transaction.provider_tx_id == order_id))
        return list(result.scalars())


async def _queued_jobs(broker) -> list[WebhookJob]:
    jobs = []
    while True:
        item = await broker.blocking_pop_right(QUEUE_KEY, 0.01)
        if item is None:
            return jobs
        jobs.append(WebhookJob.decode(item[1]))


class TestSystemRoutes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_metrics_exposition(self, client):
        resp = await client.get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        text = resp.text
        assert "# HELP paylink_requests_total" in text
        assert "# TYPE paylink_webhooks_total counter" in text
        assert 'paylink_webhooks_total{status="received"}' in text
        assert "paylink_latency_avg_ms" in text
        assert "paylink_uptime_seconds" in text
        assert "# TYPE paylink_checkouts_total counter" in text
        assert "_created" not in text
        assert "paylink_checkouts_by_provider_total" not in "\n".join(
            line for line in text.splitlines() if not line.startswith("#")
        )

    @pytest.mark.asyncio
    async def test_v1_requests_are_counted(self, client):
        before_ok = metrics.value("paylink_requests_total", status="success")
        before_failed = metrics.value("paylink_requests_total", status="failed")

        await client.get("/v1/tx/does-not-exist")
        await client.get("/health")

        assert metrics.value("paylink_requests_total", status="failed") == before_failed + 1
        assert metrics.value("paylink_requests_total", status="success") == before_ok


class TestCheckout:
    @pytest.mark.asyncio
    async def test_creates_pending_transaction(self, client, session_factory):
        before = metrics.value("paylink_checkouts_by_provider", provider="midtrans")

        resp = await client.post("/v1/checkout", json=checkout_body())

        assert resp.status_code == 200
        data = resp.json()
        assert data["provider_tx_id"] == "snap_order-123_50000"
        assert data["checkout_url"].endswith("/snap/v3/redirection/snap_order-123_50000")

        [tx] = await _transactions(session_factory, "order-123")
        assert tx.status == "PENDING"
        assert tx.merchant_id == "m1"
        assert tx.amount == 50000
        assert tx.metadata_["provider_reference"] == "snap_order-123_50000"
        assert metrics.value("paylink_checkouts_by_provider", provider="midtrans") == before + 1

        exposition = (await client.get("/metrics")).text.splitlines()
        assert f'paylink_checkouts_by_provider{{provider="midtrans"}} {before + 1}' in exposition

    @pytest.mark.asyncio
    async def test_xendit_checkout(self, client):
        resp = await client.post(
            "/v1/checkout", json=checkout_body(provider_preference="xendit", order_id="inv-7")
        )
        assert resp.status_code == 200
        assert resp.json()["checkout_url"] == "https://checkout-staging.xendit.co/web/xnd_inv_inv-7"

    @pytest.mark.asyncio
    async def test_currency_is_uppercased(self, client, session_factory):
        resp = await client.post("/v1/checkout", json=checkout_body(currency="idr"))
        assert resp.status_code == 200
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.currency == "IDR"

    @pytest.mark.asyncio
    async def test_zero_amount_rejected_without_side_effects(self, client, session_factory):
        before = metrics.value("paylink_checkouts_total")

        resp = await client.post("/v1/checkout", json=checkout_body(amount=0))

        assert resp.status_code == 400
        assert resp.json() == {"error": "amount must be positive"}
        assert await _transactions(session_factory, "order-123") == []
        assert metrics.value("paylink_checkouts_total") == before

    @pytest.mark.asyncio
    async def test_missing_fields_report_first_rule(self, client):
        resp = await client.post("/v1/checkout", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "merchant_id is required"}

    @pytest.mark.asyncio
    async def test_unknown_provider_is_bad_request(self, client, session_factory):
        resp = await client.post("/v1/checkout", json=checkout_body(provider_preference="paypal"))
        assert resp.status_code == 400
        assert resp.json() == {"error": "unknown provider: paypal"}
        assert await _transactions(session_factory, "order-123") == []

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, client):
        resp = await client.post(
            "/v1/checkout", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "invalid request body"}

    @pytest.mark.asyncio
    async def test_wrong_field_type(self, client):
        resp = await client.post("/v1/checkout", json=checkout_body(amount="lots"))
        assert resp.status_code == 400
        assert resp.json() == {"error": "invalid request body"}

    @pytest.mark.asyncio
    async def test_duplicate_order_rejected(self, client, session_factory):
        first = await client.post("/v1/checkout", json=checkout_body())
        second = await client.post("/v1/checkout", json=checkout_body())

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json() == {"error": "order_id already exists"}
        assert len(await _transactions(session_factory, "order-123")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order_id", ["order 123", "bad id!"])
    async def test_malformed_order_id_rejected_before_persisting(self, client, session_factory, order_id):
        resp = await client.post("/v1/checkout", json=checkout_body(order_id=order_id))

        assert resp.status_code == 400
        assert resp.json() == {"error": "invalid order_id format"}
        assert await _transactions(session_factory, order_id) == []

    @pytest.mark.asyncio
    async def test_adapter_rejection_marks_transaction_failed(self, client, session_factory):
        app.dependency_overrides[get_registry] = lambda: StaticRegistry(RejectingMidtrans(SERVER_KEY))

        resp = await client.post("/v1/checkout", json=checkout_body())

        assert resp.status_code == 400
        assert resp.json() == {"error": "currency not supported"}
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.status == "FAILED"

    @pytest.mark.asyncio
    async def test_provider_failure_is_500(self, client, session_factory):
        app.dependency_overrides[get_registry] = lambda: StaticRegistry(BrokenMidtrans(SERVER_KEY))
        before = metrics.value("paylink_checkouts_total")

        resp = await client.post("/v1/checkout", json=checkout_body())

        assert resp.status_code == 500
        assert resp.json() == {"error": "payment creation failed"}
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.status == "FAILED"
        assert tx.metadata_["error"] == "connection reset by peer"
        assert metrics.value("paylink_checkouts_total") == before

    @pytest.mark.asyncio
    async def test_resubmit_after_provider_failure(self, client, session_factory):
        flaky = FlakyMidtrans(SERVER_KEY, failures=1)
        app.dependency_overrides[get_registry] = lambda: StaticRegistry(flaky)

        first = await client.post("/v1/checkout", json=checkout_body())
        second = await client.post("/v1/checkout", json=checkout_body())

        assert first.status_code == 500
        assert second.status_code == 200
        assert second.json()["provider_tx_id"] == "snap_order-123_50000"
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.status == "PENDING"
        assert tx.metadata_ == {
            "provider_reference": "snap_order-123_50000",
            "checkout_url": second.json()["checkout_url"],
        }

    @pytest.mark.asyncio
    async def test_resubmit_after_adapter_rejection(self, client, session_factory):
        app.dependency_overrides[get_registry] = lambda: StaticRegistry(RejectingMidtrans(SERVER_KEY))
        assert (await client.post("/v1/checkout", json=checkout_body())).status_code == 400

        app.dependency_overrides[get_registry] = lambda: StaticRegistry(MidtransProvider(SERVER_KEY))
        resp = await client.post("/v1/checkout", json=checkout_body(amount=75000))

        assert resp.status_code == 200
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.status == "PENDING"
        assert tx.amount == 75000

    @pytest.mark.asyncio
    async def test_failed_order_not_reusable_by_other_merchant(self, client, session_factory):
        app.dependency_overrides[get_registry] = lambda: StaticRegistry(FlakyMidtrans(SERVER_KEY, failures=1))
        assert (await client.post("/v1/checkout", json=checkout_body())).status_code == 500

        resp = await client.post("/v1/checkout", json=checkout_body(merchant_id="m2"))

        assert resp.status_code == 400
        assert resp.json() == {"error": "order_id already exists"}
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.merchant_id == "m1"
        assert tx.status == "FAILED"

    @pytest.mark.asyncio
    async def test_order_failed_by_provider_is_a_duplicate(self, client, broker, registry, session_factory):
        """A payment the provider accepted and later denied cannot be resubmitted."""
        assert (await client.post("/v1/checkout", json=checkout_body())).status_code == 200
        denied = midtrans_payload(order_id="order-123", status_code="202", transaction_status="deny")
        assert (await client.post("/v1/webhook/midtrans", json=denied)).status_code == 200
        worker = WebhookWorker(
            broker, registry, session_factory, metrics=MetricsRegistry(), pop_timeout=1.0, retry_delay=0
        )
        await worker.process_next()
        [tx] = await _transactions(session_factory, "order-123")
        assert tx.status == "FAILED"

        resp = await client.post("/v1/checkout", json=checkout_body())

        assert resp.status_code == 400
        assert resp.json() == {"error": "order_id already exists"}


class TestMerchantAuth:
    @pytest.fixture(autouse=True)
    def require_auth(self, client, test_settings):
        secured = test_settings.model_copy(update={"require_merchant_auth": True})
        app.dependency_overrides[get_settings] = lambda: secured

    @pytest_asyncio.fixture
    async def merchant(self, session_factory):
        async with session_factory() as session:
            session.add(Merchant(id="m1", name="Acme", api_key_hash=hash_api_key("sk_live_acme")))
            await session.commit()

    @pytest.mark.asyncio
    async def test_missing_key(self, client, merchant):
        resp = await client.post("/v1/checkout", json=checkout_body())
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_key(self, client, merchant):
        resp = await client.post(
            "/v1/checkout", json=checkout_body(), headers={"X-API-Key": "sk_live_other"}
        )
        assert resp.status_code == 401
        assert resp.json() == {"error": "invalid API key"}

    @pytest.mark.asyncio
    async def test_key_for_other_merchant(self, client, merchant):
        resp = await client.post(
            "/v1/checkout",
            json=checkout_body(merchant_id="m2"),
            headers={"X-API-Key": "sk_live_acme"},
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_valid_key(self, client, merchant):
        resp = await client.post(
            "/v1/checkout", json=checkout_body(), headers={"X-API-Key": "sk_live_acme"}
        )
        assert resp.status_code == 200


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_valid_midtrans_webhook_is_queued(self, client, broker):
        before = metrics.value("paylink_webhooks_total", status="received")

        resp = await client.post("/v1/webhook/midtrans", json=midtrans_payload())

        assert resp.status_code == 200
        assert resp.json() == {"status": "queued", "event_id": "txn-0001"}
        [job] = await _queued_jobs(broker)
        assert job.provider == "midtrans"
        assert job.event_id == "txn-0001"
        assert job.retries == 0
        assert json.loads(job.payload)["order_id"] == "order-456"
        assert metrics.value("paylink_webhooks_total", status="received") == before + 1

    @pytest.mark.asyncio
    async def test_bad_signature_is_rejected(self, client, broker):
        before = metrics.value("paylink_webhooks_total", status="failed")

        resp = await client.post(
            "/v1/webhook/midtrans", json=midtrans_payload(signature_key="invalid")
        )

        assert resp.status_code == 401
        assert resp.json() == {"error": "invalid signature"}
        assert await broker.length(QUEUE_KEY) == 0
        assert metrics.value("paylink_webhooks_total", status="failed") == before + 1

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client, broker):
        resp = await client.post("/v1/webhook/paypal", json={"id": "x"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "unknown provider: paypal"}
        assert await broker.length(QUEUE_KEY) == 0

    @pytest.mark.asyncio
    async def test_empty_body(self, client):
        resp = await client.post("/v1/webhook/midtrans", content=b"")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_malformed_json(self, client, broker):
        resp = await client.post("/v1/webhook/midtrans", content=b"{not json")
        assert resp.status_code == 400
        assert await broker.length(QUEUE_KEY) == 0

    @pytest.mark.asyncio
    async def test_missing_signature_fields(self, client):
        payload = midtrans_payload()
        del payload["signature_key"]
        resp = await client.post("/v1/webhook/midtrans", json=payload)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_oversized_body(self, client, broker, test_settings):
        small = test_settings.model_copy(update={"max_webhook_body_bytes": 1024})
        app.dependency_overrides[get_settings] = lambda: small

        resp = await client.post("/v1/webhook/midtrans", content=b"{" + b" " * 2048 + b"}")

        assert resp.status_code == 400
        assert resp.json() == {"error": "request body too large"}
        assert await broker.length(QUEUE_KEY) == 0

    @pytest.mark.asyncio
    async def test_xendit_wrong_token(self, client, broker):
        resp = await client.post(
            "/v1/webhook/xendit",
            json={"external_id": "inv-7", "status": "PAID"},
            headers={"x-callback-token": "wrong"},
        )
        assert resp.status_code == 401
        assert await broker.length(QUEUE_KEY) == 0

    @pytest.mark.asyncio
    async def test_xendit_valid_token(self, client, broker):
        resp = await client.post(
            "/v1/webhook/xendit",
            json={"external_id": "inv-7", "status": "PAID"},
            headers={"x-callback-token": XENDIT_TOKEN, "webhook-id": "evt-42"},
        )
        assert resp.status_code == 200
        assert resp.json()["event_id"] == "evt-42"
        [job] = await _queued_jobs(broker)
        assert job.provider == "xendit"

    @pytest.mark.asyncio
    async def test_broker_failure_is_500(self, client):
        app.dependency_overrides[get_broker] = lambda: RejectingBroker()

        resp = await client.post("/v1/webhook/midtrans", json=midtrans_payload())

        assert resp.status_code == 500
        assert resp.json() == {"error": "failed to enqueue webhook"}


class TestTransactions:
    @pytest.mark.asyncio
    async def test_get_transaction(self, client, pending_tx):
        resp = await client.get(f"/v1/tx/{pending_tx.id}")
        assert resp.status_code == 200
        assert resp.json() == {"id": pending_tx.id, "status": "pending"}

    @pytest.mark.asyncio
    async def test_missing_transaction(self, client):
        resp = await client.get("/v1/tx/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "transaction not found"}


@pytest.mark.asyncio
async def test_checkout_webhook_worker_flow(client, broker, registry, session_factory):
    """A paid notification for a fresh checkout shows up on the status endpoint."""
    resp = await client.post("/v1/checkout", json=checkout_body(order_id="order-e2e"))
    assert resp.status_code == 200
    [tx] = await _transactions(session_factory, "order-e2e")

    resp = await client.post(
        "/v1/webhook/midtrans",
        json=midtrans_payload(order_id="order-e2e", transaction_id="txn-e2e"),
    )
    assert resp.status_code == 200

    worker = WebhookWorker(
        broker, registry, session_factory, metrics=MetricsRegistry(), pop_timeout=1.0, retry_delay=0
    )
    assert await worker.process_next() is True

    resp = await client.get(f"/v1/tx/{tx.id}")
    assert resp.json() == {"id": tx.id, "status": "paid"}
