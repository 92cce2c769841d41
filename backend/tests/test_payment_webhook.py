"""
Tests for POST /api/v1/webhooks/handler.

Covers signature rejection, end-to-end reconciliation, stock return after
the response, idempotent redelivery and the always-200 error policy.
"""

import json
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from conftest import notification_body, signature_header
from storefront.core.exceptions import OrderPersistenceError, PaymentProviderError
from storefront.models.shop import OrderStatus
from storefront.modules.payments.reconciler import OrderReconciler
from storefront.modules.shop.service import ShopService

URL = "/api/v1/webhooks/handler"
RETURN_STOCK = "storefront.api.v1.endpoints.webhooks.return_order_stock"


class TestSignatureRejection:
    async def test_missing_signature_header(self, client, provider):
        res = await client.post(
            URL,
            params={"data.id": "P1", "type": "payment"},
            content=notification_body("P1"),
            headers={"Content-Type": "application/json"},
        )

        assert res.status_code == 400
        assert res.json()["detail"] == "Webhook Error: Missing x-signature header"
        assert provider.calls == []

    async def test_invalid_signature(self, client, provider):
        res = await client.post(
            URL,
            params={"data.id": "P1", "type": "payment"},
            content=notification_body("P1"),
            headers={"x-signature": "ts=1700000000,v1=invalidsignaturehex"},
        )

        assert res.status_code == 400
        assert provider.calls == []

    async def test_missing_data_id_query(self, client, provider):
        res = await client.post(
            URL,
            content=notification_body("P1"),
            headers={"x-signature": signature_header("P1")},
        )

        assert res.status_code == 400
        assert "data.id" in res.json()["detail"]

    async def test_malformed_body_with_valid_signature(self, client):
        res = await client.post(
            URL,
            params={"data.id": "P1"},
            content=b"not json",
            headers={"x-signature": signature_header("P1")},
        )

        assert res.status_code == 400
        assert res.json()["detail"] == "Webhook Error: Malformed notification body"

    async def test_body_id_must_match_signed_id(self, client, provider, make_order):
        order = await make_order()
        provider.add_payment("P2", status="approved", external_reference=order.id)

        res = await client.post(
            URL,
            params={"data.id": "P1", "type": "payment"},
            content=notification_body("P2"),
            headers={"x-signature": signature_header("P1")},
        )

        assert res.status_code == 400
        assert res.json()["detail"] == "Webhook Error: data.id does not match signed id"
        assert provider.calls == []

    async def test_numeric_body_id_matches_query(self, client, provider):
        body = json.dumps({"type": "payment", "data": {"id": 123}}).encode()

        res = await client.post(
            URL,
            params={"data.id": "123", "type": "payment"},
            content=body,
            headers={"x-signature": signature_header("123")},
        )

        assert res.status_code == 200
        assert provider.calls == ["123"]

    async def test_request_id_header_is_signed(self, client, provider):
        res = await client.post(
            URL,
            params={"data.id": "P1", "type": "payment"},
            content=notification_body("P1"),
            headers={
                "x-signature": signature_header("P1", request_id="req-42"),
                "x-request-id": "req-42",
            },
        )

        # Signature accepted; the unknown payment is reported, not rejected
        assert res.status_code == 200
        assert res.json()["processed"] is False
        assert provider.calls == ["P1"]


class TestApprovedPayment:
    async def test_end_to_end(self, client, provider, make_order, db_session, product):
        order = await make_order(order_id="O1")
        provider.add_payment(
            "P1",
            status="approved",
            external_reference="O1",
            payer={"email": "approve@webhook.test"},
            payment_method_id="visa",
            card={"last_four_digits": "4321"},
        )

        res = await client.post(
            URL,
            params={"data.id": "P1", "type": "payment"},
            content=notification_body("P1"),
            headers={"x-signature": signature_header("P1")},
        )

        assert res.status_code == 200
        body = res.json()
        assert body["received"] is True
        assert body["processed"] is True
        assert provider.calls == ["P1"]

        await db_session.refresh(order)
        assert order.order_status == OrderStatus.PROCESSING
        assert order.paid_at is not None
        assert order.payment_result.card_last_four == "4321"

        # Stock is not returned for approved payments
        await db_session.refresh(product)
        assert product.stock_quantity == 4

    async def test_order_visible_through_api(self, client, provider, make_order, send_notification):
        order = await make_order()
        provider.add_payment("P1", status="approved", external_reference=order.id)

        await send_notification("P1")
        res = await client.get(f"/api/v1/shop/orders/{order.id}")

        assert res.status_code == 200
        assert res.json()["order_status"] == "processing"
        assert res.json()["payment_result"]["status"] == "approved"
        assert res.json()["provider_payment_id"] == "P1"
        assert res.json()["installments"] == 1
        assert res.json()["delivered_at"] is None


class TestFailedPayments:
    async def test_rejected_payment_returns_stock(
        self, provider, make_order, db_session, product, send_notification
    ):
        order = await make_order()
        provider.add_payment("P1", status="rejected", external_reference=order.id)

        res = await send_notification("P1")

        assert res.status_code == 200
        assert res.json()["processed"] is True
        await db_session.refresh(order)
        assert order.order_status == OrderStatus.FAILED
        await db_session.refresh(product)
        assert product.stock_quantity == 5

    async def test_refund_of_processing_order_returns_stock_once(
        self, provider, make_order, db_session, product, send_notification
    ):
        order = await make_order(status=OrderStatus.PROCESSING, quantity=2)
        provider.add_payment("P1", status="refunded", external_reference=order.id)

        first = await send_notification("P1")
        second = await send_notification("P1")

        assert first.json()["processed"] is True
        assert second.status_code == 200
        assert second.json()["processed"] is False
        assert "not updatable" in second.json()["message"]

        await db_session.refresh(order)
        assert order.order_status == OrderStatus.REFUNDED
        await db_session.refresh(product)
        assert product.stock_quantity == 6

    async def test_stock_return_failure_does_not_change_response(
        self, provider, make_order, db_session, send_notification
    ):
        order = await make_order()
        provider.add_payment("P1", status="cancelled", external_reference=order.id)

        with patch(
            "storefront.modules.shop.service.ShopService.return_stock",
            side_effect=RuntimeError("stock store down"),
        ):
            res = await send_notification("P1")

        assert res.status_code == 200
        assert res.json()["processed"] is True
        await db_session.refresh(order)
        assert order.order_status == OrderStatus.CANCELLED


class TestAcknowledgedWithoutProcessing:
    async def test_non_payment_event(self, provider, send_notification):
        res = await send_notification("P1", event_type="merchant_order")

        assert res.status_code == 200
        assert res.json() == {
            "received": True,
            "processed": False,
            "message": "Event type ignored or data ID missing",
        }
        assert provider.calls == []

    async def test_order_not_found(self, provider, send_notification):
        provider.add_payment("P1", status="approved", external_reference="other-env-order")

        res = await send_notification("P1")

        assert res.status_code == 200
        assert res.json()["processed"] is False
        assert res.json()["message"] == "Order not found"

    async def test_upstream_data_error(self, provider, send_notification):
        provider.add_payment("P1", status="approved")

        res = await send_notification("P1")

        assert res.status_code == 200
        body = res.json()
        assert body["processed"] is False
        assert "external_reference" in body["error"]

    async def test_provider_unreachable(self, provider, send_notification):
        provider.error = PaymentProviderError("Provider unreachable")

        res = await send_notification("P1")

        assert res.status_code == 200
        assert res.json()["processed"] is False

    async def test_unexpected_error(self, provider, send_notification):
        provider.error = KeyError("boom")

        res = await send_notification("P1")

        assert res.status_code == 200
        assert res.json()["error"] == "Internal processing error occurred."


class TestPersistenceFailure:
    async def test_commit_failure_returns_500_without_stock_return(
        self, provider, make_order, db_session, product, send_notification
    ):
        order = await make_order()
        provider.add_payment("P1", status="rejected", external_reference=order.id)

        with patch.object(
            db_session, "commit", side_effect=OperationalError("UPDATE", {}, Exception("disk"))
        ), patch(RETURN_STOCK) as return_stock:
            res = await send_notification("P1")

        assert res.status_code == 500
        assert res.json()["processed"] is False
        return_stock.assert_not_called()
        await db_session.refresh(order)
        assert order.order_status == OrderStatus.PENDING_PAYMENT
        await db_session.refresh(product)
        assert product.stock_quantity == 4

    async def test_failed_status_reread_returns_500(
        self, provider, make_order, db_session, product, send_notification
    ):
        order = await make_order()
        provider.add_payment("P1", status="rejected", external_reference=order.id)

        with patch.object(
            ShopService,
            "get_order_status",
            side_effect=OperationalError("SELECT", {}, Exception("locked")),
        ), patch(RETURN_STOCK) as return_stock:
            res = await send_notification("P1")

        assert res.status_code == 500
        assert "verification failed" in res.json()["error"]
        return_stock.assert_not_called()
        await db_session.refresh(product)
        assert product.stock_quantity == 4

    async def test_status_mismatch_returns_500(
        self, provider, make_order, product, send_notification
    ):
        order = await make_order()
        provider.add_payment("P1", status="cancelled", external_reference=order.id)

        with patch.object(
            ShopService, "get_order_status", return_value="pending_payment"
        ), patch(RETURN_STOCK) as return_stock:
            res = await send_notification("P1")

        assert res.status_code == 500
        assert res.json()["received"] is True
        return_stock.assert_not_called()

    async def test_returns_500(self, provider, make_order, send_notification):
        order = await make_order()
        provider.add_payment("P1", status="approved", external_reference=order.id)

        with patch.object(
            OrderReconciler,
            "reconcile",
            side_effect=OrderPersistenceError("Could not save order", order_id=order.id),
        ):
            res = await send_notification("P1")

        assert res.status_code == 500
        assert res.json()["received"] is True
        assert res.json()["processed"] is False


class TestHealth:
    async def test_webhook_health(self, client):
        res = await client.get("/api/v1/webhooks/health")

        assert res.status_code == 200
        assert res.json()["signature_configured"] is True
        assert res.json()["provider_configured"] is True
