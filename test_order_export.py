"""
Order Export Tests

Validates the SoftOne order export:
1. Idempotency through the document id marker
2. Customer resolution order (stored, email lookup, customer sync, guest)
3. SALDOC payload construction and rejection of incomplete payloads
4. Retry with exponential backoff and per-attempt order notes
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, call

import pytest

from item_import.stale import META_MTRL
from order_export.customers import CustomerSync, customer_code, guest_customer_code
from order_export.engine import OrderExportEngine, retry_delay
from order_export.models import META_DOCUMENT_ID, META_TRDR, ExportOutcome
from storefront.base import Address, Customer, Order, OrderLine, Product


ORDER_ID = 101


@pytest.fixture
def set_data_replies(server):
    """Per-object setData replies; SALDOC and CUSTOMER succeed by default."""
    replies = {
        "SALDOC": lambda body: (200, {"success": True, "id": "DOC-1"}),
        "CUSTOMER": lambda body: (200, {"success": True, "id": "T-900"}),
    }
    server.handlers["setData"] = lambda body: replies[body["object"]](body)
    return replies


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def customer_sync(client, storefront, config):
    return CustomerSync(client, storefront.customers, config)


@pytest.fixture
def engine(client, storefront, customer_sync, config, sleep, metrics, set_data_replies):
    return OrderExportEngine(
        client,
        storefront.orders,
        storefront.products,
        customer_sync,
        config,
        sleep=sleep,
        metrics=metrics,
    )


@pytest.fixture
def product(storefront):
    product = Product(name="Jogger Pants", sku="JP-1", meta={META_MTRL: "501"})
    storefront.products.save(product)
    return product


@pytest.fixture
def order(storefront, product):
    order = Order(
        id=ORDER_ID,
        number=str(ORDER_ID),
        billing=Address(
            first_name="Maria",
            last_name="Papadopoulou",
            address_1="Ermou 10",
            city="Athens",
            postcode="10563",
            country="GR",
            email="maria@example.test",
            phone="2100000000",
        ),
        lines=[OrderLine(product_id=product.id, name="Jogger Pants", quantity=2)],
        customer_note="Leave at door",
        payment_method_title="Cash on delivery",
        created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone(timedelta(hours=3))),
    )
    storefront.orders.add(order)
    return order


def saldoc_requests(server):
    return [r for r in server.calls("setData") if r["object"] == "SALDOC"]


def customer_requests(server):
    return [r for r in server.calls("setData") if r["object"] == "CUSTOMER"]


class TestSuccessfulExport:

    def test_guest_order_is_exported(self, engine, order, server, storefront):
        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.EXPORTED
        assert result.document_id == "DOC-1"

        stored = storefront.orders.get(ORDER_ID)
        assert stored.get_meta(META_DOCUMENT_ID) == "DOC-1"
        assert stored.get_meta(META_TRDR) == "T-900"
        assert stored.notes[-1] == "SoftOne document #DOC-1 created."

        guest = customer_requests(server)[0]["data"]["CUSTOMER"][0]
        assert guest["CODE"] == guest_customer_code(ORDER_ID) == "WEBG000101"
        assert guest["NAME"] == "Maria Papadopoulou"
        assert guest["COUNTRY"] == "1000"
        assert guest["SOCURRENCY"] == "100"
        assert "ADDRESS2" not in guest

    def test_saldoc_payload(self, engine, order, server):
        asyncio.run(engine.export(ORDER_ID))

        data = saldoc_requests(server)[0]["data"]
        header = data["SALDOC"][0]
        assert header == {
            "SERIES": "7021",
            "TRDR": "T-900",
            "VARCHAR01": "101",
            "TRNDATE": "2024-05-01 09:30:00",
            "COMMENTS": "Leave at door | Payment method: Cash on delivery",
        }
        assert data["ITELINES"] == [{"MTRL": "501", "QTY1": 2.0, "COMMENTS1": "Jogger Pants"}]
        assert data["MTRDOC"] == [{"WHOUSE": "1"}]

    def test_already_exported_order_makes_no_calls(self, engine, order, server, storefront):
        storefront.orders.update_meta(ORDER_ID, META_DOCUMENT_ID, "DOC-OLD")

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.ALREADY_EXPORTED
        assert result.document_id == "DOC-OLD"
        assert server.requests == []

    def test_second_export_is_a_no_op(self, engine, order, server):
        asyncio.run(engine.export(ORDER_ID))
        before = len(server.requests)

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.exported
        assert len(server.requests) == before


class TestCustomerResolution:

    def test_stored_trdr_skips_lookups(self, engine, order, server, storefront):
        storefront.orders.update_meta(ORDER_ID, META_TRDR, "T-1")

        asyncio.run(engine.export(ORDER_ID))

        assert server.calls("SqlData") == []
        assert saldoc_requests(server)[0]["data"]["SALDOC"][0]["TRDR"] == "T-1"

    def test_email_lookup(self, engine, order, server, storefront):
        server.queue("SqlData", (200, {"success": True, "rows": [
            {"TRDR": "T-OTHER", "EMAIL": "someone@example.test"},
            {"TRDR": "T-55", "EMAIL": "MARIA@example.test"},
        ]}))

        asyncio.run(engine.export(ORDER_ID))

        lookup = server.calls("SqlData")[0]
        assert lookup["SqlName"] == "getCustomers"
        assert lookup["params"] == {"EMAIL": "maria@example.test"}
        assert customer_requests(server) == []
        assert storefront.orders.get(ORDER_ID).get_meta(META_TRDR) == "T-55"

    def test_registered_customer_is_synced(self, engine, order, server, storefront):
        storefront.customers.add(Customer(
            id=5,
            email="maria@example.test",
            first_name="Maria",
            last_name="P.",
            billing=order.billing,
        ))
        stored = storefront.orders.get(ORDER_ID)
        stored.customer_id = 5
        storefront.orders.add(stored)

        asyncio.run(engine.export(ORDER_ID))

        record = customer_requests(server)[0]["data"]["CUSTOMER"][0]
        assert record["CODE"] == customer_code(5) == "WEB000005"
        assert record["NAME"] == "Maria P."
        assert storefront.customers.get(5).meta[META_TRDR] == "T-900"
        assert server.calls("SqlData")[1]["params"] == {"CODE": "WEB000005", "EMAIL": "maria@example.test"}

    def test_customer_sync_reuses_stored_trdr(self, customer_sync, storefront, server):
        storefront.customers.add(Customer(id=8, email="x@example.test", meta={META_TRDR: "T-8"}))

        assert asyncio.run(customer_sync.ensure_customer_trdr(8)) == "T-8"
        assert server.requests == []

    def test_unmapped_country_aborts(self, engine, order, server, storefront):
        stored = storefront.orders.get(ORDER_ID)
        stored.billing.country = "US"
        storefront.orders.add(stored)

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.ABORTED
        assert saldoc_requests(server) == []
        assert customer_requests(server) == []
        notes = storefront.orders.get(ORDER_ID).notes
        assert "country mapping for US is missing" in notes[-1]
        assert storefront.orders.get(ORDER_ID).get_meta(META_DOCUMENT_ID) is None

    def test_lookup_failure_aborts_with_note(self, engine, order, server, storefront):
        server.queue("SqlData", (200, {"success": False, "error": "Unknown SqlName getCustomers"}))

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.ABORTED
        assert "customer sync failed" in storefront.orders.get(ORDER_ID).notes[-1]
        assert saldoc_requests(server) == []


class TestPayloadRejection:

    def test_missing_series_aborts(self, engine, order, server, config, storefront):
        config.default_saldoc_series = ""

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.ABORTED
        assert saldoc_requests(server) == []
        assert "series" in storefront.orders.get(ORDER_ID).notes[-1]

    def test_lines_without_mtrl_are_dropped(self, engine, order, storefront, server):
        unknown = Product(name="Gift card")
        storefront.products.save(unknown)
        stored = storefront.orders.get(ORDER_ID)
        stored.lines.append(OrderLine(product_id=unknown.id, name="Gift card", quantity=1))
        stored.lines.append(OrderLine(product_id=stored.lines[0].product_id, name="Zero", quantity=0))
        storefront.orders.add(stored)

        asyncio.run(engine.export(ORDER_ID))

        lines = saldoc_requests(server)[0]["data"]["ITELINES"]
        assert [line["MTRL"] for line in lines] == ["501"]

    def test_no_resolvable_lines_is_never_sent(self, engine, order, storefront, server):
        unknown = Product(name="Gift card")
        storefront.products.save(unknown)
        stored = storefront.orders.get(ORDER_ID)
        stored.lines = [OrderLine(product_id=unknown.id, name="Gift card", quantity=1)]
        storefront.orders.add(stored)

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.ABORTED
        assert saldoc_requests(server) == []
        assert storefront.orders.get(ORDER_ID).get_meta(META_DOCUMENT_ID) is None

    def test_variation_falls_back_to_parent_mtrl(self, engine, order, storefront, product):
        variation = Product(name="Jogger Pants - M")
        storefront.products.save(variation)
        line = OrderLine(product_id=product.id, variation_id=variation.id, name="Jogger Pants - M", quantity=1)

        assert engine.line_mtrl(line) == "501"

    def test_comments_fallback(self, engine, order):
        order.customer_note = ""
        order.payment_method_title = ""
        assert engine.build_order_comments(order) == "WooCommerce order 101"


class TestRetry:

    def test_three_failed_attempts(self, engine, order, server, storefront, sleep, set_data_replies):
        set_data_replies["SALDOC"] = lambda body: (200, {"success": False, "error": "Series locked"})

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.outcome == ExportOutcome.FAILED
        assert len(saldoc_requests(server)) == 3
        assert sleep.await_args_list == [call(1), call(2)]

        stored = storefront.orders.get(ORDER_ID)
        assert stored.get_meta(META_DOCUMENT_ID) is None
        assert stored.notes == [
            "SoftOne order export attempt 1 failed: Series locked",
            "SoftOne order export attempt 2 failed: Series locked",
            "SoftOne order export attempt 3 failed: Series locked",
        ]

    def test_failed_trigger_can_be_retried_later(self, engine, order, server, storefront, set_data_replies):
        set_data_replies["SALDOC"] = lambda body: (200, {"success": False, "error": "Series locked"})
        asyncio.run(engine.export(ORDER_ID))

        set_data_replies["SALDOC"] = lambda body: (200, {"success": True, "id": "DOC-2"})
        result = asyncio.run(engine.export(ORDER_ID))

        assert result.document_id == "DOC-2"
        # customer resolution was persisted by the first trigger
        assert len(customer_requests(server)) == 1

    def test_recovers_on_second_attempt(self, engine, order, server, storefront, sleep, set_data_replies):
        replies = iter([
            (200, {"success": False, "error": "Deadlock detected"}),
            (200, {"success": True, "id": "DOC-3"}),
        ])
        set_data_replies["SALDOC"] = lambda body: next(replies)

        result = asyncio.run(engine.export(ORDER_ID))

        assert result.document_id == "DOC-3"
        assert sleep.await_args_list == [call(1)]
        assert storefront.orders.get(ORDER_ID).notes == [
            "SoftOne order export attempt 1 failed: Deadlock detected",
            "SoftOne document #DOC-3 created.",
        ]

    @pytest.mark.parametrize("attempt,expected", [(1, 1), (2, 2), (3, 4), (5, 16), (6, 30), (10, 30)])
    def test_retry_delay(self, attempt, expected):
        assert retry_delay(attempt) == expected


class TestStatusTrigger:

    def test_non_trigger_status_is_ignored(self, engine, order, server):
        result = asyncio.run(engine.handle_status_change(ORDER_ID, "pending", "on-hold"))

        assert result.outcome == ExportOutcome.IGNORED
        assert server.requests == []

    @pytest.mark.parametrize("status", ["processing", "completed", "wc-completed"])
    def test_trigger_status_exports(self, engine, order, status):
        result = asyncio.run(engine.handle_status_change(ORDER_ID, "pending", status))

        assert result.outcome == ExportOutcome.EXPORTED

    def test_unknown_order(self, engine):
        result = asyncio.run(engine.handle_status_change(999, "pending", "processing"))

        assert result.outcome == ExportOutcome.IGNORED
