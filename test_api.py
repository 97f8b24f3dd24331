"""
API Tests

Exercises the caller-facing HTTP operations with FastAPI's TestClient and
the scripted SoftOne endpoint:
1. Health/readiness probes
2. Connection test
3. Begin import + batch loop with owner scoping
4. Order export
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.concurrency import run_in_threadpool
from fastapi.testclient import TestClient

from api.server import create_app
from api.services.runtime import build_runtime, get_runtime
from item_import.stale import META_MTRL
from storefront.base import Address, Order, OrderLine, Product


OWNER_HEADERS = {"X-Owner-Id": "admin-1"}


@pytest.fixture
def runtime(config, kv, meta_store, storefront, http_session, server):
    server.handlers["SqlData"] = lambda body: (200, {
        "success": True,
        "rows": [{"MTRL": 100 + i, "DESC": f"Item {i}"} for i in range(5)],
    })
    return build_runtime(
        config=config,
        kv=kv,
        session_meta=meta_store,
        storefront=storefront,
        http_session=http_session,
    )


@pytest.fixture
def api(runtime):
    app = create_app()
    app.dependency_overrides[get_runtime] = lambda: runtime
    return TestClient(app)


class TestHealth:

    def test_health_includes_metrics(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["softone"] == "configured"
        assert {"dispatch", "imports", "exports"} <= set(body["metrics"])

    def test_probes(self, api):
        assert api.get("/ready").json() == {"status": "ready"}
        assert api.get("/live").json() == {"status": "alive"}


class TestConnection:

    def test_connection_success(self, api):
        response = api.post("/connection/test")

        body = response.json()
        assert body["success"] is True
        assert body["client_id"] == "session-1"

    def test_connection_failure_is_reported(self, api, server):
        server.queue("login", (200, {"success": False, "message": "Invalid username or password"}))

        body = api.post("/connection/test").json()

        assert body["success"] is False
        assert "Invalid username or password" in body["message"]
        assert body["client_id"] is None


class TestImports:

    def _begin(self, api):
        response = api.post("/imports", json={"force_full_import": True}, headers=OWNER_HEADERS)
        assert response.status_code == 201
        return response.json()

    def test_owner_header_required(self, api):
        response = api.post("/imports", json={})
        assert response.status_code == 422

    def test_batch_loop(self, api, runtime):
        started = self._begin(api)
        assert started["total_rows"] == 5
        assert started["full_import"] is True

        url = f"/imports/{started['process_id']}/batches"
        results = [api.post(url, json={"batch_size": 2}, headers=OWNER_HEADERS).json() for _ in range(3)]

        assert [r["complete"] for r in results] == [False, False, True]
        assert [r["cursor"] for r in results] == [2, 4, 5]
        assert results[-1]["totals"]["created"] == 5
        assert runtime.imports.last_run.get() == started["started_at"]

    def test_batch_runs_off_the_event_loop(self, api, runtime):
        started = self._begin(api)
        offload = AsyncMock(side_effect=run_in_threadpool)

        with patch("api.routes.imports.run_in_threadpool", offload):
            response = api.post(
                f"/imports/{started['process_id']}/batches",
                json={"batch_size": 2},
                headers=OWNER_HEADERS,
            )

        assert response.status_code == 200
        offload.assert_awaited_once()
        assert offload.await_args.args[0] == runtime.imports.run_batch
        assert offload.await_args.args[2:] == ("admin-1", 2)

    def test_completed_process_is_gone(self, api):
        started = self._begin(api)
        url = f"/imports/{started['process_id']}/batches"
        api.post(url, json={"batch_size": 10}, headers=OWNER_HEADERS)

        response = api.post(url, json={"batch_size": 10}, headers=OWNER_HEADERS)

        assert response.status_code == 404

    def test_wrong_owner_is_forbidden(self, api):
        started = self._begin(api)

        response = api.post(
            f"/imports/{started['process_id']}/batches",
            json={"batch_size": 2},
            headers={"X-Owner-Id": "someone-else"},
        )

        assert response.status_code == 403

    def test_unknown_process(self, api):
        response = api.post("/imports/does-not-exist/batches", json={}, headers=OWNER_HEADERS)
        assert response.status_code == 404

    def test_invalid_batch_size(self, api):
        started = self._begin(api)

        response = api.post(
            f"/imports/{started['process_id']}/batches",
            json={"batch_size": 0},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 422

    def test_erp_failure_on_begin(self, api, server):
        server.queue("SqlData", (500, "Internal Server Error"))

        response = api.post("/imports", json={}, headers=OWNER_HEADERS)

        assert response.status_code == 502


class TestOrders:

    @pytest.fixture
    def order(self, storefront):
        product = Product(name="Cap", meta={META_MTRL: "300"})
        storefront.products.save(product)
        order = Order(
            id=55,
            number="55",
            billing=Address(first_name="Nikos", email="nikos@example.test", country="CY"),
            lines=[OrderLine(product_id=product.id, name="Cap", quantity=1)],
        )
        storefront.orders.add(order)
        return order

    @pytest.fixture
    def set_data(self, server):
        def reply(body):
            if body["object"] == "CUSTOMER":
                return 200, {"success": True, "id": "T-1"}
            return 200, {"success": True, "id": "DOC-55"}

        server.handlers["setData"] = reply
        server.handlers["SqlData"] = lambda body: (200, {"success": True, "rows": []})

    def test_export(self, api, order, set_data):
        response = api.post("/orders/55/export")

        body = response.json()
        assert response.status_code == 200
        assert body["exported"] is True
        assert body["document_id"] == "DOC-55"

    def test_export_is_idempotent(self, api, order, set_data, server):
        api.post("/orders/55/export")
        before = len(server.requests)

        body = api.post("/orders/55/export").json()

        assert body["outcome"] == "already_exported"
        assert len(server.requests) == before

    def test_unknown_order(self, api):
        assert api.post("/orders/999/export").status_code == 404

    def test_status_change_ignored(self, api, order, server):
        body = api.post("/orders/55/status-change", json={"old_status": "pending", "new_status": "cancelled"}).json()

        assert body["outcome"] == "ignored"
        assert body["exported"] is False
        assert server.requests == []

    def test_status_change_exports(self, api, order, set_data):
        body = api.post("/orders/55/status-change", json={"old_status": "pending", "new_status": "processing"}).json()

        assert body["document_id"] == "DOC-55"
