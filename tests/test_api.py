"""
HTTP API 테스트 (FastAPI TestClient + get_session override).
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from marketsync.clients.registry import register_client_factory, unregister_client_factory
from marketsync.db import get_session
from marketsync.main import app
from marketsync.services.link_reconciler import LinkReconciler


@pytest.fixture
def api(test_session, fake_client):
    def _override_session():
        yield test_session

    app.dependency_overrides[get_session] = _override_session
    register_client_factory("shopify", lambda account: fake_client)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        unregister_client_factory("shopify")


class TestSyncEndpoints:

    def test_bulk_sync(self, api, product_factory, shopify_account, fake_client):
        product = product_factory()

        res = api.post("/api/sync/products/sync", json={
            "sync_account_id": str(shopify_account.id),
            "product_ids": [str(product.id)],
        })

        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"]["summary"]["successful"] == 1
        assert len(fake_client.calls_to("create_product")) == 1

    def test_unknown_account(self, api, product_factory):
        res = api.post("/api/sync/products/sync", json={
            "sync_account_id": str(uuid.uuid4()),
            "product_ids": [str(product_factory().id)],
        })
        assert res.status_code == 404
        assert res.json()["detail"] == "Sync account not found"

    def test_request_validation(self, api, shopify_account):
        empty = api.post("/api/sync/products/sync", json={
            "sync_account_id": str(shopify_account.id),
            "product_ids": [],
        })
        assert empty.status_code == 422

        both = api.post("/api/sync/products/sync", json={
            "sync_account_id": str(shopify_account.id),
            "product_ids": [str(uuid.uuid4())],
            "force_graphql": True,
            "force_rest": True,
        })
        assert both.status_code == 422

    def test_bulk_status(self, api, product_factory, shopify_account):
        product = product_factory()

        res = api.post("/api/sync/products/status", json={
            "sync_account_id": str(shopify_account.id),
            "product_ids": [str(product.id)],
        })

        assert res.status_code == 200
        assert res.json()["data"]["summary"]["not_synced"] == 1

    def test_reconcile(self, api, test_session, product_factory, shopify_account):
        product = product_factory()
        LinkReconciler(test_session).link_product(product, shopify_account, "42")

        res = api.post(f"/api/sync/products/{product.id}/reconcile", json={"sync_account_id": str(shopify_account.id)})

        body = res.json()
        assert res.status_code == 200
        assert body["data"]["updated"] is False
        assert body["data"]["status_view"]["external_product_id"] == "42"

    def test_unlink_and_links(self, api, test_session, product_factory, shopify_account):
        product = product_factory()
        reconciler = LinkReconciler(test_session)
        reconciler.link_product(product, shopify_account, "42")
        reconciler.link_color(product, shopify_account, "Red", "43")

        links = api.get(f"/api/sync/products/{product.id}/links", params={"syncAccountId": str(shopify_account.id)})
        assert links.status_code == 200
        assert sorted(l["color_filter"] or "" for l in links.json()) == ["", "Red"]

        res = api.post(f"/api/sync/products/{product.id}/unlink", json={"sync_account_id": str(shopify_account.id), "actor": "ops"})
        assert res.json()["data"]["unlinked_count"] == 3

        active = api.get(f"/api/sync/products/{product.id}/links", params={"activeOnly": "true"})
        assert active.json() == []

    def test_pricing_requires_links(self, api, product_factory, shopify_account):
        product = product_factory()

        res = api.post(f"/api/sync/products/{product.id}/pricing", json={"sync_account_id": str(shopify_account.id)})

        body = res.json()
        assert res.status_code == 200
        assert body["success"] is False
        assert body["error_kind"] == "validation"

    def test_pricing_source_validated(self, api, product_factory, shopify_account):
        res = api.post(f"/api/sync/products/{product_factory().id}/pricing", json={
            "sync_account_id": str(shopify_account.id),
            "pricing_source": "wholesale",
        })
        assert res.status_code == 422

    def test_unknown_product(self, api, shopify_account):
        res = api.post(f"/api/sync/products/{uuid.uuid4()}/unlink", json={"sync_account_id": str(shopify_account.id)})
        assert res.status_code == 404


class TestHealthEndpoints:

    def test_system(self, api, shopify_account):
        body = api.get("/api/health/system").json()
        assert body["status"] == "healthy"
        assert body["database"] == "ok"

    def test_accounts(self, api, test_session, shopify_account):
        from marketsync.models import SyncAccount

        test_session.add(SyncAccount(channel="ebay", name="ebay-main", is_active=True, settings={}))
        test_session.flush()

        body = api.get("/api/health/accounts").json()
        by_channel = {item["channel"]: item["status"] for item in body}
        assert by_channel == {"shopify": "healthy", "ebay": "unconfigured"}
