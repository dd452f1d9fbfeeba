"""
Tests for the storefront service routes and cache wiring.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from service_storefront.app.main import StorefrontService, create_app


ADMIN = {"Authorization": "Bearer test-token"}

ORDER = {
    "customer": {"name": "Dana", "phone": "555-000-1111", "address": "1 Elm St"},
    "items": [{"product_id": "p-006", "quantity": 4}],
}


def make_service(**overrides) -> StorefrontService:
    config = get_config("storefront", 8000, admin_token="test-token", **overrides)
    return StorefrontService(config=config)


class TestStorefrontService:
    """Test cases for the storefront service."""

    @pytest.fixture
    def service(self):
        return make_service()

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app, raise_server_exceptions=False)

    def test_service_initialization(self, service):
        """Test service wiring."""
        assert service.service_name == "storefront"
        assert service.app.state.api_cache is service.api_cache
        assert service.app.state.storefront_service is service

    def test_create_app(self):
        """Test the app factory."""
        app = create_app(get_config("storefront", 8000))
        assert app.state.api_cache.get_stats()["keys"] == 0

    def test_root(self, client):
        """Test the root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "storefront"
        assert "X-Request-ID" in response.headers

    def test_request_id_is_echoed(self, client):
        """Test a caller supplied request id is returned."""
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_health(self, client):
        """Test the health endpoint reports the cache."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"repository": "ok", "api_cache": "enabled"}

    def test_metrics(self, client):
        """Test cache lookups are exported."""
        client.get("/api/products")
        client.get("/api/products")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'api_cache_lookups_total{result="hit"} 1.0' in response.text
        assert 'api_cache_lookups_total{result="miss"} 1.0' in response.text

    def test_products_served_from_cache(self, client):
        """Test the second product listing is a hit."""
        first = client.get("/api/products")
        second = client.get("/api/products")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == first.json()
        assert first.json()["count"] == 6
        assert second.headers["Cache-Control"] == "public, max-age=300, must-revalidate"

    def test_missing_product_not_cached(self, client, service):
        """Test a 404 is returned in the error envelope and not stored."""
        response = client.get("/api/products/p-999")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["code"] == "NOT_FOUND"
        assert service.api_cache.get_stats()["keys"] == 0

    def test_create_product_requires_token(self, client):
        """Test admin routes reject missing and wrong tokens."""
        product = {"name": "Oat Milk", "price": 3.99, "category": "dairy"}

        missing = client.post("/api/products", json=product)
        wrong = client.post("/api/products", json=product, headers={"Authorization": "Bearer nope"})

        assert missing.status_code == 401
        assert missing.json()["code"] == "AUTHENTICATION_ERROR"
        assert wrong.status_code == 403
        assert wrong.json()["code"] == "AUTHORIZATION_ERROR"

    def test_rejected_mutation_keeps_cache(self, client):
        """Test an unauthorized write does not invalidate."""
        client.get("/api/products")

        client.post("/api/products", json={"name": "Oat Milk", "price": 3.99, "category": "dairy"})

        assert client.get("/api/products").headers["X-Cache"] == "HIT"

    def test_create_product_invalidates_listing(self, client):
        """Test a new product shows up on the next read."""
        client.get("/api/products")
        client.get("/api/products/categories")

        response = client.post(
            "/api/products",
            json={"name": "Oat Milk", "price": 3.99, "category": "dairy"},
            headers=ADMIN,
        )
        assert response.status_code == 201

        products = client.get("/api/products")
        categories = client.get("/api/products/categories")
        assert products.headers["X-Cache"] == "MISS"
        assert products.json()["count"] == 7
        assert categories.headers["X-Cache"] == "MISS"
        assert {"category": "dairy", "count": 3} in categories.json()["categories"]

    def test_update_product_invalidates_detail(self, client):
        """Test product detail entries are dropped on update."""
        client.get("/api/products/p-001")
        assert client.get("/api/products/p-001").headers["X-Cache"] == "HIT"

        client.put("/api/products/p-001", json={"price": 5.99}, headers=ADMIN)

        response = client.get("/api/products/p-001")
        assert response.headers["X-Cache"] == "MISS"
        assert response.json()["product"]["price"] == 5.99

    def test_delete_product_invalidates(self, client):
        """Test a deleted product disappears from the listing."""
        client.get("/api/products")

        assert client.delete("/api/products/p-001", headers=ADMIN).status_code == 200

        assert client.get("/api/products").json()["count"] == 5

    def test_update_settings_invalidates(self, client):
        """Test settings edits are visible immediately."""
        client.get("/api/settings")
        assert client.get("/api/settings").headers["X-Cache"] == "HIT"

        response = client.put("/api/settings", json={"delivery_fee": 7.5}, headers=ADMIN)
        assert response.status_code == 200

        settings = client.get("/api/settings")
        assert settings.headers["X-Cache"] == "MISS"
        assert settings.json()["data"]["delivery_fee"] == 7.5

    def test_settings_validation_error(self, client):
        """Test request validation uses the error envelope."""
        response = client.put("/api/settings", json={"email": "nope"}, headers=ADMIN)

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["details"]["errors"]

    def test_order_invalidates_stats(self, client):
        """Test placing an order refreshes opted-in dashboard stats."""
        first = client.get("/api/stats?cacheable=true", headers=ADMIN)
        assert first.headers["X-Cache"] == "MISS"
        assert client.get("/api/stats?cacheable=true", headers=ADMIN).headers["X-Cache"] == "HIT"

        response = client.post("/api/orders", json=ORDER)
        assert response.status_code == 201
        assert response.json()["order"]["pricing"]["total"] == 47.56

        stats = client.get("/api/stats?cacheable=true", headers=ADMIN)
        assert stats.headers["X-Cache"] == "MISS"
        assert stats.json()["data"]["orders"]["total"] == 1

    def test_order_keeps_catalog_cache(self, client):
        """Test orders leave product entries alone."""
        client.get("/api/products")

        client.post("/api/orders", json=ORDER)

        assert client.get("/api/products").headers["X-Cache"] == "HIT"

    def test_order_below_minimum(self, client):
        """Test domain validation errors return 400."""
        order = dict(ORDER, items=[{"product_id": "p-001", "quantity": 1}])

        response = client.post("/api/orders", json=order)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_stats_not_shared_with_anonymous(self, client, service):
        """Test an admin's cached stats never reach a non-admin caller."""
        client.get("/api/stats?cacheable=true", headers=ADMIN)

        anonymous = client.get("/api/stats?cacheable=true")
        wrong = client.get("/api/stats?cacheable=true", headers={"Authorization": "Bearer nope"})

        assert anonymous.status_code == 401
        assert "X-Cache" not in anonymous.headers
        assert wrong.status_code == 403
        assert service.api_cache.get_stats() == {"keys": 1, "hits": 0, "misses": 1, "hitRate": "0%"}

    def test_opted_in_catalog_read_is_shared(self, client, service):
        """Test an admin's opted-in catalog read serves anonymous callers."""
        client.get("/api/products?cacheable=true", headers=ADMIN)

        response = client.get("/api/products?cacheable=true")

        assert response.headers["X-Cache"] == "HIT"
        assert service.api_cache.store.keys() == ["api:GET:/api/products?cacheable=true"]

    def test_admin_reads_bypass_cache(self, client):
        """Test credentialed reads without the flag are not cached."""
        client.get("/api/stats", headers=ADMIN)
        response = client.get("/api/stats", headers=ADMIN)

        assert "X-Cache" not in response.headers

    def test_orders_lifecycle(self, client):
        """Test admin order routes."""
        order_id = client.post("/api/orders", json=ORDER).json()["order"]["order_id"]

        listing = client.get("/api/orders", headers=ADMIN)
        assert listing.json()["count"] == 1
        assert listing.headers["Cache-Control"].startswith("no-store")

        updated = client.patch(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=ADMIN)
        assert updated.json()["order"]["status"] == "confirmed"

        assert client.delete(f"/api/orders/{order_id}", headers=ADMIN).status_code == 200
        assert client.get("/api/orders", headers=ADMIN).json()["count"] == 0


class TestCacheAdminRoutes:
    """Test cases for the cache admin surface."""

    @pytest.fixture
    def service(self):
        return make_service()

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app, raise_server_exceptions=False)

    def test_requires_admin(self, client):
        """Test the admin routes are guarded."""
        assert client.get("/api/admin/cache/stats").status_code == 401
        assert client.delete("/api/admin/cache/all").status_code == 401

    def test_stats(self, client):
        """Test stats after one miss and one hit."""
        client.get("/api/products")
        client.get("/api/products")

        response = client.get("/api/admin/cache/stats", headers=ADMIN)

        assert response.json() == {
            "success": True,
            "data": {"keys": 1, "hits": 1, "misses": 1, "hitRate": "50.00%"},
        }

    def test_clear_pattern(self, client):
        """Test pattern deletion spares other keys."""
        client.get("/api/products")
        client.get("/api/settings")

        response = client.delete("/api/admin/cache", params={"pattern": "products"}, headers=ADMIN)

        assert response.json() == {"success": True, "pattern": "products", "deleted": 1}
        assert client.get("/api/settings").headers["X-Cache"] == "HIT"

    def test_invalid_pattern(self, client, service):
        """Test a malformed regex is a 400 and nothing is deleted."""
        client.get("/api/products")

        response = client.delete("/api/admin/cache", params={"pattern": "products("}, headers=ADMIN)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["pattern"] == "products("
        assert service.api_cache.get_stats()["keys"] == 1

    def test_clear_tag(self, client):
        """Test tag deletion."""
        client.get("/api/products")
        client.get("/api/products/categories")
        client.get("/api/settings")

        response = client.delete("/api/admin/cache/tags/products", headers=ADMIN)

        assert response.json() == {"success": True, "tag": "products", "deleted": 2}

    def test_unknown_tag(self, client):
        """Test unknown tags fail validation."""
        response = client.delete("/api/admin/cache/tags/bogus", headers=ADMIN)

        assert response.status_code == 422

    def test_clear_all(self, client, service):
        """Test clearing everything resets the counters."""
        client.get("/api/products")
        client.get("/api/products")

        response = client.delete("/api/admin/cache/all", headers=ADMIN)

        assert response.json()["success"] is True
        assert service.api_cache.get_stats() == {"keys": 0, "hits": 0, "misses": 0, "hitRate": "0%"}


class TestCacheConfiguration:
    """Test configuration switches."""

    def test_cache_disabled(self):
        """Test the middleware is skipped when disabled."""
        client = TestClient(make_service(api_cache_enabled=False).app)

        client.get("/api/products")
        response = client.get("/api/products")

        assert "X-Cache" not in response.headers
        assert client.get("/health").json()["dependencies"]["api_cache"] == "disabled"

    def test_cache_control_disabled(self):
        """Test Cache-Control headers can be turned off."""
        client = TestClient(make_service(cache_control_enabled=False).app)

        response = client.get("/api/products")

        assert "Cache-Control" not in response.headers
        assert response.headers["X-Cache"] == "MISS"

    def test_default_ttl_from_config(self):
        """Test the configured default TTL reaches the cache."""
        service = make_service(api_cache_default_ttl=42, api_cache_max_entries=10)

        assert service.api_cache.default_ttl == 42
        assert service.api_cache.store.max_entries == 10
