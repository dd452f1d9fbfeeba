"""
Tests for the Cache-Control header policy.
"""

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from service_storefront.app.caching import CacheControlMiddleware, cache_control_for_path


class TestCacheControlForPath:
    """Test cases for cache_control_for_path."""

    def test_versioned_asset_is_immutable(self):
        """Test fingerprinted bundles get a year-long immutable policy."""
        headers = cache_control_for_path("/static/app.3f9a2b1c.js")

        assert headers["Cache-Control"] == "public, max-age=31536000, immutable"
        assert headers["Expires"].endswith("GMT")

    def test_media_asset_is_public(self):
        """Test images get the public policy."""
        assert cache_control_for_path("/images/milk.png")["Cache-Control"] == "public, max-age=86400, must-revalidate"

    @pytest.mark.parametrize("path", ["/api/products", "/api/products/p-001", "/api/settings"])
    def test_catalog_api_uses_api_policy(self, path):
        """Test catalog reads are publicly cacheable for five minutes."""
        assert cache_control_for_path(path)["Cache-Control"] == "public, max-age=300, must-revalidate"

    def test_dashboard_stats_short_lived(self):
        """Test dashboard data uses the one minute policy."""
        assert cache_control_for_path("/api/stats")["Cache-Control"] == "public, max-age=60, must-revalidate"

    @pytest.mark.parametrize("path", ["/api/orders", "/api/customers", "/api/admin/cache"])
    def test_sensitive_api_is_not_stored(self, path):
        """Test orders, customers and admin routes are never stored."""
        headers = cache_control_for_path(path)

        assert headers["Cache-Control"].startswith("no-store")
        assert headers["Pragma"] == "no-cache"
        assert headers["Expires"] == "0"

    def test_html_is_not_stored(self):
        """Test pages are always revalidated."""
        assert cache_control_for_path("/")["Cache-Control"].startswith("no-store")
        assert cache_control_for_path("/admin.html")["Cache-Control"].startswith("no-store")

    def test_other_paths_get_nothing(self):
        """Test unknown paths carry no policy."""
        assert cache_control_for_path("/health") == {}


class TestCacheControlMiddleware:
    """Test cases for CacheControlMiddleware."""

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(CacheControlMiddleware)

        @app.get("/api/products")
        async def products():
            return {"success": True}

        @app.get("/api/settings")
        async def settings():
            return JSONResponse({"success": True}, headers={"Cache-Control": "max-age=5"})

        @app.get("/api/orders")
        async def orders():
            return {"success": True}

        return TestClient(app)

    def test_sets_policy(self, client):
        """Test the path policy is applied."""
        response = client.get("/api/products")

        assert response.headers["Cache-Control"] == "public, max-age=300, must-revalidate"
        assert "Expires" in response.headers

    def test_keeps_handler_policy(self, client):
        """Test an explicit handler header is not overwritten."""
        assert client.get("/api/settings").headers["Cache-Control"] == "max-age=5"

    def test_credentialed_public_becomes_private(self, client):
        """Test credentialed responses are never marked public."""
        response = client.get("/api/products", headers={"Authorization": "Bearer token"})

        assert response.headers["Cache-Control"] == "private, max-age=3600"

    def test_credentialed_no_store_is_kept(self, client):
        """Test no-store survives the private override."""
        response = client.get("/api/orders", headers={"Authorization": "Bearer token"})

        assert response.headers["Cache-Control"].startswith("no-store")
