"""
Storefront API service.
"""

import re
from typing import Optional, Tuple

from fastapi import Depends, Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AuthenticationError, AuthorizationError, InvalidCachePatternError
from shared.logging import set_user_context
from .caching import (
    ApiCacheMiddleware,
    ApiResponseCache,
    CacheControlMiddleware,
    CacheRoute,
    CacheTag,
    InvalidationRoute,
    TTLStore,
)
from .catalog.models import (
    OrderCreate,
    OrderStatus,
    OrderStatusUpdate,
    ProductCreate,
    ProductUpdate,
    SettingsUpdate,
)
from .catalog.repository import StorefrontRepository


STATS_TTL_SECONDS = 60

PUBLIC_CACHE_ROUTES = (
    CacheRoute("/api/products", tags=(CacheTag.PRODUCTS,)),
    CacheRoute("/api/products/categories", tags=(CacheTag.PRODUCTS, CacheTag.CATEGORIES)),
    CacheRoute("/api/settings", tags=(CacheTag.SETTINGS,)),
)

INVALIDATION_ROUTES = (
    InvalidationRoute("/api/products", tags=(CacheTag.PRODUCTS, CacheTag.CATEGORIES, CacheTag.STATS)),
    InvalidationRoute("/api/settings", tags=(CacheTag.SETTINGS,)),
    InvalidationRoute("/api/orders", tags=(CacheTag.STATS,)),
)


class StorefrontService(BaseService):
    """Storefront API service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, repository: Optional[StorefrontRepository] = None):
        self._repository = repository
        super().__init__("storefront", 8000, config=config)

        self._setup_storefront_routes()
        self._setup_admin_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.storefront_service = self
        self.app.state.api_cache = self.api_cache

    def _setup_dependencies(self):
        self.repository = self._repository or StorefrontRepository()
        self.api_cache = ApiResponseCache(
            TTLStore(max_entries=self.config.api_cache_max_entries),
            default_ttl=self.config.api_cache_default_ttl,
            metrics=self.metrics,
        )

    def _setup_service_middleware(self):
        if self.config.api_cache_enabled:
            self.app.add_middleware(
                ApiCacheMiddleware,
                cache=self.api_cache,
                cache_routes=self.cache_routes(),
                invalidation_routes=INVALIDATION_ROUTES,
            )
        else:
            self.logger.warning("API response cache disabled by configuration")

        if self.config.cache_control_enabled:
            self.app.add_middleware(CacheControlMiddleware)

    async def _check_dependencies(self):
        return {
            "repository": "ok",
            "api_cache": "enabled" if self.config.api_cache_enabled else "disabled",
        }

    def cache_routes(self) -> Tuple[CacheRoute, ...]:
        """Public catalog routes plus dashboard stats, cached for admins only."""
        stats = CacheRoute(
            "/api/stats",
            ttl_seconds=STATS_TTL_SECONDS,
            tags=(CacheTag.STATS,),
            guard=self.is_admin_request,
        )
        return PUBLIC_CACHE_ROUTES + (stats,)

    @staticmethod
    def _bearer_token(request: Request) -> Optional[str]:
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        return token

    def is_admin_request(self, request: Request) -> bool:
        return self._bearer_token(request) == self.config.admin_token

    async def require_admin(self, request: Request) -> str:
        """Dependency guarding admin routes with the configured bearer token."""
        token = self._bearer_token(request)
        if token is None:
            raise AuthenticationError("Missing bearer token")
        if token != self.config.admin_token:
            raise AuthorizationError("Admin access required")
        set_user_context("admin")
        return "admin"

    def _setup_storefront_routes(self):
        """Public storefront and admin dashboard data routes."""
        repository = self.repository
        require_admin = self.require_admin

        @self.app.get("/")
        async def root():
            return {"service": self.service_name, "message": "Hometown Grocery Delivery - Storefront API"}

        @self.app.get("/api/products")
        async def list_products(
            category: Optional[str] = Query(default=None),
            status: Optional[str] = Query(default=None),
            search: Optional[str] = Query(default=None),
        ):
            products = await repository.list_products(category=category, status=status, search=search)
            return {
                "success": True,
                "count": len(products),
                "products": [product.model_dump(mode="json") for product in products],
            }

        @self.app.get("/api/products/categories")
        async def list_categories():
            return {"success": True, "categories": await repository.list_categories()}

        @self.app.get("/api/products/{product_id}")
        async def get_product(product_id: str):
            product = await repository.get_product(product_id)
            return {"success": True, "product": product.model_dump(mode="json")}

        @self.app.post("/api/products", status_code=201, dependencies=[Depends(require_admin)])
        async def create_product(data: ProductCreate):
            product = await repository.create_product(data)
            return {"success": True, "message": "Product created", "product": product.model_dump(mode="json")}

        @self.app.put("/api/products/{product_id}", dependencies=[Depends(require_admin)])
        async def update_product(product_id: str, data: ProductUpdate):
            product = await repository.update_product(product_id, data)
            return {"success": True, "message": "Product updated", "product": product.model_dump(mode="json")}

        @self.app.delete("/api/products/{product_id}", dependencies=[Depends(require_admin)])
        async def delete_product(product_id: str):
            await repository.delete_product(product_id)
            return {"success": True, "message": "Product deleted"}

        @self.app.get("/api/settings")
        async def get_settings():
            settings = await repository.get_settings()
            return {"success": True, "data": settings.model_dump(mode="json")}

        @self.app.put("/api/settings", dependencies=[Depends(require_admin)])
        async def update_settings(data: SettingsUpdate):
            settings = await repository.update_settings(data)
            return {"success": True, "message": "Settings updated successfully", "data": settings.model_dump(mode="json")}

        @self.app.get("/api/orders", dependencies=[Depends(require_admin)])
        async def list_orders(status: Optional[OrderStatus] = Query(default=None)):
            orders = await repository.list_orders(status)
            return {
                "success": True,
                "count": len(orders),
                "orders": [order.model_dump(mode="json") for order in orders],
            }

        @self.app.post("/api/orders", status_code=201)
        async def create_order(data: OrderCreate):
            order = await repository.create_order(data)
            return {"success": True, "message": "Order placed", "order": order.model_dump(mode="json")}

        @self.app.patch("/api/orders/{order_id}/status", dependencies=[Depends(require_admin)])
        async def update_order_status(order_id: str, data: OrderStatusUpdate):
            order = await repository.update_order_status(order_id, data.status)
            return {"success": True, "order": order.model_dump(mode="json")}

        @self.app.delete("/api/orders/{order_id}", dependencies=[Depends(require_admin)])
        async def delete_order(order_id: str):
            await repository.delete_order(order_id)
            return {"success": True, "message": "Order deleted"}

        @self.app.get("/api/stats", dependencies=[Depends(require_admin)])
        async def dashboard_stats():
            return {"success": True, "data": await repository.dashboard_stats()}

    def _setup_admin_routes(self):
        """Operational surface for the API response cache."""
        api_cache = self.api_cache
        require_admin = self.require_admin

        @self.app.get("/api/admin/cache/stats", dependencies=[Depends(require_admin)])
        async def get_cache_stats():
            """Entry count, hits, misses and hit rate."""
            return {"success": True, "data": api_cache.get_stats()}

        @self.app.delete("/api/admin/cache", dependencies=[Depends(require_admin)])
        async def clear_cache_pattern(pattern: str = Query(..., min_length=1)):
            """Delete every cached response whose key matches ``pattern``."""
            try:
                deleted = api_cache.clear_pattern(pattern)
            except re.error as exc:
                raise InvalidCachePatternError(pattern, str(exc)) from exc
            return {"success": True, "pattern": pattern, "deleted": deleted}

        @self.app.delete("/api/admin/cache/tags/{tag}", dependencies=[Depends(require_admin)])
        async def clear_cache_tag(tag: CacheTag):
            deleted = api_cache.clear_tags([tag])
            return {"success": True, "tag": tag.value, "deleted": deleted}

        @self.app.delete("/api/admin/cache/all", dependencies=[Depends(require_admin)])
        async def clear_all_cache():
            api_cache.clear_all()
            return {"success": True, "message": "Cleared all API response cache"}


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = StorefrontService(config=config)
    return service.app


if __name__ == "__main__":
    service = StorefrontService()
    service.run()
