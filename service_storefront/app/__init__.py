"""
Storefront API service package for the Hometown Grocery Delivery shop.

The storefront serves the product catalog, store settings, orders and the
admin dashboard data, fronted by an in-memory API response cache:
- Reads: GET responses on catalog routes are cached with a per-route TTL
  and tagged by resource family.
- Writes: successful mutations invalidate the tags they touch.

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.caching: TTL store, response cache middleware, Cache-Control policy.
- app.catalog: Resource models and the in-memory repository.
"""
