"""
In-memory storefront repository.

Stands in for the product, settings and order collections. Methods are
async so route handlers await them the same way they would await a
database driver.
"""

import uuid
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from .models import (
    Order,
    OrderCreate,
    OrderItem,
    OrderPricing,
    OrderStatus,
    Product,
    ProductCreate,
    ProductStatus,
    ProductUpdate,
    SettingsUpdate,
    StoreSettings,
    utcnow,
)


DEFAULT_PRODUCTS: List[Dict[str, Any]] = [
    {"id": "p-001", "name": "Sourdough Loaf", "price": 5.49, "category": "bakery", "emoji": "🍞"},
    {"id": "p-002", "name": "Whole Milk (1 gal)", "price": 4.29, "category": "dairy", "emoji": "🥛"},
    {"id": "p-003", "name": "Free-Range Eggs (12)", "price": 4.99, "category": "dairy", "emoji": "🥚"},
    {"id": "p-004", "name": "Honeycrisp Apples (3 lb)", "price": 6.99, "category": "produce", "emoji": "🍎"},
    {"id": "p-005", "name": "Ground Beef (1 lb)", "price": 7.49, "category": "meat", "emoji": "🥩"},
    {"id": "p-006", "name": "Paper Towels (6 roll)", "price": 9.99, "category": "household", "emoji": "🧻", "is_taxable": True},
    {"id": "p-007", "name": "Frozen Peas", "price": 2.49, "category": "frozen", "emoji": "🫛", "status": "out-of-stock"},
]


def _money(value: float) -> float:
    return round(value + 1e-9, 2)


class StorefrontRepository:
    """Products, store settings and orders held in process memory."""

    def __init__(self, products: Optional[Iterable[Dict[str, Any]]] = None, settings: Optional[StoreSettings] = None):
        self.logger = get_logger("storefront.repository")
        self._products: Dict[str, Product] = {}
        self._orders: Dict[str, Order] = {}
        self._settings = settings or StoreSettings()

        for raw in DEFAULT_PRODUCTS if products is None else products:
            product = Product(**raw)
            self._products[product.id] = product

    async def list_products(
        self,
        *,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Product]:
        """Products sorted by category then name. Public listings default to active items."""
        wanted_status = status or ProductStatus.ACTIVE.value
        products = [
            product for product in self._products.values()
            if product.status.value == wanted_status
            and (category is None or product.category.value == category)
            and (search is None or self._matches_search(product, search))
        ]
        return sorted(products, key=lambda p: (p.category.value, p.name))

    async def list_categories(self) -> List[Dict[str, Any]]:
        """Categories with at least one active product, with counts."""
        counts = Counter(
            product.category.value
            for product in self._products.values()
            if product.status == ProductStatus.ACTIVE
        )
        return [{"category": name, "count": counts[name]} for name in sorted(counts)]

    async def get_product(self, product_id: str) -> Product:
        product = self._products.get(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    async def create_product(self, data: ProductCreate) -> Product:
        product = Product(id=f"p-{uuid.uuid4().hex[:8]}", **data.model_dump())
        self._products[product.id] = product
        self.logger.info("Product created", product_id=product.id, name=product.name)
        return product

    async def update_product(self, product_id: str, data: ProductUpdate) -> Product:
        current = await self.get_product(product_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        product = current.model_copy(update={**changes, "updated_at": utcnow()})
        self._products[product_id] = product
        self.logger.info("Product updated", product_id=product_id, fields=sorted(changes))
        return product

    async def delete_product(self, product_id: str) -> Product:
        product = await self.get_product(product_id)
        del self._products[product_id]
        self.logger.info("Product deleted", product_id=product_id)
        return product

    async def get_settings(self) -> StoreSettings:
        return self._settings

    async def update_settings(self, data: SettingsUpdate) -> StoreSettings:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        self._settings = self._settings.model_copy(update=changes)
        self.logger.info("Settings updated", fields=sorted(changes))
        return self._settings

    async def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        orders = [order for order in self._orders.values() if status is None or order.status == status]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def get_order(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return order

    async def create_order(self, data: OrderCreate) -> Order:
        """Price an order from current product data and store it."""
        items: List[OrderItem] = []
        for requested in data.items:
            product = self._products.get(requested.product_id)
            if product is None or product.status != ProductStatus.ACTIVE:
                raise ValidationError(
                    "Product is not available",
                    details={"product_id": requested.product_id},
                )
            items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                emoji=product.emoji,
                quantity=requested.quantity,
                is_taxable=product.is_taxable,
            ))

        pricing = self._price(items)
        if pricing.subtotal < self._settings.minimum_order:
            raise ValidationError(
                "Order is below the minimum order amount",
                details={"subtotal": pricing.subtotal, "minimum_order": self._settings.minimum_order},
            )

        order = Order(
            order_id=f"ORD-{uuid.uuid4().hex[:10].upper()}",
            customer=data.customer,
            items=items,
            pricing=pricing,
        )
        self._orders[order.order_id] = order
        self.logger.info("Order placed", order_id=order.order_id, total=pricing.total)
        return order

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        current = await self.get_order(order_id)
        order = current.model_copy(update={"status": status, "updated_at": utcnow()})
        self._orders[order_id] = order
        self.logger.info("Order status updated", order_id=order_id, status=status.value)
        return order

    async def delete_order(self, order_id: str) -> Order:
        order = await self.get_order(order_id)
        del self._orders[order_id]
        self.logger.info("Order deleted", order_id=order_id)
        return order

    async def dashboard_stats(self) -> Dict[str, Any]:
        """Counts and revenue for the admin dashboard."""
        by_status = Counter(order.status.value for order in self._orders.values())
        revenue = sum(
            order.pricing.total for order in self._orders.values()
            if order.status != OrderStatus.CANCELLED
        )
        products = Counter(product.status.value for product in self._products.values())
        return {
            "orders": {"total": len(self._orders), "by_status": dict(by_status)},
            "revenue": _money(revenue),
            "products": {"total": len(self._products), "by_status": dict(products)},
        }

    def _price(self, items: List[OrderItem]) -> OrderPricing:
        subtotal = sum(item.price * item.quantity for item in items)
        taxable = sum(item.price * item.quantity for item in items if item.is_taxable)
        tax = taxable * self._settings.tax_rate
        delivery_fee = self._settings.delivery_fee
        return OrderPricing(
            subtotal=_money(subtotal),
            delivery_fee=_money(delivery_fee),
            tax=_money(tax),
            total=_money(subtotal + tax + delivery_fee),
        )

    @staticmethod
    def _matches_search(product: Product, search: str) -> bool:
        needle = search.lower()
        return needle in product.name.lower() or needle in (product.description or "").lower()
