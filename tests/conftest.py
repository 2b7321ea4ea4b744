import pytest
from decimal import Decimal
from typing import List, Optional

from seller_orders.models import DeliveryPartner, Order, OrderItem, Store, Product, TERMINAL_STATUSES
from seller_orders.repository import OrderRepository


class InMemoryOrderRepository(OrderRepository):
    """Order store kept in dictionaries for tests."""

    def __init__(self):
        self.stores = {}
        self.orders = {}
        self.items = {}
        self.products = {}
        self.partners = {}
        self.status_writes = 0

    def add_store(self, store: Store) -> Store:
        self.stores[store.id] = store
        return store

    def add_order(self, order: Order, items: Optional[List[OrderItem]] = None) -> Order:
        self.orders[order.id] = order
        self.items[order.id] = list(items or [])
        return order

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def add_partner(self, partner: DeliveryPartner) -> DeliveryPartner:
        self.partners[partner.id] = partner
        return partner

    async def get_store(self, store_id):
        return self.stores.get(store_id)

    async def list_stores(self):
        return list(self.stores.values())

    async def list_stores_for_owner(self, owner_id):
        return [s for s in self.stores.values() if s.owner_id == owner_id]

    async def get_order(self, order_id):
        return self.orders.get(order_id)

    async def list_store_orders(self, store_id):
        return [o for o in self.orders.values() if o.store_id == store_id]

    async def list_order_items(self, order_id):
        return list(self.items.get(order_id, []))

    async def get_products(self, product_ids):
        return [self.products[pid] for pid in product_ids if pid in self.products]

    async def update_status(self, order, status):
        self.status_writes += 1
        order.status = status
        return order

    async def claim_delivery(self, order_id, partner_id):
        order = self.orders.get(order_id)
        if order is None or order.delivery_partner_id is not None or order.status in TERMINAL_STATUSES:
            return False
        order.delivery_partner_id = partner_id
        return True

    async def list_active_partners(self):
        return [p for p in self.partners.values() if p.is_active]


@pytest.fixture
def repository():
    repo = InMemoryOrderRepository()
    repo.add_store(Store(id=10, owner_id=7, name="Spice Corner", latitude=Decimal("12.971600"), longitude=Decimal("77.594600")))
    repo.add_store(Store(id=20, owner_id=8, name="Book Nook", latitude=None, longitude=None))
    return repo


@pytest.fixture
def mock_message_context():
    """Async context manager standing in for message.process()"""
    class AsyncContextManager:
        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            pass

    return AsyncContextManager()
