"""Seller order-management view state.

Holds one store's order snapshot and refetches it only after an explicit
invalidation, either from this view's own successful mutations or from a
change published on the shared ``OrderEvents`` feed. Every failure is turned
into a toast at the call site; nothing propagates out of the view actions.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from seller_orders.client import OrderApiClient
from seller_orders.dispatcher import can_broadcast, compose_broadcast_message
from seller_orders.errors import (
    AccessDenied,
    NetworkFailure,
    NotFound,
    OrderWorkflowError,
    PendingApproval,
)
from seller_orders.events import OrderEvents, StatusChange
from seller_orders.filters import ALL, filter_by_status, search_orders, status_counts
from seller_orders.models import OrderStatus
from seller_orders.projector import embedded_product_lookup, project
from seller_orders.schemas import DispatchResult, OrderRead, OrderView, StoreRead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toast:
    title: str
    description: str
    variant: str = "default"


@dataclass(frozen=True)
class Seller:
    id: int
    role: str
    status: str


def ensure_seller_access(user: Optional[Seller]) -> None:
    if user is None or user.role != "shopkeeper":
        raise AccessDenied("You need to be a shopkeeper to access order management.")
    if user.status != "active":
        raise PendingApproval(
            "Your seller account is pending approval from our admin team. "
            "You cannot access order management until approved."
        )


class SellerOrdersView:

    def __init__(self, client: OrderApiClient, user: Seller, events: Optional[OrderEvents] = None):
        ensure_seller_access(user)
        self.client = client
        self.user = user
        self.events = events
        self.store: Optional[StoreRead] = None
        self.toasts: List[Toast] = []
        self.load_error: Optional[OrderWorkflowError] = None
        self._orders: List[OrderRead] = []
        self._stale = True
        self._unsubscribe = events.subscribe(self._on_change) if events is not None else None

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # --- snapshot ---

    @property
    def is_stale(self) -> bool:
        return self._stale

    def invalidate(self) -> None:
        self._stale = True

    def _on_change(self, change: StatusChange) -> None:
        if self.store is not None and change.store_id == self.store.id:
            self.invalidate()

    async def load_store(self) -> Optional[StoreRead]:
        if self.store is None:
            try:
                stores = await self.client.stores_for_owner(self.user.id)
            except OrderWorkflowError as e:
                self._toast_error(e, "Failed to load store")
                return None
            self.store = stores[0] if stores else None
        return self.store

    async def orders(self) -> List[OrderRead]:
        """Current snapshot, refetched first when it has been invalidated."""
        if not self._stale:
            return self._orders
        store = await self.load_store()
        if store is None:
            self._orders, self._stale = [], False
            return self._orders
        try:
            self._orders = await self.client.list_store_orders(store.id)
        except OrderWorkflowError as e:
            # Keep the stale flag so the retry action refetches
            self.load_error = e
            self._toast_error(e, "Failed to load orders")
            return self._orders
        self.load_error = None
        self._stale = False
        return self._orders

    async def retry(self) -> List[OrderRead]:
        self.invalidate()
        return await self.orders()

    async def visible_orders(self, search: str = "", status: Optional[str] = ALL) -> List[OrderRead]:
        return search_orders(filter_by_status(await self.orders(), status), search)

    async def counts(self) -> Dict[str, int]:
        return status_counts(await self.orders())

    # --- actions ---

    async def change_status(self, order_id: int, status: str) -> Optional[OrderRead]:
        store = await self.load_store()
        if store is None:
            self._toast_error(NotFound("No store found for this seller"), "Failed to update order status")
            return None
        try:
            order = await self.client.set_status(order_id, status, store.id)
        except OrderWorkflowError as e:
            self._toast_error(e, "Failed to update order status")
            return None
        self.invalidate()
        if self.events is not None:
            self.events.emit(StatusChange(order_id=order.id, store_id=order.store_id, status=OrderStatus(order.status)))
        self.toasts.append(Toast("Success", "Order status updated successfully"))
        return order

    async def notify_partners(self, order: OrderRead) -> Optional[DispatchResult]:
        """Offer ``order`` to all delivery partners, first to accept gets it."""
        if not can_broadcast(order):
            self.toasts.append(Toast(
                "Not available",
                f"Order #{order.id} is {OrderStatus(order.status).value} and cannot be sent to delivery partners",
                "destructive",
            ))
            return None
        store = await self.load_store()
        if store is None:
            self._toast_error(NotFound("No store found for this seller"), "Failed to notify delivery partners")
            return None
        message = compose_broadcast_message(order, store.name)
        try:
            result = await self.client.notify_partners(order.id, message, is_assigned=False, store_id=store.id)
        except OrderWorkflowError as e:
            self._toast_error(e, "Failed to notify delivery partners")
            return None

        failure = result.partial_failure()
        if failure is None:
            self.toasts.append(Toast("Success", "Delivery partners notified successfully"))
        else:
            self.toasts.append(Toast(
                "Partially sent",
                f"Notified {result.success_count} delivery partner(s); {failure.message}",
                "warning",
            ))
        return result

    async def order_detail(self, order: OrderRead) -> OrderView:
        """Detail view for ``order``. Item fetch failures degrade to the embedded items."""
        items = order.items
        try:
            items = await self.client.list_order_items(order.id)
        except OrderWorkflowError as e:
            self._toast_error(e, "Failed to load order items")
        store = self.store
        store_location = None
        if store is not None and store.latitude is not None and store.longitude is not None:
            store_location = (float(store.latitude), float(store.longitude))
        return project(order, items, embedded_product_lookup(items), store_location=store_location)

    def _toast_error(self, error: OrderWorkflowError, fallback: str) -> None:
        logger.warning(f"{fallback}: {error}")
        description = error.message or fallback
        if isinstance(error, NetworkFailure):
            description = f"{description}. Please try again."
        self.toasts.append(Toast("Error", description, "destructive"))
