import logging
from typing import Awaitable, Callable, Optional

from seller_orders.errors import NotFound, ValidationError, NetworkFailure
from seller_orders.events import OrderEvents, StatusChange, order_events
from seller_orders.messaging import ORDER_EXCHANGE, publish_event
from seller_orders.models import Order, OrderStatus
from seller_orders.repository import OrderRepository

logger = logging.getLogger(__name__)

Publisher = Callable[[str, str, dict], Awaitable[None]]

def parse_status(value) -> OrderStatus:
    """Return the OrderStatus for ``value`` or raise ValidationError."""
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid status '{value}'. Allowed: {allowed}")

class StatusTransitionAuthority:
    """Validates and applies seller-initiated status changes.

    Any enumerated status may be chosen from any other status; there is no
    forward-only ordering. Only the status column is written and the previous
    value is not kept. After a successful write the change is emitted on the
    in-process feed and published as ``order.status_changed``.
    """

    def __init__(
        self,
        repository: OrderRepository,
        events: Optional[OrderEvents] = None,
        publisher: Optional[Publisher] = publish_event,
    ):
        self.repository = repository
        self.events = events if events is not None else order_events
        self.publisher = publisher

    async def set_status(self, order_id: int, new_status, store_id: int) -> Order:
        status = parse_status(new_status)

        order = await self.repository.get_order(order_id)
        if order is None or order.store_id != store_id:
            raise NotFound(f"Order {order_id} not found for store {store_id}")

        previous = order.status
        order = await self.repository.update_status(order, status)
        logger.info(f"Order {order_id} status updated to {status.value}")

        change = StatusChange(
            order_id=order.id,
            store_id=order.store_id,
            status=status,
            previous_status=previous,
        )
        self.events.emit(change)
        await self._publish(change)
        return order

    async def _publish(self, change: StatusChange) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher(ORDER_EXCHANGE, "order.status_changed", change.to_event())
        except NetworkFailure as e:
            # The status is already persisted at this point
            logger.warning(f"Status change for order {change.order_id} not published: {e}")
