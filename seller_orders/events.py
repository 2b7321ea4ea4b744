import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from seller_orders.models import OrderStatus

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class StatusChange:
    order_id: int
    store_id: int
    status: OrderStatus
    previous_status: Optional[OrderStatus] = None
    changed_at: datetime = field(default_factory=datetime.utcnow)

    def to_event(self) -> dict:
        return {
            "event_type": "OrderStatusChanged",
            "timestamp": self.changed_at.isoformat(),
            "order_id": self.order_id,
            "store_id": self.store_id,
            "status": self.status.value,
            "previous_status": self.previous_status.value if self.previous_status else None,
        }

Listener = Callable[[StatusChange], None]

class OrderEvents:
    """In-process change feed. Views subscribe instead of polling."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return the matching unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, change: StatusChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                # Listeners are isolated from each other
                logger.exception("Order change listener failed for order %s", change.order_id)

    def __len__(self) -> int:
        return len(self._listeners)

# Shared feed for the API process
order_events = OrderEvents()
