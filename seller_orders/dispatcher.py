import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import uuid4

from seller_orders.errors import NotFound
from seller_orders.messaging import DELIVERY_EXCHANGE, publish_event
from seller_orders.models import DeliveryPartner, OrderStatus, TERMINAL_STATUSES
from seller_orders.projector import format_rupees
from seller_orders.repository import OrderRepository
from seller_orders.schemas import DispatchFailure, DispatchResult

logger = logging.getLogger(__name__)

NOT_BROADCASTABLE = TERMINAL_STATUSES | {OrderStatus.ASSIGNED_FOR_DELIVERY}


def can_broadcast(order) -> bool:
    """Whether the seller may still offer ``order`` to delivery partners."""
    return OrderStatus(order.status) not in NOT_BROADCASTABLE


def compose_broadcast_message(order, store_name: Optional[str]) -> str:
    return (
        f"🚚 New Order Available: Order #{order.id} from {store_name or 'our store'}. "
        f"Customer: {order.customer_name}. Total: {format_rupees(order.total_amount)}. "
        f"First to accept gets delivery!"
    )


class PartnerChannel(ABC):
    @abstractmethod
    async def send(self, partner: DeliveryPartner, payload: dict) -> None:
        """Deliver ``payload`` to one partner. Raises on failure."""


class RabbitPartnerChannel(PartnerChannel):
    """Publishes each alert on the partner's own routing key."""

    async def send(self, partner: DeliveryPartner, payload: dict) -> None:
        await publish_event(DELIVERY_EXCHANGE, f"delivery.partner.{partner.id}", payload)


class DeliveryNotificationDispatcher:
    """Broadcasts an order to every active delivery partner at once.

    The dispatcher only fans out and reports what happened per recipient.
    Choosing the partner is left to the exclusive claim in
    ``seller_orders.assignment``; a failed send to some partners is reported
    in the result and never raised.
    """

    def __init__(self, repository: OrderRepository, channel: PartnerChannel):
        self.repository = repository
        self.channel = channel

    async def notify_all(
        self,
        order_id: int,
        message: str,
        is_assigned: bool = False,
        store_id: Optional[int] = None,
    ) -> DispatchResult:
        order = await self.repository.get_order(order_id)
        if order is None or (store_id is not None and order.store_id != store_id):
            raise NotFound(f"Order {order_id} not found")

        partners = await self.repository.list_active_partners()
        payload = {
            "event_id": str(uuid4()),
            "event_type": "DeliveryRequested",
            "timestamp": datetime.utcnow().isoformat(),
            "order_id": order_id,
            "message": message,
            "is_assigned": is_assigned,
            "store_id": order.store_id,
        }

        outcomes = await asyncio.gather(
            *(self.channel.send(partner, payload) for partner in partners),
            return_exceptions=True,
        )

        delivered, failed = [], []
        for partner, outcome in zip(partners, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Delivery partner {partner.id} unreachable for order {order_id}: {outcome}")
                failed.append(DispatchFailure(partner_id=partner.id, error=str(outcome) or type(outcome).__name__))
            else:
                delivered.append(partner.id)

        result = DispatchResult(order_id=order_id, delivered=delivered, failed=failed)

        logger.info(
            f"Order {order_id} broadcast to {len(partners)} partner(s): "
            f"{result.success_count} sent, {result.failure_count} failed"
        )
        return result
