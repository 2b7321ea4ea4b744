import logging

from seller_orders.errors import AlreadyAssigned, NotFound, OrderClosed
from seller_orders.models import Order, OrderStatus, TERMINAL_STATUSES
from seller_orders.repository import OrderRepository
from seller_orders.status import StatusTransitionAuthority

logger = logging.getLogger(__name__)


def _closed(order: Order) -> OrderClosed:
    return OrderClosed(f"Order {order.id} is {OrderStatus(order.status).value} and no longer needs delivery")


async def accept_delivery(
    repository: OrderRepository,
    authority: StatusTransitionAuthority,
    order_id: int,
    partner_id: int,
) -> Order:
    """First-accept-wins: claim ``order_id`` for ``partner_id``.

    The claim is an exclusive compare-and-set on the order's assigned partner,
    so at most one partner ever wins. The winner's order moves to
    ``assigned_for_delivery``; every later acceptance gets AlreadyAssigned.
    Delivered and cancelled orders cannot be claimed (OrderClosed).
    """
    order = await repository.get_order(order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    if order.status in TERMINAL_STATUSES:
        raise _closed(order)

    if not await repository.claim_delivery(order_id, partner_id):
        current = await repository.get_order(order_id)
        if current is not None and current.status in TERMINAL_STATUSES:
            raise _closed(current)
        logger.info(f"Delivery partner {partner_id} lost the race for order {order_id}")
        raise AlreadyAssigned(f"Order {order_id} is already assigned to another delivery partner")

    logger.info(f"Order {order_id} assigned to delivery partner {partner_id}")
    return await authority.set_status(order_id, OrderStatus.ASSIGNED_FOR_DELIVERY, order.store_id)
