"""Order detail projection.

Builds the seller's order detail view from an order, its items and a product
lookup. Product metadata is optional: a lookup that misses or fails only
degrades the item's displayed fields, projection itself never raises on it.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Tuple

from seller_orders.geo import coordinates, format_distance, haversine_km
from seller_orders.models import OrderStatus
from seller_orders.schemas import ItemView, OrderView

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "📦"
PREVIEW_LIMIT = 3

STATUS_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.READY_FOR_PICKUP: "Ready for Pickup",
    OrderStatus.ASSIGNED_FOR_DELIVERY: "Assigned for Delivery",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

BADGE_VARIANTS = {
    OrderStatus.PENDING: "secondary",
    OrderStatus.PROCESSING: "default",
    OrderStatus.SHIPPED: "outline",
    OrderStatus.DELIVERED: "default",
    OrderStatus.CANCELLED: "destructive",
}

ProductLookup = Callable[[int], Optional[object]]


def format_rupees(amount) -> str:
    return f"₹{_to_decimal(amount):,.2f}"


def badge_variant(status) -> str:
    return BADGE_VARIANTS.get(OrderStatus(status), "secondary")


def maps_url(order) -> Optional[str]:
    point = coordinates(order)
    if point is None:
        return None
    return f"https://www.google.com/maps?q={order.latitude},{order.longitude}"


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")


def _lookup(product_lookup: Optional[ProductLookup], product_id: int):
    if product_lookup is None:
        return None
    try:
        return product_lookup(product_id)
    except Exception as e:
        logger.warning(f"Product lookup failed for product {product_id}: {e}")
        return None


def project_item(item, product_lookup: Optional[ProductLookup] = None) -> ItemView:
    product = _lookup(product_lookup, item.product_id)
    unit_price = _to_decimal(item.price)
    subtotal = unit_price * item.quantity

    name = getattr(product, "name", None) if product is not None else None
    image = getattr(product, "image_url", None) if product is not None else None

    return ItemView(
        item_id=item.id,
        product_id=item.product_id,
        name=name or f"Product #{item.product_id}",
        image=image or PLACEHOLDER_IMAGE,
        description=getattr(product, "description", None) or None,
        category=getattr(product, "category", None) or None,
        product_available=product is not None,
        quantity=item.quantity,
        unit_price=unit_price,
        subtotal=subtotal,
        unit_price_display=format_rupees(unit_price),
        subtotal_display=format_rupees(subtotal),
    )


def project(
    order,
    items: Iterable,
    product_lookup: Optional[ProductLookup] = None,
    store_location: Optional[Tuple[float, float]] = None,
) -> OrderView:
    """Assemble the detail view for ``order``.

    The displayed total is the persisted ``order.total_amount``; it is not
    recomputed from, or checked against, the item subtotals.
    """
    status = OrderStatus(order.status)

    distance = None
    point = coordinates(order)
    if store_location is not None and point is not None:
        distance = format_distance(haversine_km(store_location[0], store_location[1], point[0], point[1]))

    return OrderView(
        order_id=order.id,
        customer_name=order.customer_name,
        phone=order.phone,
        payment_method=order.payment_method,
        shipping_address=order.shipping_address,
        status=status,
        status_label=STATUS_LABELS[status],
        badge_variant=badge_variant(status),
        total_amount=_to_decimal(order.total_amount),
        total_display=format_rupees(order.total_amount),
        created_at=order.created_at,
        maps_url=maps_url(order),
        distance=distance,
        items=[project_item(item, product_lookup) for item in items],
    )


def embedded_product_lookup(items: Iterable) -> ProductLookup:
    """Lookup over the ``product`` each item already carries (may be None)."""
    products = {}
    for item in items:
        product = getattr(item, "product", None)
        if product is not None:
            products[item.product_id] = product
    return products.get


def preview_items(view: OrderView, limit: int = PREVIEW_LIMIT) -> Tuple[List[ItemView], int]:
    """First ``limit`` items and how many more are hidden."""
    return view.items[:limit], max(len(view.items) - limit, 0)
