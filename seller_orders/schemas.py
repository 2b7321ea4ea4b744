from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from decimal import Decimal
from datetime import datetime
from seller_orders.models import OrderStatus
from seller_orders.errors import PartialDispatchFailure


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ProductSummary(CamelModel):
    id: int
    name: str
    image_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


class OrderItemRead(CamelModel):
    id: int
    order_id: int
    product_id: int
    quantity: int = Field(..., gt=0)
    price: Decimal
    product: Optional[ProductSummary] = None


class OrderRead(CamelModel):
    id: int
    store_id: int
    customer_id: int
    customer_name: str
    total_amount: Decimal = Field(..., ge=0)
    status: OrderStatus
    shipping_address: str
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None
    payment_method: str
    phone: str
    delivery_partner_id: Optional[int] = None
    created_at: datetime
    items: List[OrderItemRead] = []


class StoreRead(CamelModel):
    id: int
    owner_id: int
    name: str
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None


class NearbyStore(StoreRead):
    distance_km: float
    distance: str


# Status stays a plain string so out-of-set values reach the workflow's own validation
class StatusUpdate(CamelModel):
    status: str


class NotifyRequest(CamelModel):
    order_id: int
    message: str
    is_assigned: bool = False
    store_id: Optional[int] = None


class AcceptRequest(CamelModel):
    order_id: int


class DispatchFailure(CamelModel):
    partner_id: int
    error: str


class DispatchResult(CamelModel):
    order_id: int
    delivered: List[int] = []
    failed: List[DispatchFailure] = []

    @computed_field(alias="successCount")
    @property
    def success_count(self) -> int:
        return len(self.delivered)

    @computed_field(alias="failureCount")
    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def partial_failure(self) -> Optional[PartialDispatchFailure]:
        if not self.failed:
            return None
        return PartialDispatchFailure(self.order_id, [f.partner_id for f in self.failed])


class ItemView(CamelModel):
    item_id: int
    product_id: int
    name: str
    image: str
    description: Optional[str] = None
    category: Optional[str] = None
    product_available: bool
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    unit_price_display: str
    subtotal_display: str


class OrderView(CamelModel):
    order_id: int
    customer_name: str
    phone: str
    payment_method: str
    shipping_address: str
    status: OrderStatus
    status_label: str
    badge_variant: str
    total_amount: Decimal
    total_display: str
    created_at: datetime
    maps_url: Optional[str] = None
    distance: Optional[str] = None
    items: List[ItemView] = []
