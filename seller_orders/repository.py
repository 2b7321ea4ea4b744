from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from seller_orders.models import Order, OrderItem, OrderStatus, Store, Product, DeliveryPartner, TERMINAL_STATUSES


class OrderRepository(ABC):
    """Order store contract used by the workflow."""

    @abstractmethod
    async def get_store(self, store_id: int) -> Optional[Store]:
        pass

    @abstractmethod
    async def list_stores(self) -> List[Store]:
        pass

    @abstractmethod
    async def list_stores_for_owner(self, owner_id: int) -> List[Store]:
        pass

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_store_orders(self, store_id: int) -> List[Order]:
        pass

    @abstractmethod
    async def list_order_items(self, order_id: int) -> List[OrderItem]:
        pass

    @abstractmethod
    async def get_products(self, product_ids: List[int]) -> List[Product]:
        pass

    @abstractmethod
    async def update_status(self, order: Order, status: OrderStatus) -> Order:
        """Overwrite the status column only."""

    @abstractmethod
    async def claim_delivery(self, order_id: int, partner_id: int) -> bool:
        """Set the assigned partner if nobody holds it yet and the order is still open. True for the winner."""

    @abstractmethod
    async def list_active_partners(self) -> List[DeliveryPartner]:
        pass


class SqlOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_store(self, store_id: int) -> Optional[Store]:
        return await self.session.get(Store, store_id)

    async def list_stores(self) -> List[Store]:
        result = await self.session.execute(select(Store).order_by(Store.id))
        return list(result.scalars().all())

    async def list_stores_for_owner(self, owner_id: int) -> List[Store]:
        result = await self.session.execute(
            select(Store).where(Store.owner_id == owner_id).order_by(Store.id)
        )
        return list(result.scalars().all())

    async def get_order(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_store_orders(self, store_id: int) -> List[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.store_id == store_id)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_order_items(self, order_id: int) -> List[OrderItem]:
        result = await self.session.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .options(selectinload(OrderItem.product))
            .order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    async def get_products(self, product_ids: List[int]) -> List[Product]:
        if not product_ids:
            return []
        result = await self.session.execute(select(Product).where(Product.id.in_(product_ids)))
        return list(result.scalars().all())

    async def update_status(self, order: Order, status: OrderStatus) -> Order:
        order.status = status
        self.session.add(order)
        await self.session.commit()
        return order

    async def claim_delivery(self, order_id: int, partner_id: int) -> bool:
        # Single-writer compare-and-set: only the first UPDATE matches the NULL guard
        result = await self.session.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.delivery_partner_id.is_(None),
                Order.status.notin_(list(TERMINAL_STATUSES)),
            )
            .values(delivery_partner_id=partner_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def list_active_partners(self) -> List[DeliveryPartner]:
        result = await self.session.execute(
            select(DeliveryPartner).where(DeliveryPartner.is_active.is_(True)).order_by(DeliveryPartner.id)
        )
        return list(result.scalars().all())
