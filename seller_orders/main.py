import asyncio
import logging
import uvicorn
from typing import List, Optional
from fastapi import FastAPI, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from seller_orders.assignment import accept_delivery
from seller_orders.config import LOG_LEVEL
from seller_orders.consumer import start_consumer
from seller_orders.database import init_db, get_session
from seller_orders.dispatcher import DeliveryNotificationDispatcher, PartnerChannel, RabbitPartnerChannel
from seller_orders.errors import AlreadyAssigned, NotFound, ValidationError, NetworkFailure
from seller_orders.events import OrderEvents, order_events
from seller_orders.geo import coordinates, format_distance, stores_within
from seller_orders.messaging import setup_rabbitmq, close_rabbitmq, publish_event
from seller_orders.projector import project
from seller_orders.repository import OrderRepository, SqlOrderRepository
from seller_orders.schemas import (
    AcceptRequest,
    DispatchResult,
    NearbyStore,
    NotifyRequest,
    OrderItemRead,
    OrderRead,
    OrderView,
    StatusUpdate,
    StoreRead,
)
from seller_orders.status import StatusTransitionAuthority

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Seller Order Service")
consumer_task: Optional[asyncio.Task] = None

def log_consumer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Delivery acceptance consumer stopped")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Delivery acceptance consumer crashed: {exc!r}")

@app.on_event("startup")
async def startup_event():
    global consumer_task
    await init_db()
    await setup_rabbitmq()
    consumer_task = asyncio.create_task(start_consumer())
    consumer_task.add_done_callback(log_consumer_exit)

@app.on_event("shutdown")
async def shutdown_event():
    if consumer_task is not None and not consumer_task.done():
        consumer_task.cancel()
    await close_rabbitmq()

# --- Dependencies ---

async def get_repository(db: AsyncSession = Depends(get_session)) -> OrderRepository:
    return SqlOrderRepository(db)

def get_events() -> OrderEvents:
    return order_events

def get_publisher():
    return publish_event

def get_partner_channel() -> PartnerChannel:
    return RabbitPartnerChannel()

def get_authority(
    repository: OrderRepository = Depends(get_repository),
    events: OrderEvents = Depends(get_events),
    publisher=Depends(get_publisher),
) -> StatusTransitionAuthority:
    return StatusTransitionAuthority(repository, events=events, publisher=publisher)

# --- Error mapping ---

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": exc.message})

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": exc.message})

@app.exception_handler(AlreadyAssigned)
async def already_assigned_handler(request: Request, exc: AlreadyAssigned):
    return JSONResponse(status_code=409, content={"detail": exc.message})

@app.exception_handler(NetworkFailure)
async def network_failure_handler(request: Request, exc: NetworkFailure):
    return JSONResponse(status_code=503, content={"detail": exc.message})

# --- Stores ---

@app.get("/api/stores/owner/{owner_id}", response_model=List[StoreRead])
async def get_owner_stores(owner_id: int, repository: OrderRepository = Depends(get_repository)):
    stores = await repository.list_stores_for_owner(owner_id)
    return [StoreRead.model_validate(store) for store in stores]

@app.get("/api/stores/nearby", response_model=List[NearbyStore])
async def get_nearby_stores(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(10.0, alias="radiusKm", gt=0),
    repository: OrderRepository = Depends(get_repository),
):
    stores = await repository.list_stores()
    return [
        NearbyStore(
            **StoreRead.model_validate(store).model_dump(),
            distance_km=round(distance, 3),
            distance=format_distance(distance),
        )
        for store, distance in stores_within(stores, lat, lng, radius_km)
    ]

# --- Orders ---

@app.get("/api/orders/store/{store_id}", response_model=List[OrderRead])
async def get_store_orders(store_id: int, repository: OrderRepository = Depends(get_repository)):
    if await repository.get_store(store_id) is None:
        raise NotFound(f"Store {store_id} not found")
    orders = await repository.list_store_orders(store_id)
    return [OrderRead.model_validate(order) for order in orders]

@app.get("/api/order-items", response_model=List[OrderItemRead])
async def get_order_items(order_id: int = Query(..., alias="orderId"), repository: OrderRepository = Depends(get_repository)):
    items = await repository.list_order_items(order_id)
    return [OrderItemRead.model_validate(item) for item in items]

@app.get("/api/orders/{order_id}/view", response_model=OrderView)
async def get_order_view(order_id: int, repository: OrderRepository = Depends(get_repository)):
    order = await repository.get_order(order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    items = await repository.list_order_items(order_id)
    products = await repository.get_products(sorted({item.product_id for item in items}))
    store = await repository.get_store(order.store_id)
    return project(
        order,
        items,
        {product.id: product for product in products}.get,
        store_location=coordinates(store) if store is not None else None,
    )

@app.put("/api/orders/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    store_id: int = Header(..., alias="X-Store-Id"),
    authority: StatusTransitionAuthority = Depends(get_authority),
):
    order = await authority.set_status(order_id, payload.status, store_id)
    return OrderRead.model_validate(order)

# --- Delivery partners ---

@app.post("/api/delivery-partners/notify", response_model=DispatchResult)
async def notify_delivery_partners(
    payload: NotifyRequest,
    repository: OrderRepository = Depends(get_repository),
    channel: PartnerChannel = Depends(get_partner_channel),
):
    dispatcher = DeliveryNotificationDispatcher(repository, channel)
    return await dispatcher.notify_all(
        payload.order_id,
        payload.message,
        is_assigned=payload.is_assigned,
        store_id=payload.store_id,
    )

@app.post("/api/delivery-partners/{partner_id}/accept", response_model=OrderRead)
async def accept_order_delivery(
    partner_id: int,
    payload: AcceptRequest,
    repository: OrderRepository = Depends(get_repository),
    authority: StatusTransitionAuthority = Depends(get_authority),
):
    order = await accept_delivery(repository, authority, payload.order_id, partner_id)
    return OrderRead.model_validate(order)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
