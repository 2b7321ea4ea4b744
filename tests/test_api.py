import asyncio
import httpx
import logging
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from factories import make_item, make_order, make_product
from seller_orders.events import OrderEvents
from seller_orders import main
from seller_orders.main import app, get_events, get_partner_channel, get_publisher, get_repository
from seller_orders.models import DeliveryPartner, OrderStatus
from seller_orders.dispatcher import PartnerChannel
from seller_orders.errors import NetworkFailure


class FlakyChannel(PartnerChannel):
    async def send(self, partner, payload):
        if partner.id == 2:
            raise NetworkFailure("partner 2 unreachable")


@pytest.fixture
def publisher():
    return AsyncMock()


@pytest.fixture
def events():
    return OrderEvents()


@pytest.fixture
def api(repository, publisher, events):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_events] = lambda: events
    app.dependency_overrides[get_partner_channel] = lambda: FlakyChannel()
    yield httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_store_orders_are_listed_in_camel_case(api, repository):
    product = make_product(product_id=100)
    repository.add_order(make_order(order_id=1))
    repository.orders[1].items = [make_item(item_id=1, order_id=1, product_id=100, product=product)]
    repository.add_order(make_order(order_id=2, store_id=20))

    async with api as client:
        response = await client.get("/api/orders/store/10")

    assert response.status_code == 200
    body = response.json()
    assert [o["id"] for o in body] == [1]
    assert body[0]["customerName"] == "Asha Verma"
    assert body[0]["totalAmount"] == "500"
    assert body[0]["status"] == "pending"
    assert body[0]["items"][0]["product"]["name"] == "Masala Dosa"


@pytest.mark.asyncio
async def test_unknown_store_is_404(api):
    async with api as client:
        response = await client.get("/api/orders/store/999")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_order_items_embed_optional_product(api, repository):
    repository.add_order(make_order(order_id=1), items=[
        make_item(item_id=1, product_id=100, product=make_product(product_id=100)),
        make_item(item_id=2, product_id=555, product=None),
    ])

    async with api as client:
        response = await client.get("/api/order-items", params={"orderId": 1})

    assert response.status_code == 200
    body = response.json()
    assert body[0]["productId"] == 100
    assert body[0]["product"]["imageUrl"] == "https://cdn.example.com/products/100.jpg"
    assert body[1]["product"] is None


@pytest.mark.asyncio
async def test_put_status_updates_only_status(api, repository, publisher, events):
    repository.add_order(make_order(order_id=1, status=OrderStatus.PENDING, total_amount="500"))
    seen = []
    events.subscribe(seen.append)

    async with api as client:
        response = await client.put("/api/orders/1/status", json={"status": "processing"}, headers={"X-Store-Id": "10"})

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == 1
    assert body["status"] == "processing"
    assert body["totalAmount"] == "500"
    assert len(seen) == 1
    publisher.assert_called_once()


@pytest.mark.asyncio
async def test_put_invalid_status_is_422(api, repository):
    repository.add_order(make_order(order_id=1))

    async with api as client:
        response = await client.put("/api/orders/1/status", json={"status": "teleported"}, headers={"X-Store-Id": "10"})

    assert response.status_code == 422
    assert "teleported" in response.json()["detail"]
    assert repository.orders[1].status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_put_status_for_other_store_is_404(api, repository):
    repository.add_order(make_order(order_id=1, store_id=20))

    async with api as client:
        response = await client.put("/api/orders/1/status", json={"status": "shipped"}, headers={"X-Store-Id": "10"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_notify_reports_per_partner_outcome(api, repository):
    repository.add_order(make_order(order_id=7))
    for pid in (1, 2, 3):
        repository.add_partner(DeliveryPartner(id=pid, name=f"Partner {pid}", phone="9000000000", is_active=True))

    async with api as client:
        response = await client.post("/api/delivery-partners/notify", json={
            "orderId": 7, "message": "New order", "isAssigned": False, "storeId": 10,
        })

    assert response.status_code == 200
    body = response.json()
    assert body["successCount"] == 2
    assert body["failureCount"] == 1
    assert body["failed"][0]["partnerId"] == 2


@pytest.mark.asyncio
async def test_accept_is_first_come_first_served(api, repository):
    repository.add_order(make_order(order_id=7, status=OrderStatus.READY_FOR_PICKUP))

    async with api as client:
        first = await client.post("/api/delivery-partners/1/accept", json={"orderId": 7})
        second = await client.post("/api/delivery-partners/2/accept", json={"orderId": 7})

    assert first.status_code == 200
    assert first.json()["status"] == "assigned_for_delivery"
    assert first.json()["deliveryPartnerId"] == 1
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_order_view_degrades_missing_products(api, repository):
    repository.add_product(make_product(product_id=100))
    repository.add_order(
        make_order(order_id=1, latitude=Decimal("12.975000"), longitude=Decimal("77.600000")),
        items=[make_item(item_id=1, product_id=100), make_item(item_id=2, product_id=555, quantity=1, price="99")],
    )

    async with api as client:
        response = await client.get("/api/orders/1/view")

    assert response.status_code == 200
    body = response.json()
    assert [i["name"] for i in body["items"]] == ["Masala Dosa", "Product #555"]
    assert body["items"][1]["productAvailable"] is False
    assert body["statusLabel"] == "Pending"
    assert body["distance"].endswith("away")
    assert body["mapsUrl"].startswith("https://www.google.com/maps?q=")


@pytest.mark.asyncio
async def test_owner_and_nearby_stores(api):
    async with api as client:
        owned = await client.get("/api/stores/owner/7")
        nearby = await client.get("/api/stores/nearby", params={"lat": 12.97, "lng": 77.59, "radiusKm": 5})

    assert [s["name"] for s in owned.json()] == ["Spice Corner"]
    assert [s["id"] for s in nearby.json()] == [10]
    assert nearby.json()[0]["distance"].endswith("away")


@pytest.mark.asyncio
async def test_consumer_crash_is_logged(caplog):
    async def broker_down():
        raise ConnectionError("broker down")

    with patch("seller_orders.main.init_db", new=AsyncMock()), \
         patch("seller_orders.main.setup_rabbitmq", new=AsyncMock()), \
         patch("seller_orders.main.start_consumer", new=broker_down):
        with caplog.at_level(logging.ERROR, logger="seller_orders.main"):
            await main.startup_event()
            await asyncio.gather(main.consumer_task, return_exceptions=True)
            await asyncio.sleep(0)

    assert main.consumer_task.done()
    assert "broker down" in caplog.text
    main.consumer_task = None


@pytest.mark.asyncio
async def test_shutdown_cancels_the_consumer():
    async def listen_forever():
        await asyncio.Future()

    with patch("seller_orders.main.init_db", new=AsyncMock()), \
         patch("seller_orders.main.setup_rabbitmq", new=AsyncMock()), \
         patch("seller_orders.main.close_rabbitmq", new=AsyncMock()) as close, \
         patch("seller_orders.main.start_consumer", new=listen_forever):
        await main.startup_event()
        await main.shutdown_event()
        await asyncio.gather(main.consumer_task, return_exceptions=True)

    assert main.consumer_task.cancelled()
    close.assert_awaited_once()
    main.consumer_task = None
