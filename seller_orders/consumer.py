import asyncio
import json
import logging
import aio_pika
from datetime import datetime
from uuid import uuid4

from seller_orders.assignment import accept_delivery
from seller_orders.config import RABBITMQ_URL
from seller_orders.database import get_session
from seller_orders.errors import AlreadyAssigned, NotFound
from seller_orders.messaging import DELIVERY_EXCHANGE, ORDER_EXCHANGE, publish_event
from seller_orders.repository import SqlOrderRepository
from seller_orders.status import StatusTransitionAuthority

logger = logging.getLogger(__name__)

async def process_delivery_accepted(message: aio_pika.IncomingMessage):
    async with message.process():
        try:
            event_data = json.loads(message.body.decode())
            order_id = int(event_data["order_id"])
            partner_id = int(event_data["partner_id"])
            logger.info(f"Received DeliveryAccepted for order {order_id} from partner {partner_id}")

            async for session in get_session():
                repository = SqlOrderRepository(session)
                authority = StatusTransitionAuthority(repository, publisher=publish_event)
                try:
                    order = await accept_delivery(repository, authority, order_id, partner_id)
                except AlreadyAssigned as e:
                    event_to_publish = {
                        "event_id": str(uuid4()),
                        "event_type": "DeliveryRejected",
                        "timestamp": datetime.utcnow().isoformat(),
                        "order_id": order_id,
                        "partner_id": partner_id,
                        "reason": e.message,
                    }
                    await publish_event(DELIVERY_EXCHANGE, f"delivery.partner.{partner_id}", event_to_publish)
                    return
                except NotFound as e:
                    logger.warning(f"Ignoring acceptance: {e}")
                    return

                event_to_publish = {
                    "event_id": str(uuid4()),
                    "event_type": "DeliveryAssigned",
                    "timestamp": datetime.utcnow().isoformat(),
                    "order_id": order.id,
                    "partner_id": partner_id,
                    "store_id": order.store_id,
                }
                await publish_event(ORDER_EXCHANGE, "order.delivery_assigned", event_to_publish)

        except Exception as e:
            logger.error(f"Error processing DeliveryAccepted: {e}")

async def start_consumer():
    connection = await aio_pika.connect_robust(RABBITMQ_URL)
    async with connection:
        channel = await connection.channel()

        delivery_exchange = await channel.declare_exchange(DELIVERY_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)

        queue = await channel.declare_queue("delivery_acceptance_q", durable=True)
        await queue.bind(delivery_exchange, "delivery.accepted")

        logger.info("Delivery acceptance consumer is listening for events...")

        async def on_message(message: aio_pika.IncomingMessage):
            if message.routing_key == "delivery.accepted":
                await process_delivery_accepted(message)
            else:
                async with message.process():
                    logger.debug(f"Ignored event with routing key: {message.routing_key}")

        await queue.consume(on_message, no_ack=False)

        # Keep the main task running
        await asyncio.Future()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(start_consumer())
    except KeyboardInterrupt:
        print("Delivery acceptance consumer stopped.")
