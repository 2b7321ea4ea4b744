import json
import logging
import aio_pika
from seller_orders.config import RABBITMQ_URL
from seller_orders.errors import NetworkFailure

logger = logging.getLogger(__name__)

ORDER_EXCHANGE = "order_exchange"
DELIVERY_EXCHANGE = "delivery_exchange"

connection = None
channel = None

async def setup_rabbitmq():
    global connection, channel
    try:
        connection = await aio_pika.connect_robust(RABBITMQ_URL)
        channel = await connection.channel()
        await channel.declare_exchange(ORDER_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
        await channel.declare_exchange(DELIVERY_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
        logger.info("RabbitMQ setup complete.")
    except Exception as e:
        logger.error(f"Error setting up RabbitMQ: {e}")

async def close_rabbitmq():
    global connection, channel
    if connection is not None:
        await connection.close()
    connection = None
    channel = None

async def publish_event(exchange_name: str, routing_key: str, message_data: dict):
    """Publish a persistent JSON message. Raises NetworkFailure when the broker is unusable."""
    if not channel:
        raise NetworkFailure("RabbitMQ channel not available")

    message = aio_pika.Message(
        json.dumps(message_data, default=str).encode('utf-8'),
        content_type='application/json',
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT
    )

    try:
        exchange = await channel.get_exchange(exchange_name)
        await exchange.publish(message, routing_key=routing_key)
    except Exception as e:
        raise NetworkFailure(f"Error publishing to {routing_key}: {e}") from e
    logger.debug(f"Published event to {routing_key}: {message_data.get('event_type')}")
