import logging

import pika
from django.conf import settings

logger = logging.getLogger(__name__)


def connection_parameters() -> pika.ConnectionParameters:
    creds = pika.PlainCredentials(
        settings.RABBITMQ_USER, settings.RABBITMQ_PASSWORD
    )
    return pika.ConnectionParameters(
        host=settings.RABBITMQ_HOST,
        port=settings.RABBITMQ_PORT,
        virtual_host=settings.RABBITMQ_VHOST,
        credentials=creds,
        connection_attempts=1,
        socket_timeout=5,
    )


def publish(exchange: str, routing_key: str, body: str, exchange_type: str = "direct"):
    """
    Publish one persistent JSON message and close the connection.

    Connection and channel errors propagate to the caller; the chat dispatcher
    treats them as best-effort notification failures.
    """
    conn = pika.BlockingConnection(connection_parameters())
    try:
        ch = conn.channel()
        ch.exchange_declare(
            exchange=exchange,
            exchange_type=exchange_type,
            durable=True,
        )
        ch.basic_publish(
            exchange=exchange,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
            ),
        )
        logger.debug("Published to %s with routing key %s", exchange, routing_key)
    finally:
        conn.close()
