import json
import logging
import threading
import time

import pika

from .config import settings
from .database import SessionLocal
from .errors import NotFound
from .messaging.bus import EXCHANGE_NAME
from .services.payments import apply_refund

logger = logging.getLogger(__name__)

REFUND_QUEUE = "storefront.payment.refunded"


class RefundConsumer:
    """Listens for 'payment.refunded' events published by the finance side."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory
        self.connection = None
        self.channel = None

    def connect(self):
        """Connects to RabbitMQ, retrying until the broker is up."""
        while True:
            try:
                credentials = pika.PlainCredentials(settings.RABBITMQ_USER, settings.RABBITMQ_PASSWORD)
                parameters = pika.ConnectionParameters(settings.RABBITMQ_HOST, credentials=credentials)
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                self.channel.exchange_declare(exchange=EXCHANGE_NAME, exchange_type='topic', durable=True)
                self.channel.queue_declare(queue=REFUND_QUEUE, durable=True)
                self.channel.queue_bind(exchange=EXCHANGE_NAME, queue=REFUND_QUEUE, routing_key='payment.refunded')

                logger.info("Refund consumer connected to RabbitMQ")
                break
            except pika.exceptions.AMQPConnectionError:
                logger.warning("RabbitMQ not ready, retrying in %ss", settings.RABBITMQ_RETRY_DELAY)
                time.sleep(settings.RABBITMQ_RETRY_DELAY)

    def process_refund(self, ch, method, properties, body):
        """
        Received 'payment.refunded' with {"transactionId": ...}.
        Action: mark the payment and its order as REFUNDED.
        """
        db = self.session_factory()
        try:
            data = json.loads(body)
            transaction_id = data.get("transactionId") or data.get("transaction_id")
            if not transaction_id:
                logger.warning("Refund event without transaction id: %s", data)
            else:
                apply_refund(db, transaction_id)
        except NotFound:
            logger.warning("Refund for unknown payment: %s", body)
        except ValueError:
            logger.warning("Malformed refund event: %r", body)
        except Exception:
            # Unexpected failures are logged; the message is not redelivered.
            logger.exception("Error processing refund event")
        finally:
            db.close()
            ch.basic_ack(delivery_tag=method.delivery_tag)

    def start_listening(self):
        """Starts the consuming loop."""
        if not self.connection:
            self.connect()

        self.channel.basic_consume(queue=REFUND_QUEUE, on_message_callback=self.process_refund)

        logger.info("Refund consumer waiting for events...")
        self.channel.start_consuming()


def start_consumer_thread():
    """Helper to run the consumer in a background thread."""
    consumer = RefundConsumer()
    thread = threading.Thread(target=consumer.start_listening, daemon=True)
    thread.start()
    return thread
