import json
import logging
import threading
import time

import pika

from ..config import settings

logger = logging.getLogger(__name__)

EXCHANGE_NAME = "events"


class RabbitMQProducer:
    """
    Handles the connection to RabbitMQ and publishing of events.
    Connection attempts are retried a bounded number of times
    (``attempts``, default RABBITMQ_CONNECT_RETRIES).
    """

    def __init__(self, exchange_name=EXCHANGE_NAME, exchange_type="topic", attempts=None):
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.attempts = attempts or settings.RABBITMQ_CONNECT_RETRIES
        self.connection = None
        self.channel = None
        self.connect()

    def connect(self):
        """Establishes a connection to RabbitMQ with retry logic."""
        attempts = max(1, self.attempts)
        for attempt in range(1, attempts + 1):
            try:
                credentials = pika.PlainCredentials(settings.RABBITMQ_USER, settings.RABBITMQ_PASSWORD)
                parameters = pika.ConnectionParameters(host=settings.RABBITMQ_HOST, credentials=credentials)

                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                # Declare the exchange (durable ensures it survives restarts)
                self.channel.exchange_declare(
                    exchange=self.exchange_name,
                    exchange_type=self.exchange_type,
                    durable=True
                )
                logger.info("Connected to RabbitMQ exchange %s", self.exchange_name)
                return
            except pika.exceptions.AMQPConnectionError:
                if attempt == attempts:
                    raise
                logger.warning("RabbitMQ not ready (attempt %d/%d), retrying in %ss",
                               attempt, attempts, settings.RABBITMQ_RETRY_DELAY)
                time.sleep(settings.RABBITMQ_RETRY_DELAY)

    def publish(self, routing_key, message):
        """
        Publishes a message to the exchange with a specific routing key.

        Args:
            routing_key (str): The topic key (e.g., 'order.created').
            message (dict): The data payload to send.
        """
        # Reconnect if the connection was lost
        if not self.connection or self.connection.is_closed:
            self.connect()

        self.channel.basic_publish(
            exchange=self.exchange_name,
            routing_key=routing_key,
            body=json.dumps(message, default=str),
            properties=pika.BasicProperties(
                delivery_mode=2,  # Make message persistent
                content_type='application/json'
            )
        )
        logger.info("Sent event %s: %s", routing_key, message)

    def close(self):
        """Closes the connection cleanly."""
        if self.connection and not self.connection.is_closed:
            self.connection.close()


# Shared by the request threads; pika connections are not thread-safe.
_lock = threading.Lock()
_producer = None
_last_failure = None  # time.monotonic() of the last broker failure


def get_producer() -> RabbitMQProducer:
    """The shared producer. Callers hold ``_lock``; requests get a single connect attempt."""
    global _producer
    if _producer is None:
        _producer = RabbitMQProducer(attempts=1)
    return _producer


def _reset_producer():
    global _producer
    if _producer is not None:
        try:
            _producer.close()
        except pika.exceptions.AMQPError:
            logger.debug("Error closing broken RabbitMQ connection", exc_info=True)
    _producer = None


def publish_event(routing_key: str, message: dict) -> bool:
    """
    Publish a domain event after the change it describes has been committed.

    Events are best effort: the database is the source of truth, so a broker
    failure is logged and never undoes the request. After a failure, events are
    dropped for EVENTS_BACKOFF_SECONDS instead of reconnecting on every call.
    Returns True when sent.
    """
    global _last_failure
    if not settings.EVENTS_ENABLED:
        logger.debug("Events disabled, dropping %s", routing_key)
        return False

    with _lock:
        if _last_failure is not None and time.monotonic() - _last_failure < settings.EVENTS_BACKOFF_SECONDS:
            logger.warning("RabbitMQ unavailable, dropping %s", routing_key)
            return False
        try:
            get_producer().publish(routing_key, message)
        except pika.exceptions.AMQPError as e:
            logger.error("Failed to publish %s: %s", routing_key, e)
            _last_failure = time.monotonic()
            _reset_producer()
            return False
        _last_failure = None
        return True
