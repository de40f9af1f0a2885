import json
import threading
import time
from unittest import mock

import pika
import pytest

from storefront.consumers import RefundConsumer
from storefront.database import SessionLocal
from storefront.messaging import bus
from storefront.models import Order, Payment, PaymentStatus

from conftest import make_order, make_product, make_shop, make_user, sign


class FakeProducer:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    def publish(self, routing_key, message):
        if self.error is not None:
            raise self.error
        self.sent.append((routing_key, message))

    def close(self):
        self.closed = True


@pytest.fixture
def events_on(monkeypatch):
    monkeypatch.setattr(bus.settings, "EVENTS_ENABLED", True)
    monkeypatch.setattr(bus, "_producer", None)
    monkeypatch.setattr(bus, "_last_failure", None)


def test_publish_is_a_no_op_when_disabled(monkeypatch):
    producer = FakeProducer()
    monkeypatch.setattr(bus, "_producer", producer)

    assert bus.publish_event("order.created", {"orderId": 1}) is False
    assert producer.sent == []


def test_publish_sends_when_enabled(monkeypatch, events_on):
    producer = FakeProducer()
    monkeypatch.setattr(bus, "_producer", producer)

    assert bus.publish_event("order.created", {"orderId": 1}) is True
    assert producer.sent == [("order.created", {"orderId": 1})]


def test_broker_failure_is_swallowed(monkeypatch, events_on):
    monkeypatch.setattr(bus, "_producer", FakeProducer(error=pika.exceptions.AMQPConnectionError()))

    assert bus.publish_event("order.created", {"orderId": 1}) is False


def test_broker_outage_costs_one_connect_attempt_then_backs_off(monkeypatch, events_on):
    slept = []
    monkeypatch.setattr(bus.time, "sleep", slept.append)

    with mock.patch.object(bus.pika, "BlockingConnection",
                           side_effect=pika.exceptions.AMQPConnectionError()) as connection_cls:
        results = [bus.publish_event("order.created", {"orderId": n}) for n in range(3)]

    assert results == [False, False, False]
    assert connection_cls.call_count == 1
    assert slept == []
    assert bus._producer is None


def test_publishing_resumes_after_backoff_window(monkeypatch, events_on):
    producer = FakeProducer()
    monkeypatch.setattr(bus, "_producer", producer)
    monkeypatch.setattr(bus, "_last_failure", time.monotonic() - bus.settings.EVENTS_BACKOFF_SECONDS - 1)

    assert bus.publish_event("order.created", {"orderId": 1}) is True
    assert producer.sent == [("order.created", {"orderId": 1})]
    assert bus._last_failure is None


def test_concurrent_publishes_never_share_the_channel_at_once(monkeypatch, events_on):
    state = {"active": 0, "peak": 0}
    guard = threading.Lock()

    class SlowProducer(FakeProducer):
        def publish(self, routing_key, message):
            with guard:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            with guard:
                state["active"] -= 1
            super().publish(routing_key, message)

    producer = SlowProducer()
    monkeypatch.setattr(bus, "_producer", producer)
    threads = [threading.Thread(target=bus.publish_event, args=("order.created", {"orderId": n}))
               for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert state["peak"] == 1
    assert len(producer.sent) == 8


def test_verified_order_emits_event(client, db, monkeypatch, events_on):
    producer = FakeProducer()
    monkeypatch.setattr(bus, "_producer", producer)
    user = make_user(db)
    product = make_product(db, make_shop(db), price="5.00")

    response = client.post("/api/verifyOrder", json={
        "orderCreationId": "order_evt", "razorpayPaymentId": "pay_evt",
        "razorpaySignature": sign("order_evt", "pay_evt"),
        "userId": user.id, "amount": "5.00",
        "orderedItems": [{"productId": product.id, "quantity": 1, "price": "5.00"}],
    })

    assert response.status_code == 200
    assert [key for key, _ in producer.sent] == ["order.created"]


def test_producer_publishes_persistent_json():
    with mock.patch.object(bus.pika, "BlockingConnection") as connection_cls:
        channel = connection_cls.return_value.channel.return_value
        connection_cls.return_value.is_closed = False

        producer = bus.RabbitMQProducer()
        producer.publish("order.created", {"orderId": 7, "total": "5.00"})

    channel.exchange_declare.assert_called_once_with(exchange="events", exchange_type="topic", durable=True)
    kwargs = channel.basic_publish.call_args.kwargs
    assert kwargs["routing_key"] == "order.created"
    assert json.loads(kwargs["body"]) == {"orderId": 7, "total": "5.00"}
    assert kwargs["properties"].delivery_mode == 2


def test_producer_gives_up_after_bounded_retries(monkeypatch):
    monkeypatch.setattr(bus.settings, "RABBITMQ_CONNECT_RETRIES", 2)
    monkeypatch.setattr(bus.time, "sleep", lambda seconds: None)

    with mock.patch.object(bus.pika, "BlockingConnection",
                           side_effect=pika.exceptions.AMQPConnectionError()) as connection_cls:
        with pytest.raises(pika.exceptions.AMQPConnectionError):
            bus.RabbitMQProducer()

    assert connection_cls.call_count == 2


# --- Refund consumer ---

def deliver(body):
    channel = mock.Mock()
    method = mock.Mock(delivery_tag=11)
    RefundConsumer(session_factory=SessionLocal).process_refund(channel, method, None, body)
    return channel


def test_refund_event_marks_payment_and_order(db):
    order = make_order(db, make_user(db), [(make_product(db, make_shop(db)), 1)])
    transaction_id = order.payment.transaction_id

    channel = deliver(json.dumps({"transactionId": transaction_id}))

    channel.basic_ack.assert_called_once_with(delivery_tag=11)
    db.expire_all()
    assert db.query(Payment).one().status == PaymentStatus.REFUNDED
    assert db.query(Order).one().payment_status == PaymentStatus.REFUNDED


@pytest.mark.parametrize("body", [
    json.dumps({"transactionId": "pay_unknown"}),
    json.dumps({"something": "else"}),
    "not json",
])
def test_bad_refund_events_are_acked_and_ignored(db, body):
    channel = deliver(body)

    channel.basic_ack.assert_called_once_with(delivery_tag=11)
