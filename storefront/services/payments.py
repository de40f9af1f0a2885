"""
Checkout payments: gateway order intents, callback verification and refunds.

Verification is the only way an Order comes into existence. The gateway
payment id is the idempotency key: a replayed callback returns the order that
was already created instead of creating a second one.
"""
import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound, StorefrontError, ValidationFailed
from ..messaging import publish_event
from ..models import (
    PROVIDER_RAZORPAY, Order, OrderItem, OrderStatus, Payment, PaymentStatus,
    Product, User,
)
from ..security import verify_payment_signature
from .orders import get_order, line_total

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


def create_payment_intent(gateway, amount, currency: str) -> str:
    """Create the remote gateway order for ``amount``; nothing is stored locally."""
    if amount is None or amount <= 0:
        raise ValidationFailed("Invalid amount")
    order = gateway.create_order(money(amount), currency)
    return order["id"]


def _existing_order(db: Session, gateway_payment_id: str, gateway_order_id: str):
    payment = db.query(Payment).filter(Payment.transaction_id == gateway_payment_id).first()
    if payment:
        return payment.order
    order = db.query(Order).filter(Order.gateway_order_id == gateway_order_id).first()
    if order:
        # Same gateway order paid under a different payment id.
        raise Conflict("order already paid")
    return None


def _price_items(db: Session, ordered_items):
    """Resolve each requested line against the live catalog price."""
    priced = []
    for item in ordered_items:
        if item.quantity < 1:
            raise ValidationFailed(f"invalid quantity for product {item.product_id}")
        product = db.query(Product).filter(Product.id == item.product_id).first()
        if not product:
            raise NotFound(f"product {item.product_id} not found")
        live_price = money(product.price)
        # The client price is only a consistency check.
        if money(item.price) != live_price:
            raise ValidationFailed(f"price mismatch for product {item.product_id}")
        priced.append((product, item.quantity, live_price))
    return [OrderItem(product=product, quantity=quantity, price=price)
            for product, quantity, price in priced]


def verify_payment(db: Session, *, gateway_order_id, gateway_payment_id, signature,
                   ordered_items, user_id, amount, secret) -> tuple:
    """
    Check the gateway callback and persist Order + OrderItems + Payment.

    Returns ``(order, created)``; ``created`` is False when the payment had
    already been recorded.
    """
    if not (gateway_order_id and gateway_payment_id and signature and ordered_items
            and user_id and amount is not None):
        raise ValidationFailed("data missing")
    if amount <= 0:
        raise ValidationFailed("Invalid amount")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("user not found")

    if not secret:
        raise StorefrontError("Payment gateway secret is not configured")
    if not verify_payment_signature(gateway_order_id, gateway_payment_id, signature, secret):
        logger.warning("Payment verification failed for gateway order %s", gateway_order_id)
        raise ValidationFailed("payment verification failed")

    existing = _existing_order(db, gateway_payment_id, gateway_order_id)
    if existing:
        logger.info("Payment %s already recorded as order %s", gateway_payment_id, existing.id)
        return get_order(db, existing.id), False

    items = _price_items(db, ordered_items)
    total = money(amount)
    subtotal = line_total(items)
    if subtotal != total:
        logger.warning("Gateway order %s: charged %s but items add up to %s",
                       gateway_order_id, total, subtotal)

    order = Order(
        user=user,
        total=total,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.COMPLETED,
        gateway_order_id=gateway_order_id,
        items=items,
        payment=Payment(
            transaction_id=gateway_payment_id,
            amount=total,
            status=PaymentStatus.COMPLETED,
            provider=PROVIDER_RAZORPAY,
        ),
    )
    db.add(order)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent callback for the same payment won the race.
        db.rollback()
        existing = _existing_order(db, gateway_payment_id, gateway_order_id)
        if existing is None:
            raise
        return get_order(db, existing.id), False
    except Exception:
        db.rollback()
        raise

    logger.info("Order %s created for user %s (payment %s)", order.id, user.id, gateway_payment_id)
    publish_event("order.created", {
        "order_id": order.id,
        "user_id": user.id,
        "total": str(total),
        "transaction_id": gateway_payment_id,
    })
    return get_order(db, order.id), True


def apply_refund(db: Session, transaction_id: str) -> Payment:
    """Mark a payment (and its order) as refunded."""
    payment = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
    if not payment:
        raise NotFound("Payment not found")
    payment.status = PaymentStatus.REFUNDED
    payment.order.payment_status = PaymentStatus.REFUNDED
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Payment %s refunded (order %s)", transaction_id, payment.order_id)
    return payment
