"""Order listing, status changes and the order status state machine."""
import logging
import math
from decimal import Decimal

from sqlalchemy.orm import Session, selectinload

from ..errors import NotFound, ValidationFailed
from ..messaging import publish_event
from ..models import Order, OrderItem, OrderStatus, PaymentStatus, Product

logger = logging.getLogger(__name__)

# Forward-only progression; CANCELLED is reachable from every non-terminal state.
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def is_terminal(status: OrderStatus) -> bool:
    return not ORDER_TRANSITIONS[status]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target == current or target in ORDER_TRANSITIONS[current]


def parse_enum(enum_cls, value, label):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise ValidationFailed(f"Invalid {label}: {value}")


def pagination_meta(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def line_total(items) -> Decimal:
    return sum((item.price * item.quantity for item in items), Decimal("0"))


# --- Serialization ---

def serialize_item(item: OrderItem) -> dict:
    product = item.product
    return {
        "id": item.id,
        "productId": item.product_id,
        "productName": product.name if product else "Unknown Product",
        "images": list(product.images or []) if product else [],
        "shopName": product.shop.name if product and product.shop else "Unknown Shop",
        "quantity": item.quantity,
        "price": item.price,
        "subtotal": item.price * item.quantity,
    }


def serialize_payment(payment) -> dict:
    if payment is None:
        return None
    return {
        "id": payment.id,
        "transactionId": payment.transaction_id,
        "amount": payment.amount,
        "status": payment.status.value,
        "provider": payment.provider,
        "createdAt": payment.created_at,
    }


def serialize_order(order: Order, items=None) -> dict:
    """Full order view. ``items`` narrows the lines shown (seller views)."""
    items = order.items if items is None else items
    return {
        "id": order.id,
        "userId": order.user_id,
        "userName": order.user.name if order.user else "Unknown User",
        "userEmail": order.user.email if order.user else "Unknown Email",
        "gatewayOrderId": order.gateway_order_id,
        "total": order.total,
        "totalAmount": line_total(items),
        "shopName": serialize_item(items[0])["shopName"] if items else "Unknown Shop",
        "status": order.status.value,
        "paymentStatus": order.payment_status.value,
        "items": [serialize_item(item) for item in items],
        "payment": serialize_payment(order.payment),
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
    }


def with_details(query):
    return query.options(
        selectinload(Order.user),
        selectinload(Order.payment),
        selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.shop),
    )


# --- Queries ---

def list_orders(db: Session, page: int = 1, limit: int = 10, status=None,
                payment_status=None, shop_id: int = None) -> dict:
    """
    Paginated order listing, newest first.

    With ``shop_id`` only orders holding at least one item from that shop are
    returned, and only those items are shown.
    """
    if page < 1 or limit < 1:
        raise ValidationFailed("page and limit must be positive")

    query = db.query(Order)
    if status:
        query = query.filter(Order.status == parse_enum(OrderStatus, status, "status"))
    if payment_status:
        query = query.filter(Order.payment_status == parse_enum(PaymentStatus, payment_status, "paymentStatus"))
    if shop_id is not None:
        query = query.filter(Order.items.any(OrderItem.product.has(Product.shop_id == shop_id)))

    total = query.count()
    orders = (
        with_details(query)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    formatted = []
    for order in orders:
        items = order.items
        if shop_id is not None:
            items = [item for item in items if item.product and item.product.shop_id == shop_id]
        formatted.append(serialize_order(order, items))

    return {"orders": formatted, "pagination": pagination_meta(total, page, limit)}


def list_user_orders(db: Session, user_id: int) -> list:
    orders = (
        with_details(db.query(Order).filter(Order.user_id == user_id))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [serialize_order(order) for order in orders]


def get_order(db: Session, order_id: int) -> Order:
    order = with_details(db.query(Order).filter(Order.id == order_id)).first()
    if not order:
        raise NotFound("Order not found")
    return order


# --- Mutations ---

def _apply_status(order: Order, target: OrderStatus):
    current = order.status
    if not can_transition(current, target):
        raise ValidationFailed(f"invalid status transition {current.value} -> {target.value}")
    order.status = target
    return current


def _commit_status_change(db: Session, order: Order, previous: OrderStatus):
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    if previous != order.status:
        logger.info("Order %s status %s -> %s", order.id, previous.value, order.status.value)
        publish_event("order.status_changed", {
            "order_id": order.id,
            "from": previous.value,
            "to": order.status.value,
        })


def update_order(db: Session, order_id, status=None, payment_status=None) -> Order:
    """Admin update of status and/or payment status."""
    if not order_id:
        raise ValidationFailed("Order ID is required")
    if not status and not payment_status:
        raise ValidationFailed("Either status or paymentStatus is required")

    target_status = parse_enum(OrderStatus, status, "status") if status else None
    target_payment = parse_enum(PaymentStatus, payment_status, "paymentStatus") if payment_status else None

    order = get_order(db, order_id)
    previous = order.status
    if target_status is not None:
        _apply_status(order, target_status)
    if target_payment is not None:
        order.payment_status = target_payment
        if order.payment is not None:
            order.payment.status = target_payment

    _commit_status_change(db, order, previous)
    return order


def update_seller_order_status(db: Session, shop_id: int, order_id, status) -> Order:
    """Status change by a seller; the order must contain one of the seller's products."""
    if not order_id:
        raise ValidationFailed("Order ID is required")
    if not status:
        raise ValidationFailed("status is required")
    target = parse_enum(OrderStatus, status, "status")

    order = (
        with_details(db.query(Order))
        .filter(Order.id == order_id)
        .filter(Order.items.any(OrderItem.product.has(Product.shop_id == shop_id)))
        .first()
    )
    if not order:
        raise NotFound("Order not found")

    previous = _apply_status(order, target)
    _commit_status_change(db, order, previous)
    return order
