from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import (
    Order, OrderItem, OrderStatus, Payment, PaymentStatus, Product, Role, Shop, User, utcnow,
)
from .orders import line_total, list_orders, serialize_order, with_details

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def admin_stats(db: Session) -> dict:
    revenue = (
        db.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.status == PaymentStatus.COMPLETED)
        .scalar()
    )
    return {
        "users": db.query(User).filter(User.role == Role.USER).count(),
        "sellers": db.query(User).filter(User.role == Role.SELLER).count(),
        "shops": db.query(Shop).count(),
        "products": db.query(Product).count(),
        "orders": db.query(Order).count(),
        "revenue": _money(revenue),
    }


def recent_orders(db: Session, limit: int = 5) -> list:
    return list_orders(db, page=1, limit=limit)["orders"]


def seller_stats(db: Session, shop: Shop) -> dict:
    """Revenue, order count and product count for one shop, plus its latest orders."""
    shop_items = (
        db.query(OrderItem)
        .join(Product, OrderItem.product_id == Product.id)
        .filter(Product.shop_id == shop.id)
    )
    revenue = sum((item.price * item.quantity for item in shop_items), Decimal("0"))
    order_count = shop_items.with_entities(OrderItem.order_id).distinct().count()
    recent = list_orders(db, page=1, limit=5, shop_id=shop.id)["orders"]
    return {
        "stats": {
            "totalRevenue": revenue,
            "totalOrders": order_count,
            "totalProducts": db.query(Product).filter(Product.shop_id == shop.id).count(),
        },
        "recentOrders": recent,
    }


# --- Seller analytics ---
# Periods are computed in UTC. Revenue only counts this shop's lines of
# orders that were not cancelled.

def _day_start(moment):
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_start(moment, months_back=0):
    index = moment.year * 12 + moment.month - 1 - months_back
    return _day_start(moment).replace(year=index // 12, month=index % 12 + 1, day=1)


def _shop_sales(db: Session, shop_id: int, start, end=None):
    """(revenue, order count) of the shop's non-cancelled lines created in [start, end)."""
    query = (
        db.query(
            func.coalesce(func.sum(OrderItem.price * OrderItem.quantity), 0),
            func.count(func.distinct(Order.id)),
        )
        .select_from(OrderItem)
        .join(Product, OrderItem.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(
            Product.shop_id == shop_id,
            Order.status != OrderStatus.CANCELLED,
            Order.created_at >= start,
        )
    )
    if end is not None:
        query = query.filter(Order.created_at < end)
    revenue, orders = query.one()
    return _money(revenue), orders


def _top_products(db: Session, shop_id: int, since, limit: int = 5) -> list:
    sold = func.sum(OrderItem.quantity)
    rows = (
        db.query(Product, sold)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(
            Product.shop_id == shop_id,
            Order.status != OrderStatus.CANCELLED,
            Order.created_at >= since,
        )
        .group_by(Product.id)
        .order_by(sold.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": product.id,
            "name": product.name,
            "price": product.price,
            "images": list(product.images or []),
            "totalSold": int(total),
        }
        for product, total in rows
    ]


def _status_breakdown(db: Session, shop_id: int, since) -> list:
    rows = (
        db.query(Order.status, func.count(func.distinct(Order.id)))
        .join(OrderItem, OrderItem.order_id == Order.id)
        .join(Product, OrderItem.product_id == Product.id)
        .filter(Product.shop_id == shop_id, Order.created_at >= since)
        .group_by(Order.status)
        .all()
    )
    return sorted(
        ({"status": status.value, "count": count} for status, count in rows),
        key=lambda row: row["status"],
    )


def seller_analytics(db: Session, shop: Shop, now=None) -> dict:
    """
    Sales overview for one shop.

    Revenue and order counts for today, this week (from Sunday), this month
    and last month; this month's best sellers and status breakdown; and one
    revenue/order-count entry per month for the last six months, oldest first.
    """
    now = now or utcnow()
    today = _day_start(now)
    week = today - timedelta(days=(today.weekday() + 1) % 7)
    month = _month_start(now)
    last_month = _month_start(now, 1)

    periods = {
        "today": _shop_sales(db, shop.id, today),
        "thisWeek": _shop_sales(db, shop.id, week),
        "thisMonth": _shop_sales(db, shop.id, month),
        "lastMonth": _shop_sales(db, shop.id, last_month, month),
    }
    this_month, previous = periods["thisMonth"][0], periods["lastMonth"][0]
    percent_change = ((this_month - previous) / previous * 100).quantize(CENT) if previous else Decimal("0")

    monthly = []
    for months_back in range(5, -1, -1):
        start = _month_start(now, months_back)
        end = _month_start(now, months_back - 1) if months_back else None
        revenue, orders = _shop_sales(db, shop.id, start, end)
        monthly.append({"month": start.strftime("%b %Y"), "revenue": revenue, "orders": orders})

    revenue = {name: sales[0] for name, sales in periods.items()}
    revenue["percentChange"] = percent_change
    return {
        "revenue": revenue,
        "orderCounts": {name: sales[1] for name, sales in periods.items()},
        "topProducts": _top_products(db, shop.id, month),
        "monthlySales": monthly,
        "statusBreakdown": _status_breakdown(db, shop.id, month),
    }


def seller_today(db: Session, shop: Shop, now=None) -> dict:
    """Today's orders that include this shop's products, newest first."""
    today = _day_start(now or utcnow())
    orders = (
        with_details(db.query(Order))
        .filter(
            Order.items.any(OrderItem.product.has(Product.shop_id == shop.id)),
            Order.created_at >= today,
            Order.created_at < today + timedelta(days=1),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )

    formatted = []
    earnings = Decimal("0")
    for order in orders:
        items = [item for item in order.items if item.product and item.product.shop_id == shop.id]
        if order.status != OrderStatus.CANCELLED:
            earnings += line_total(items)
        formatted.append(serialize_order(order, items))
    return {
        "stats": {"todaysEarnings": _money(earnings), "totalOrders": len(formatted)},
        "orders": formatted,
    }
