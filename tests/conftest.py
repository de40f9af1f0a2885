import os

# Settings are read at import time, so the environment is fixed up first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_secret"
os.environ["AUTH_SECRET"] = "test-auth-secret"
os.environ["EVENTS_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.database import Base, SessionLocal, engine
from storefront.gateway import get_gateway
from storefront.main import app
from storefront.models import (
    Order, OrderItem, OrderStatus, Payment, PaymentStatus, Product, Role, Seller, Shop, User,
)
from storefront.security import hash_password, issue_token, payment_signature

GATEWAY_SECRET = "test_secret"


class FakeGateway:
    def __init__(self):
        self.calls = []
        self.fail_with = None

    def create_order(self, amount, currency, receipt=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append({"amount": amount, "currency": currency})
        return {"id": f"order_test_{len(self.calls)}", "amount": amount, "currency": currency}


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture
def client(gateway):
    return TestClient(app, raise_server_exceptions=False)


# --- Factories ---

def make_user(db, email="buyer@example.com", role=Role.USER, name="Buyer", password="secret-pass"):
    user = User(name=name, email=email, role=role, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_shop(db, email="seller@example.com", name="Tech Haven"):
    user = make_user(db, email=email, role=Role.SELLER, name=f"{name} owner")
    seller = Seller(user_id=user.id, phone="555-0100")
    db.add(seller)
    db.flush()
    shop = Shop(seller_id=seller.id, name=name, description="", location="Pune")
    db.add(shop)
    db.commit()
    db.refresh(shop)
    return shop


def make_product(db, shop, name="Widget", price="10.00", category="electronics", product_id=None,
                 description="", created_at=None):
    product = Product(
        id=product_id, shop_id=shop.id, name=name, price=Decimal(price),
        category=category, description=description, images=[],
    )
    if created_at is not None:
        product.created_at = created_at
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


_order_seq = [0]


def make_order(db, user, lines, status=OrderStatus.PENDING, payment_status=PaymentStatus.COMPLETED,
               created_at=None):
    """Persist a paid order directly; ``lines`` is a list of (product, quantity)."""
    _order_seq[0] += 1
    items = [OrderItem(product_id=p.id, quantity=q, price=p.price) for p, q in lines]
    total = sum((item.price * item.quantity for item in items), Decimal("0"))
    order = Order(
        user_id=user.id, total=total, status=status, payment_status=payment_status,
        gateway_order_id=f"order_seed_{_order_seq[0]}", items=items,
        payment=Payment(transaction_id=f"pay_seed_{_order_seq[0]}", amount=total, status=payment_status),
    )
    if created_at is not None:
        order.created_at = created_at
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def minutes_ago(n):
    return datetime.now(timezone.utc) - timedelta(minutes=n)


def auth_header(user):
    return {"Authorization": f"Bearer {issue_token(user.id, user.role.value)}"}


def sign(order_id, payment_id, secret=GATEWAY_SECRET):
    return payment_signature(order_id, payment_id, secret)
