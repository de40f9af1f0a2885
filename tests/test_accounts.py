from decimal import Decimal

import pytest

from storefront.models import Order, PaymentStatus, Product, Review, Role, Shop, User
from storefront.security import decode_token

from conftest import auth_header, make_order, make_product, make_shop, make_user


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@example.com", role=Role.ADMIN, name="Admin")


# --- Signup / login ---

def test_signup_then_login(client, db):
    response = client.post("/api/auth/signup",
                           json={"name": "Asha", "email": "Asha@Example.com", "password": "pw-123456"})
    assert response.status_code == 201
    assert response.json()["user"]["role"] == "USER"
    stored = db.query(User).one()
    assert stored.email == "asha@example.com"
    assert stored.password_hash != "pw-123456"

    login = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "pw-123456"})
    assert login.status_code == 200
    assert decode_token(login.json()["token"])["sub"] == stored.id


def test_signup_validation(client, db):
    make_user(db, email="taken@example.com")

    missing = client.post("/api/auth/signup", json={"email": "x@example.com", "password": "p"})
    taken = client.post("/api/auth/signup", json={"name": "T", "email": "taken@example.com", "password": "p"})

    assert missing.status_code == 400
    assert taken.status_code == 403


@pytest.mark.parametrize("email,password", [
    ("buyer@example.com", "wrong"),
    ("nobody@example.com", "secret-pass"),
])
def test_login_failures_are_401(client, db, email, password):
    make_user(db)
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 401


def test_profile_lists_recent_orders_and_favorites(client, db):
    shop = make_shop(db)
    buyer = make_user(db)
    loved = make_product(db, shop, name="Loved")
    meh = make_product(db, shop, name="Meh")
    db.add_all([
        Review(product_id=loved.id, user_id=buyer.id, rating=5),
        Review(product_id=meh.id, user_id=buyer.id, rating=2),
    ])
    db.commit()
    for _ in range(6):
        make_order(db, buyer, [(loved, 1)])

    response = client.get("/api/user/profile", headers=auth_header(buyer))

    assert response.status_code == 200
    data = response.json()
    assert data["user"]["email"] == "buyer@example.com"
    assert len(data["recentOrders"]) == 5
    assert [f["name"] for f in data["favorites"]] == ["Loved"]


def test_token_for_deleted_user_is_rejected(client, db):
    user = make_user(db)
    headers = auth_header(user)
    db.delete(user)
    db.commit()

    assert client.get("/api/orders", headers=headers).status_code == 401


@pytest.mark.parametrize("token", [b"abc.\xe9\xe9", b"\xe9\xe9.\xe9", b"garbage"])
def test_malformed_bearer_token_is_401(client, token):
    response = client.get("/api/orders", headers={"Authorization": b"Bearer " + token})
    assert response.status_code == 401


# --- Admin console ---

def test_admin_lists_users_with_order_counts(client, db, admin):
    shop = make_shop(db)
    buyer = make_user(db)
    make_order(db, buyer, [(make_product(db, shop), 1)])

    users = client.get("/api/admin/users", headers=auth_header(admin)).json()["users"]

    assert users == [{"id": buyer.id, "name": "Buyer", "email": "buyer@example.com", "orderCount": 1}]


def test_admin_deletes_user_and_their_orders(client, db, admin):
    shop = make_shop(db)
    buyer = make_user(db)
    make_order(db, buyer, [(make_product(db, shop), 1)])

    response = client.delete(f"/api/admin/users?id={buyer.id}", headers=auth_header(admin))

    assert response.status_code == 200
    assert db.query(Order).count() == 0
    assert db.query(User).filter(User.email == "buyer@example.com").count() == 0


def test_admin_accounts_cannot_be_deleted(client, db, admin):
    other_admin = make_user(db, email="root@example.com", role=Role.ADMIN)
    response = client.delete(f"/api/admin/users?id={other_admin.id}", headers=auth_header(admin))
    assert response.status_code == 403


def test_admin_delete_missing_ids(client, admin):
    headers = auth_header(admin)
    assert client.delete("/api/admin/users", headers=headers).status_code == 400
    assert client.delete("/api/admin/users?id=999", headers=headers).status_code == 404
    assert client.delete("/api/admin/sellers?id=999", headers=headers).status_code == 404
    assert client.delete("/api/admin/shops?id=999", headers=headers).status_code == 404


def test_admin_sellers_and_shops(client, db, admin):
    shop = make_shop(db, name="Book World")
    make_product(db, shop)
    headers = auth_header(admin)

    sellers = client.get("/api/admin/sellers", headers=headers).json()["sellers"]
    shops = client.get("/api/admin/shops", headers=headers).json()["shops"]

    assert [(s["shopName"], s["shopId"]) for s in sellers] == [("Book World", shop.id)]
    assert shops[0]["productCount"] == 1
    assert shops[0]["sellerEmail"] == "seller@example.com"


def test_admin_deletes_shop_with_products(client, db, admin):
    shop = make_shop(db)
    make_product(db, shop)

    response = client.delete(f"/api/admin/shops?id={shop.id}", headers=auth_header(admin))

    assert response.status_code == 200
    assert db.query(Shop).count() == 0
    assert db.query(Product).count() == 0


def test_admin_deletes_seller_account(client, db, admin):
    shop = make_shop(db)
    make_product(db, shop)
    seller_id = shop.seller.user_id

    response = client.delete(f"/api/admin/sellers?id={seller_id}", headers=auth_header(admin))

    assert response.status_code == 200
    assert db.query(User).filter(User.id == seller_id).count() == 0
    assert db.query(Shop).count() == 0
    assert db.query(Product).count() == 0


# --- Dashboards ---

def test_admin_dashboard_stats(client, db, admin):
    shop = make_shop(db)
    product = make_product(db, shop, price="10.00")
    buyer = make_user(db)
    make_order(db, buyer, [(product, 2)])
    make_order(db, buyer, [(product, 1)], payment_status=PaymentStatus.REFUNDED)

    stats = client.get("/api/admin/dashboard/stats", headers=auth_header(admin)).json()

    assert stats == {"users": 1, "sellers": 1, "shops": 1, "products": 1, "orders": 2, "revenue": 20.0}
    recent = client.get("/api/admin/dashboard/recent-orders", headers=auth_header(admin)).json()["orders"]
    assert len(recent) == 2


def test_seller_dashboard_counts_only_own_shop(client, db):
    shop = make_shop(db)
    other = make_shop(db, email="other@example.com", name="Other")
    mine = make_product(db, shop, price="3.00")
    theirs = make_product(db, other, price="100.00")
    buyer = make_user(db)
    make_order(db, buyer, [(mine, 2), (theirs, 1)])
    make_order(db, buyer, [(theirs, 1)])

    data = client.get("/api/seller/dashboard/stats", headers=auth_header(shop.seller.user)).json()

    assert data["stats"] == {"totalRevenue": 6.0, "totalOrders": 1, "totalProducts": 1}
    assert len(data["recentOrders"]) == 1
    assert Decimal(str(data["recentOrders"][0]["totalAmount"])) == Decimal("6")
