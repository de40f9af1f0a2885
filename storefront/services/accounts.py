import logging

from sqlalchemy.orm import Session, selectinload

from ..errors import Forbidden, NotFound, Unauthorized, ValidationFailed
from ..models import Order, Review, Role, Seller, Shop, User
from ..security import hash_password, verify_password
from .orders import serialize_order

logger = logging.getLogger(__name__)

PLACEHOLDER_SHOP_LOGO = "/images/placeholder-shop.jpg"
PLACEHOLDER_AVATAR = "/default-avatar.svg"
PLACEHOLDER_PRODUCT = "/default-product.svg"


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone or "",
        "avatarUrl": user.image or PLACEHOLDER_AVATAR,
        "role": user.role.value,
    }


# --- Sign-up / login ---

def signup(db: Session, name, email, password) -> User:
    if not name or not email or not password:
        raise ValidationFailed("all fields are mandatory")
    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise Forbidden("user already exists")

    user = User(name=name, email=email, password_hash=hash_password(password), role=Role.USER)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s signed up", user.id)
    return user


def authenticate(db: Session, email, password) -> User:
    if not email or not password:
        raise ValidationFailed("Missing email or password")
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    # Same answer for unknown email and wrong password.
    if not user or not verify_password(password.strip(), user.password_hash):
        raise Unauthorized("Invalid email or password")
    return user


def get_profile(db: Session, user: User) -> dict:
    recent_orders = (
        db.query(Order)
        .filter(Order.user_id == user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(5)
        .all()
    )
    reviews = (
        db.query(Review)
        .filter(Review.user_id == user.id, Review.rating >= 4)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )

    favorites, seen = [], set()
    for review in reviews:
        product = review.product
        if product.id in seen:
            continue
        seen.add(product.id)
        favorites.append({
            "id": product.id,
            "name": product.name,
            "image": (product.images or [PLACEHOLDER_PRODUCT])[0],
            "shopName": product.shop.name,
        })
        if len(favorites) == 4:
            break

    return {
        "user": serialize_user(user),
        "recentOrders": [serialize_order(order) for order in recent_orders],
        "favorites": favorites,
    }


# --- Admin: users ---

def list_users(db: Session) -> list:
    users = (
        db.query(User)
        .options(selectinload(User.orders))
        .filter(User.role == Role.USER)
        .order_by(User.id)
        .all()
    )
    return [
        {"id": u.id, "name": u.name, "email": u.email, "orderCount": len(u.orders)}
        for u in users
    ]


def delete_user(db: Session, user_id):
    """Delete a customer account and its orders. Admin accounts are protected."""
    if not user_id:
        raise ValidationFailed("User ID is required")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    if user.role == Role.ADMIN:
        raise Forbidden("Cannot delete admin accounts")
    db.delete(user)
    db.commit()
    logger.info("User %s deleted", user_id)


# --- Admin: sellers ---

def list_sellers(db: Session) -> list:
    users = (
        db.query(User)
        .options(selectinload(User.seller).selectinload(Seller.shop))
        .filter(User.role == Role.SELLER)
        .order_by(User.id)
        .all()
    )
    formatted = []
    for user in users:
        shop = user.seller.shop if user.seller else None
        formatted.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": (user.seller.phone if user.seller else None) or user.phone or "Not provided",
            "image": user.image or PLACEHOLDER_AVATAR,
            "shopId": shop.id if shop else None,
            "shopName": shop.name if shop else "No shop yet",
            "createdAt": user.created_at,
        })
    return formatted


def delete_seller(db: Session, user_id):
    """Delete a seller account together with its seller profile, shop and products."""
    if not user_id:
        raise ValidationFailed("Seller ID is required")
    user = db.query(User).filter(User.id == user_id, User.role == Role.SELLER).first()
    if not user:
        raise NotFound("Seller not found")
    db.delete(user)
    db.commit()
    logger.info("Seller %s deleted", user_id)


# --- Admin: shops ---

def list_shops(db: Session) -> list:
    shops = (
        db.query(Shop)
        .options(selectinload(Shop.seller).selectinload(Seller.user), selectinload(Shop.products))
        .order_by(Shop.id)
        .all()
    )
    formatted = []
    for shop in shops:
        owner = shop.seller.user if shop.seller else None
        formatted.append({
            "id": shop.id,
            "name": shop.name,
            "description": shop.description,
            "location": shop.location,
            "logo": shop.logo or PLACEHOLDER_SHOP_LOGO,
            "sellerId": owner.id if owner else None,
            "sellerName": owner.name if owner else "Unknown",
            "sellerEmail": owner.email if owner else "Unknown",
            "productCount": len(shop.products),
            "createdAt": shop.created_at,
        })
    return formatted


def delete_shop(db: Session, shop_id):
    """Delete a shop and all of its products."""
    if not shop_id:
        raise ValidationFailed("Shop ID is required")
    shop = db.query(Shop).filter(Shop.id == shop_id).first()
    if not shop:
        raise NotFound("Shop not found")
    db.delete(shop)
    db.commit()
    logger.info("Shop %s deleted", shop_id)
