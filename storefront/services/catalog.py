import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ..errors import NotFound, ValidationFailed
from ..models import Product, Review, Shop
from .orders import pagination_meta

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("newest", "price_asc", "price_desc", "rating")


def rating_summary(product: Product) -> tuple:
    """(average rating rounded to one decimal, review count)."""
    ratings = [review.rating for review in product.reviews]
    if not ratings:
        return 0.0, 0
    return round(sum(ratings) / len(ratings), 1), len(ratings)


def serialize_review(review: Review) -> dict:
    return {
        "id": review.id,
        "userId": review.user_id,
        "rating": review.rating,
        "text": review.text,
        "createdAt": review.created_at,
    }


def serialize_product(product: Product, with_reviews: bool = False) -> dict:
    average, count = rating_summary(product)
    shop = product.shop
    data = {
        "id": product.id,
        "name": product.name,
        "description": product.description or "",
        "price": product.price,
        "category": product.category,
        "images": list(product.images or []),
        "shopId": product.shop_id,
        "shopName": shop.name if shop else "Unknown Shop",
        "averageRating": average,
        "reviewCount": count,
        "createdAt": product.created_at,
        "updatedAt": product.updated_at,
    }
    if with_reviews:
        data["reviews"] = [serialize_review(review) for review in product.reviews]
    return data


def _catalog_query(db: Session):
    return db.query(Product).options(selectinload(Product.shop), selectinload(Product.reviews))


def list_products(db: Session, category: str = None, search: str = None, sort: str = "newest") -> dict:
    """Storefront listing with category filter, text search and sorting."""
    sort = sort or "newest"
    if sort not in SORT_OPTIONS:
        raise ValidationFailed(f"Invalid sort option: {sort}")

    query = _catalog_query(db)
    if category and category.lower() != "all":
        query = query.filter(Product.category == category.lower())
    if search:
        term = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{term}%"
        query = query.filter(or_(
            Product.name.ilike(pattern, escape="\\"),
            Product.description.ilike(pattern, escape="\\"),
            Product.category.ilike(pattern, escape="\\"),
        ))

    if sort == "price_asc":
        query = query.order_by(Product.price.asc(), Product.id.asc())
    elif sort == "price_desc":
        query = query.order_by(Product.price.desc(), Product.id.asc())
    else:
        query = query.order_by(Product.created_at.desc(), Product.id.desc())

    products = [serialize_product(product) for product in query.all()]
    if sort == "rating":
        # Stable sort keeps newest-first among equal ratings.
        products.sort(key=lambda p: (p["averageRating"], p["reviewCount"]), reverse=True)

    categories = sorted(row[0] for row in db.query(Product.category).distinct())
    return {"products": products, "categories": categories}


def get_product(db: Session, product_id: int) -> Product:
    product = _catalog_query(db).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")
    return product


def add_review(db: Session, product_id: int, user, rating, text: str = "") -> Review:
    if rating is None or not 1 <= rating <= 5:
        raise ValidationFailed("rating must be between 1 and 5")
    product = get_product(db, product_id)
    review = Review(product=product, user=user, rating=rating, text=text or "")
    db.add(review)
    db.commit()
    db.refresh(review)
    return review


# --- Seller product management ---

def _parse_price(value) -> Decimal:
    try:
        price = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        price = None
    if price is None or not price.is_finite() or price < 0:
        raise ValidationFailed("Invalid price format: price must be a valid positive number")
    return price.quantize(Decimal("0.01"))


def list_shop_products(db: Session, shop: Shop) -> list:
    products = (
        _catalog_query(db)
        .filter(Product.shop_id == shop.id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )
    return [serialize_product(product) for product in products]


def create_product(db: Session, shop: Shop, data) -> Product:
    missing = [field for field in ("name", "price", "category") if getattr(data, field) in (None, "")]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

    product = Product(
        shop=shop,
        name=data.name,
        description=data.description or "",
        price=_parse_price(data.price),
        category=data.category.lower(),
        images=list(data.images or []),
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Shop %s added product %s", shop.id, product.id)
    return product


def _owned_product(db: Session, shop: Shop, product_id) -> Product:
    if not product_id:
        raise ValidationFailed("Product ID is required")
    product = (
        _catalog_query(db)
        .filter(Product.id == product_id, Product.shop_id == shop.id)
        .first()
    )
    if not product:
        raise NotFound("Product not found or unauthorized")
    return product


def update_product(db: Session, shop: Shop, data) -> Product:
    """Partial update of a product owned by ``shop``. Existing order lines keep their prices."""
    product = _owned_product(db, shop, data.id)
    if data.name:
        product.name = data.name
    if data.description is not None:
        product.description = data.description
    if data.price is not None:
        product.price = _parse_price(data.price)
    if data.category:
        product.category = data.category.lower()
    if data.images is not None:
        product.images = list(data.images)
    db.commit()
    db.refresh(product)
    return product


def delete_shop_product(db: Session, shop: Shop, product_id):
    product = _owned_product(db, shop, product_id)
    db.delete(product)
    db.commit()
    logger.info("Shop %s deleted product %s", shop.id, product_id)


# --- Admin ---

def list_products_page(db: Session, page: int = 1, limit: int = 10) -> dict:
    if page < 1 or limit < 1:
        raise ValidationFailed("page and limit must be positive")
    total = db.query(Product).count()
    products = (
        db.query(Product)
        .options(selectinload(Product.shop).selectinload(Shop.seller))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    formatted = []
    for product in products:
        owner = product.shop.seller.user if product.shop and product.shop.seller else None
        formatted.append({
            "id": product.id,
            "name": product.name,
            "description": product.description,
            "price": product.price,
            "images": list(product.images or []),
            "shopId": product.shop_id,
            "shopName": product.shop.name if product.shop else "Unknown Shop",
            "sellerId": owner.id if owner else None,
            "sellerName": owner.name if owner else "Unknown Seller",
            "createdAt": product.created_at,
            "updatedAt": product.updated_at,
        })
    return {"products": formatted, "pagination": pagination_meta(total, page, limit)}


def delete_product(db: Session, product_id):
    """Remove a product together with its reviews and the order lines referencing it."""
    if not product_id:
        raise ValidationFailed("Product ID is required")
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")
    db.delete(product)
    db.commit()
    logger.info("Product %s deleted with its order items", product_id)
