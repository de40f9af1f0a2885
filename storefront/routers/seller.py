from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_seller_shop
from ..models import Shop
from ..schemas import ProductIn, SellerOrderUpdate
from ..services import catalog, dashboard, orders

router = APIRouter(prefix="/seller", tags=["seller"])


# --- Orders ---

@router.get("/orders")
def list_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                status: Optional[str] = None,
                payment_status: Optional[str] = Query(None, alias="paymentStatus"),
                shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    """Orders holding at least one of this shop's products; other shops' lines are hidden."""
    return orders.list_orders(db, page=page, limit=limit, status=status,
                              payment_status=payment_status, shop_id=shop.id)


@router.api_route("/orders", methods=["PUT", "PATCH"])
def update_order_status(req: SellerOrderUpdate, shop: Shop = Depends(get_seller_shop),
                        db: Session = Depends(get_db)):
    order = orders.update_seller_order_status(db, shop.id, req.order_id, req.status)
    items = [item for item in order.items if item.product and item.product.shop_id == shop.id]
    return {"order": orders.serialize_order(order, items)}


# --- Products ---

@router.get("/products")
def list_products(shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    return {"products": catalog.list_shop_products(db, shop)}


@router.post("/products", status_code=201)
def create_product(req: ProductIn, shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    product = catalog.create_product(db, shop, req)
    return {"product": catalog.serialize_product(product)}


@router.put("/products")
def update_product(req: ProductIn, shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    product = catalog.update_product(db, shop, req)
    return {"product": catalog.serialize_product(product)}


@router.delete("/products")
def delete_product(id: Optional[int] = None, shop: Shop = Depends(get_seller_shop),
                   db: Session = Depends(get_db)):
    catalog.delete_shop_product(db, shop, id)
    return {"message": "Product deleted successfully"}


# --- Dashboard ---

@router.get("/dashboard/stats")
def stats(shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    return dashboard.seller_stats(db, shop)


@router.get("/dashboard/today-stats")
def today_stats(shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    return dashboard.seller_today(db, shop)


@router.get("/analytics")
def analytics(shop: Shop = Depends(get_seller_shop), db: Session = Depends(get_db)):
    """Revenue by period, best sellers, monthly sales and status breakdown for the caller's shop."""
    return dashboard.seller_analytics(db, shop)
