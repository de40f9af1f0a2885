from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import require_admin
from ..schemas import AdminOrderUpdate
from ..services import accounts, catalog, dashboard, orders

# Every admin endpoint requires an ADMIN token.
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# --- Orders ---

@router.get("/orders")
def list_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                status: Optional[str] = None,
                payment_status: Optional[str] = Query(None, alias="paymentStatus"),
                db: Session = Depends(get_db)):
    return orders.list_orders(db, page=page, limit=limit, status=status, payment_status=payment_status)


@router.patch("/orders")
def update_order(req: AdminOrderUpdate, db: Session = Depends(get_db)):
    """Change status (state machine enforced) and/or payment status."""
    order = orders.update_order(db, req.id, status=req.status, payment_status=req.payment_status)
    return {"message": "Order updated successfully", "order": orders.serialize_order(order)}


# --- Products ---

@router.get("/products")
def list_products(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                  db: Session = Depends(get_db)):
    return catalog.list_products_page(db, page=page, limit=limit)


@router.delete("/products")
def delete_product(id: Optional[int] = None, db: Session = Depends(get_db)):
    catalog.delete_product(db, id)
    return {"message": "Product deleted successfully"}


# --- Accounts ---

@router.get("/users")
def list_users(db: Session = Depends(get_db)):
    return {"users": accounts.list_users(db)}


@router.delete("/users")
def delete_user(id: Optional[int] = None, db: Session = Depends(get_db)):
    accounts.delete_user(db, id)
    return {"message": "User deleted successfully"}


@router.get("/sellers")
def list_sellers(db: Session = Depends(get_db)):
    return {"sellers": accounts.list_sellers(db)}


@router.delete("/sellers")
def delete_seller(id: Optional[int] = None, db: Session = Depends(get_db)):
    accounts.delete_seller(db, id)
    return {"message": "Seller account deleted successfully"}


@router.get("/shops")
def list_shops(db: Session = Depends(get_db)):
    return {"shops": accounts.list_shops(db)}


@router.delete("/shops")
def delete_shop(id: Optional[int] = None, db: Session = Depends(get_db)):
    accounts.delete_shop(db, id)
    return {"message": "Shop deleted successfully"}


# --- Dashboard ---

@router.get("/dashboard/stats")
def stats(db: Session = Depends(get_db)):
    return dashboard.admin_stats(db)


@router.get("/dashboard/recent-orders")
def recent_orders(db: Session = Depends(get_db)):
    return {"orders": dashboard.recent_orders(db)}
