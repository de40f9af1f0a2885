"""Customer-facing endpoints: catalog, accounts, order history and profile."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import User
from ..schemas import LoginRequest, ReviewIn, SignupRequest
from ..security import issue_token
from ..services import accounts, catalog, orders

router = APIRouter()


# --- Catalog ---

@router.get("/products", tags=["catalog"])
def list_products(category: Optional[str] = None, search: Optional[str] = None,
                  sort: str = "newest", db: Session = Depends(get_db)):
    """Products with shop names and ratings, filtered and sorted."""
    return catalog.list_products(db, category=category, search=search, sort=sort)


@router.get("/products/{product_id}", tags=["catalog"])
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = catalog.get_product(db, product_id)
    return {"product": catalog.serialize_product(product, with_reviews=True)}


@router.post("/products/{product_id}/reviews", status_code=201, tags=["catalog"])
def add_review(product_id: int, req: ReviewIn, user: User = Depends(get_current_user),
               db: Session = Depends(get_db)):
    review = catalog.add_review(db, product_id, user, req.rating, req.text)
    return {"review": catalog.serialize_review(review)}


# --- Accounts ---

@router.post("/auth/signup", status_code=201, tags=["auth"])
def signup(req: SignupRequest, db: Session = Depends(get_db)):
    user = accounts.signup(db, req.name, req.email, req.password)
    return {"message": "user created successfully", "user": accounts.serialize_user(user)}


@router.post("/auth/login", tags=["auth"])
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, req.email, req.password)
    return {
        "token": issue_token(user.id, user.role.value),
        "tokenType": "bearer",
        "user": accounts.serialize_user(user),
    }


# --- Signed-in customer ---

@router.get("/orders", tags=["orders"])
def my_orders(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """The caller's order history, newest first."""
    return {"orders": orders.list_user_orders(db, user.id)}


@router.get("/user/profile", tags=["auth"])
def profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return accounts.get_profile(db, user)
