"""Request bodies. Clients send camelCase keys; snake_case is accepted too.

Fields the handlers validate by hand (to return the specific messages the
checkout and dashboard clients expect) are Optional here.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Payments ---

class OrderedItem(CamelModel):
    product_id: int
    quantity: int
    price: Decimal


class CreateOrderRequest(CamelModel):
    amount: Optional[Decimal] = None
    user_id: Optional[int] = None
    ordered_items: List[OrderedItem] = []


class VerifyOrderRequest(CamelModel):
    order_creation_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    ordered_items: Optional[List[OrderedItem]] = None
    user_id: Optional[int] = None
    amount: Optional[Decimal] = None


# --- Orders ---

class AdminOrderUpdate(CamelModel):
    id: Optional[int] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None


class SellerOrderUpdate(CamelModel):
    order_id: Optional[int] = None
    status: Optional[str] = None


# --- Seller applications ---

class ApplicationCreate(CamelModel):
    phone: Optional[str] = None
    shop_name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


class ApplicationReview(CamelModel):
    application_id: Optional[int] = None
    status: Optional[str] = None


# --- Catalog ---

class ProductIn(CamelModel):
    id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    category: Optional[str] = None
    images: Optional[List[str]] = None


class ReviewIn(CamelModel):
    rating: Optional[int] = None
    text: str = ""


# --- Accounts ---

class SignupRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
