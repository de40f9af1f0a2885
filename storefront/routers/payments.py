from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..gateway import get_gateway
from ..schemas import CreateOrderRequest, VerifyOrderRequest
from ..services import payments
from ..services.orders import serialize_order

router = APIRouter(tags=["payments"])


@router.post("/createOrder")
def create_order(req: CreateOrderRequest, gateway=Depends(get_gateway)):
    """Create the gateway order the checkout page pays against. Nothing is stored yet."""
    order_id = payments.create_payment_intent(gateway, req.amount, settings.PAYMENT_CURRENCY)
    return {"message": "Order created successfully", "orderId": order_id}


@router.post("/verifyOrder")
def verify_order(req: VerifyOrderRequest, db: Session = Depends(get_db)):
    """Gateway callback: check the signature and persist the paid order."""
    order, created = payments.verify_payment(
        db,
        gateway_order_id=req.order_creation_id,
        gateway_payment_id=req.razorpay_payment_id,
        signature=req.razorpay_signature,
        ordered_items=req.ordered_items,
        user_id=req.user_id,
        amount=req.amount,
        secret=settings.RAZORPAY_KEY_SECRET,
    )
    message = "payment verified successfully" if created else "payment already verified"
    return {"message": message, "isOk": True, "order": serialize_order(order)}
