"""
Seller applications: the only way a USER becomes a SELLER.

Approval creates the Seller and Shop rows and flips the user's role in a
single transaction. Rejection deletes the application.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..messaging import publish_event
from ..models import ApplicationStatus, Role, Seller, SellerApplication, Shop, User
from .orders import parse_enum

logger = logging.getLogger(__name__)


def serialize_application(application: SellerApplication) -> dict:
    user = application.user
    return {
        "id": application.id,
        "userId": application.user_id,
        "user": {"id": user.id, "name": user.name, "email": user.email} if user else None,
        "phone": application.phone,
        "shopName": application.shop_name,
        "location": application.location,
        "description": application.description,
        "status": application.status.value,
        "createdAt": application.created_at,
    }


def submit_application(db: Session, user: User, data) -> SellerApplication:
    if not data.shop_name:
        raise ValidationFailed("shopName is required")
    if user.role == Role.ADMIN:
        raise Forbidden("Admins cannot apply to become sellers")
    if user.role == Role.SELLER or user.seller is not None:
        raise ValidationFailed("You are already a seller")

    # One open application per user; checked here rather than by a constraint.
    pending = (
        db.query(SellerApplication)
        .filter(SellerApplication.user_id == user.id,
                SellerApplication.status == ApplicationStatus.PENDING)
        .first()
    )
    if pending:
        raise ValidationFailed("You already have a pending application")

    application = SellerApplication(
        user=user,
        phone=data.phone,
        shop_name=data.shop_name,
        location=data.location,
        description=data.description,
        status=ApplicationStatus.PENDING,
    )
    db.add(application)
    db.commit()
    db.refresh(application)
    logger.info("User %s submitted seller application %s", user.id, application.id)
    return application


def list_applications(db: Session) -> list:
    applications = (
        db.query(SellerApplication)
        .options(selectinload(SellerApplication.user))
        .order_by(SellerApplication.created_at.desc(), SellerApplication.id.desc())
        .all()
    )
    return [serialize_application(application) for application in applications]


def _approve(db: Session, application: SellerApplication):
    user = application.user
    try:
        application.status = ApplicationStatus.APPROVED
        seller = Seller(user_id=user.id, phone=application.phone)
        db.add(seller)
        # Fails on the unique user_id if the user already owns a seller profile.
        db.flush()
        db.add(Shop(
            seller=seller,
            name=application.shop_name,
            description=application.description,
            location=application.location,
        ))
        user.role = Role.SELLER
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("User already has a seller profile")
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    logger.info("Seller application %s approved; user %s is now a seller", application.id, user.id)
    publish_event("seller.approved", {
        "application_id": application.id,
        "user_id": user.id,
        "shop_id": seller.shop.id,
    })


def review_application(db: Session, application_id, status):
    """
    Approve or reject a pending application.

    Returns the approved application, or None when it was rejected (and deleted).
    """
    if status is None:
        raise ValidationFailed("Invalid status")
    status = parse_enum(ApplicationStatus, status, "status")
    if status == ApplicationStatus.PENDING:
        raise ValidationFailed("Invalid status")
    application = (
        db.query(SellerApplication)
        .options(selectinload(SellerApplication.user))
        .filter(SellerApplication.id == application_id)
        .first()
    )
    if not application:
        raise NotFound("Application not found")
    if application.status != ApplicationStatus.PENDING:
        raise ValidationFailed("Application is not pending")

    if status == ApplicationStatus.REJECTED:
        # No record is kept beyond this log line.
        logger.info("Seller application %s (user %s, shop %r) rejected and deleted",
                    application.id, application.user_id, application.shop_name)
        db.delete(application)
        db.commit()
        return None

    _approve(db, application)
    return application
