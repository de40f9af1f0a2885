"""Request-scoped dependencies: current user and role guards."""
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .errors import Forbidden, NotFound, Unauthorized
from .models import Role, Shop, User
from .security import decode_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise Unauthorized("Unauthorized")
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise Unauthorized("Unauthorized")
    user = db.query(User).filter(User.id == payload.get("sub")).first()
    if user is None:
        raise Unauthorized("Unauthorized")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN:
        raise Forbidden("Admin access required")
    return user


def get_seller_shop(user: User = Depends(get_current_user)) -> Shop:
    """The shop of the calling seller."""
    if user.role != Role.SELLER:
        raise Forbidden("Seller access required")
    if user.seller is None or user.seller.shop is None:
        raise NotFound("Shop not found")
    return user.seller.shop
