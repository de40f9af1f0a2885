from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user, require_admin
from ..models import User
from ..schemas import ApplicationCreate, ApplicationReview
from ..services import applications

router = APIRouter(prefix="/seller-applications", tags=["seller applications"])


@router.post("", status_code=201)
def submit(req: ApplicationCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Apply to become a seller. Only one pending application per user."""
    application = applications.submit_application(db, user, req)
    return {"application": applications.serialize_application(application)}


@router.get("", dependencies=[Depends(require_admin)])
def list_all(db: Session = Depends(get_db)):
    return {"applications": applications.list_applications(db)}


@router.put("", dependencies=[Depends(require_admin)])
def review(req: ApplicationReview, db: Session = Depends(get_db)):
    """Approve (creates seller + shop) or reject (deletes the application)."""
    application = applications.review_application(db, req.application_id, req.status)
    if application is None:
        return {"message": "Application rejected and deleted"}
    return {"application": applications.serialize_application(application)}
