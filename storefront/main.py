# --- Imports ---
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .database import engine
from .errors import register_error_handlers
from .models import Base
from .routers import admin, applications, payments, seller, storefront

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Database Initialization ---
# Create database tables defined in models.py if they don't exist
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.EVENTS_ENABLED:
        from .consumers import start_consumer_thread
        start_consumer_thread()
    logger.info("%s started", settings.PROJECT_NAME)
    yield


# --- App Instance ---
app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
register_error_handlers(app)

app.include_router(payments.router, prefix="/api")
app.include_router(storefront.router, prefix="/api")
app.include_router(applications.router, prefix="/api")
app.include_router(seller.router, prefix="/api")
app.include_router(admin.router, prefix="/api")


@app.get("/")
def root():
    """Health check endpoint."""
    return {"message": f"{settings.PROJECT_NAME} is running"}


def run():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000)
