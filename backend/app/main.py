import logging

from fastapi import FastAPI

from core.config import get_settings
from core.database import init_db
from core.exceptions import register_exception_handlers

# ========== Promotions ==========
from modules.promotions import promotions_router

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Promotion Calculation Engine",
    description="""
    Cart promotion calculation for multi-tenant restaurant ordering.

    - Automatic and code-based promotions with stacking rules
    - Promotion code validation with discount preview
    - Usage recording after order confirmation
    """,
    version="1.0.0",
)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

# Promotions & Marketing
app.include_router(promotions_router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup"""
    init_db()
    logger.info(f"Promotion engine started ({settings.environment})")


@app.get("/")
def read_root():
    return {"message": "Promotion engine is running"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
