from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from typing import Optional
import logging

from config import settings
from checkout import CheckoutEngine
from database import LedgerStore, init_db
from exceptions import PosError
from notification_scheduler import NotificationScheduler
from transactions_api import router as transactions_router
from notifications_api import router as notifications_router
from subscription_api import router as subscription_router

# Setup logging
logger = logging.getLogger(__name__)

# Strip whitespace from each origin to prevent configuration errors
CORS_ORIGINS = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]


def create_app(
    store: Optional[LedgerStore] = None,
    start_scheduler: Optional[bool] = None,
    seed_demo: Optional[bool] = None
) -> FastAPI:
    """
    Build the API around an explicit Ledger Store handle.

    The store, the Checkout Engine and the Notification Scheduler are attached
    to ``app.state``; routers reach them through dependencies.
    """
    app = FastAPI(title=settings.APP_NAME, version="1.0.0")

    store = store or LedgerStore(echo=settings.DEBUG)
    app.state.store = store
    app.state.checkout_engine = CheckoutEngine(store)
    app.state.notification_scheduler = NotificationScheduler(store)

    run_scheduler = settings.SCHEDULER_ENABLED if start_scheduler is None else start_scheduler
    run_seed = settings.SEED_DEMO_DATA if seed_demo is None else seed_demo

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,  # Cache preflight responses for 1 hour
    )

    # ==================== EXCEPTION HANDLERS ====================

    @app.exception_handler(PosError)
    async def pos_error_handler(request: Request, exc: PosError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are caller errors: answer 400 like other validation failures"""
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # ==================== END EXCEPTION HANDLERS ====================

    app.include_router(transactions_router)
    app.include_router(notifications_router)
    app.include_router(subscription_router)

    @app.on_event("startup")
    async def startup_event():
        """Initialize database on startup"""
        logger.info("=" * 60)
        logger.info("Starting application initialization...")
        logger.info("=" * 60)

        try:
            await init_db(store)
        except Exception as e:
            logger.error("=" * 60)
            logger.error(f"CRITICAL: Application startup failed: {e}")
            logger.error("=" * 60)
            raise

        if run_seed:
            from seed_data import seed_demo_data
            await seed_demo_data(store, settings.DEFAULT_LOW_STOCK_THRESHOLD)

        if run_scheduler:
            try:
                app.state.notification_scheduler.start()
                logger.info("✅ Notification scheduler started successfully")
            except Exception as e:
                # Don't fail startup if scheduler fails
                logger.error(f"⚠️ Failed to start notification scheduler: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.notification_scheduler.shutdown()
        await store.dispose()

    # ==================== HEALTH CHECK ====================

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", "service": "api"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
