"""
Krishiraksha Backend - FastAPI Application

Integrity and transaction-reliability backend for farm-to-consumer tracking.
Signs and verifies batch QR payloads and records batches on the ledger
through a supervised transaction lifecycle.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .exceptions import KrishirakshaError, LifecycleNotFoundError, TransactionInProgressError
from .services.lifecycle_registry import lifecycle_registry
from .api.qr import router as qr_router
from .api.transactions import router as transactions_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs effective configuration on startup; nothing to clean up on shutdown
    because lifecycles live in memory.
    """
    logger.info("Starting Krishiraksha backend server...")
    logger.info(f"Demo mode: {settings.demo_mode}")
    logger.info(
        f"QR payloads: version={settings.qr_payload_version}, "
        f"max_age={settings.qr_max_age_days}d"
    )
    logger.info(
        f"Transactions: confirmations={settings.tx_required_confirmations}, "
        f"max_retries={settings.tx_max_retries}, retry_delay={settings.tx_retry_delay_seconds}s"
    )
    logger.info("Server startup complete")

    yield

    logger.info("Shutting down Krishiraksha backend server...")


# Initialize FastAPI application
app = FastAPI(
    title="Krishiraksha API",
    description="Signed QR payloads and transaction lifecycle tracking",
    version="0.1.0",
    lifespan=lifespan,
)


# Configure CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _status_code_for(exc: KrishirakshaError) -> int:
    if isinstance(exc, LifecycleNotFoundError):
        return 404
    if isinstance(exc, TransactionInProgressError):
        return 409
    return 400


# Exception handlers for Krishiraksha errors
@app.exception_handler(KrishirakshaError)
async def krishiraksha_error_handler(request: Request, exc: KrishirakshaError):
    """
    Handle domain errors with standardized response format.

    Returns 400 (404 for unknown lifecycles, 409 for in-progress conflicts)
    with error details from KrishirakshaError.to_dict().
    """
    logger.warning(
        f"Request error: {exc.error_code} - {exc.message}",
        extra={"details": exc.details}
    )

    return JSONResponse(
        status_code=_status_code_for(exc),
        content=exc.to_dict(),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """
    Handle validation errors with user-friendly messages.

    Used for input validation failures not caught by Pydantic.
    """
    logger.warning(f"Validation error: {str(exc)}")

    return JSONResponse(
        status_code=400,
        content={
            "error_code": "validation_error",
            "message": str(exc),
            "details": {}
        },
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unexpected errors.

    Logs full exception for debugging but returns generic message to client.
    """
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "An unexpected error occurred",
            "details": {"error_type": type(exc).__name__} if settings.demo_mode else {}
        },
    )


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Server status, version and ledger availability
    """
    return {
        "status": "healthy",
        "version": "0.1.0",
        "demo_mode": settings.demo_mode,
        "ledger": lifecycle_registry.ledger.status(),
    }


# Include API routers
app.include_router(qr_router, prefix="/api/qr", tags=["QR Payloads"])
app.include_router(transactions_router, prefix="/api/transactions", tags=["Transactions"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "krishiraksha.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )
