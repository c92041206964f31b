"""FastAPI application for the storefront."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notifications import dispatcher
from validation import InvalidArgumentError
from .analytics import router as analytics_router
from .auth import router as auth_router
from .cart import router as cart_router
from .checkout import router as checkout_router
from .orders import router as orders_router
from .products import router as products_router
from .users import router as users_router
from .wishlist import router as wishlist_router

logger = logging.getLogger(__name__)

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Initializing API...")
    # The database is initialized by __main__.py
    yield
    logger.info("Shutting down API...")
    await dispatcher.drain()

app = FastAPI(
    title="Storefront API",
    description="Catalog, cart, OTP checkout and order fulfilment",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and parameters as 400 with field detail."""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"]
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "validation_error", "errors": errors}}
    )

@app.exception_handler(InvalidArgumentError)
async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "validation_error", "field": exc.field, "message": exc.reason}}
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )

# Add routes
app.include_router(auth_router)
app.include_router(products_router)
app.include_router(wishlist_router)
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(analytics_router)
app.include_router(users_router)

@app.get("/")
async def root():
    return {
        "name": "Storefront API",
        "version": "1.0.0",
        "status": "running"
    }
