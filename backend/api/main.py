"""
ShelfSense API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from core.errors import ShelfSenseError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("ShelfSense API starting up", version=settings.app_version)
    yield
    logger.info("ShelfSense API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Shelf inventory replenishment: depletion alerts, warehouse requests, restock tasks",
    lifespan=lifespan,
)


@app.exception_handler(ShelfSenseError)
async def shelfsense_error_handler(request: Request, exc: ShelfSenseError):
    """Translate domain errors to HTTP responses."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "api.domain_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import (
    inventory,
    products,
    replenishment,
    restock_tasks,
    sales,
    shelf_stock,
    stock_requests,
    stores,
    warehouse,
)

app.include_router(stores.router)
app.include_router(products.router)
app.include_router(shelf_stock.router)
app.include_router(sales.router)
app.include_router(replenishment.router)
app.include_router(warehouse.router)
app.include_router(stock_requests.router)
app.include_router(restock_tasks.router)
app.include_router(inventory.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
