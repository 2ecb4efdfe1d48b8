# KitchenShare API Main Entry Point
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .db import Store
from .errors import (
    KitchenShareError,
    NotFoundError,
    SubscriptionError,
    PermissionDeniedError,
    ConstraintViolationError,
    PoolExhaustionError,
    RollbackError,
    LineageError,
)
from .settings import settings
from .routers.ready import router as ready_router
from .routers.recipes import router as recipes_router
from .routers.ingredients import router as ingredients_router
from .routers.collections import router as collections_router
from .routers.subscriptions import router as subscriptions_router
from .routers.access import router as access_router

# Configure structured logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("kitchenshare")

ERROR_STATUS = [
    (NotFoundError, 404),
    (SubscriptionError, 400),
    (PermissionDeniedError, 403),
    (ConstraintViolationError, 409),
    (PoolExhaustionError, 503),
    (RollbackError, 500),
    (LineageError, 500),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own store before startup
    owns_store = getattr(app.state, "store", None) is None
    if owns_store:
        app.state.store = Store()
    yield
    if owns_store:
        app.state.store.dispose()
        app.state.store = None


async def kitchenshare_error_handler(request: Request, exc: KitchenShareError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])

app = FastAPI(title="KitchenShare API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(KitchenShareError, kitchenshare_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(ingredients_router, prefix="/api", tags=["ingredients"])
app.include_router(collections_router, prefix="/api", tags=["collections"])
app.include_router(subscriptions_router, prefix="/api", tags=["subscriptions"])
app.include_router(access_router, prefix="/api", tags=["access"])
