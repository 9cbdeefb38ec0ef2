"""
PharmaBridge Backend - pharmacy supply marketplace.

ARCHITECTURE:
- Pharmacies: browse wholesaler catalogs, place purchase requests, track inventory
- Wholesalers: maintain catalogs, approve / reject / cancel incoming requests
- Admins: approve pharmacy sign-ups, activate and deactivate accounts
- SQLite (or any SQLAlchemy URL): source of truth for all state

WORKFLOW MODEL:
- Requests go Pending -> Approved | Rejected; approval accrues inventory in the same transaction
- Every mutation notifies the parties involved through one deduplicating fanout
- Accounts sign in only when approved AND active
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from pharmabridge.api.routes import admin, pharmacy, products, requests, wholesalers
from pharmabridge.core.config import settings
from pharmabridge.core.exceptions import BusinessError, MarketplaceError, UpstreamFailure
from pharmabridge.db.init_db import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables. Nothing to stop on shutdown."""
    logger.info("Initializing database...")
    init_db()
    logger.info(f"PharmaBridge API ready ({settings.ENVIRONMENT})")
    yield


app = FastAPI(
    title="PharmaBridge API",
    description="Pharmacy / wholesaler marketplace. Request -> Approve -> Accrue.",
    version="0.1.0",
    lifespan=lifespan,
)

# SECURITY: Trust only specific hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],
    max_age=600,
    expose_headers=["Content-Type"],
)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    http_exc = exc.to_http()
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail, "error": exc.code},
        headers=http_exc.headers,
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    http_exc = BusinessError.server_error(exc)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail, "error": UpstreamFailure.code},
    )


app.include_router(pharmacy.router, prefix="/api/pharmacy", tags=["pharmacy"])
app.include_router(wholesalers.router, prefix="/api/wholesalers", tags=["wholesalers"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(requests.router, prefix="/api/requests", tags=["requests"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])


@app.get("/health")
def health():
    return {"status": "ok"}
