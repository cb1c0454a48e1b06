
from contextlib import asynccontextmanager

from backend.app.core.errors import register_exception_handlers
from backend.app.core.logging import setup_logging

# Configure logging (JSON structured)
logger = setup_logging()

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.httpsredirect import HTTPSRedirectMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from secure import (
    ContentSecurityPolicy,
    ReferrerPolicy,
    Secure,
    StrictTransportSecurity,
    XContentTypeOptions,
    XFrameOptions,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from backend.app.api.endpoints import auth, points, recognitions, rewards
from backend.app.core.config import settings
from backend.app.core.database import Database
from backend.app.services.allocation import schedule_monthly_allocation


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    db = Database()
    app.state.db = db
    scheduler: BackgroundScheduler | None = None
    if settings.allocation_schedule_enabled:
        scheduler = BackgroundScheduler(timezone=settings.allocation_timezone)
        schedule_monthly_allocation(scheduler, db)
        scheduler.start()
    app.state.scheduler = scheduler
    yield
    # Shutdown
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    db.dispose()

app = FastAPI(
    title="Kudos Points API",
    description="Peer recognition, points ledger and reward redemption",
    version="1.0.0",
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# Register Global Exception Handlers
register_exception_handlers(app)

# Configure CORS (secure-by-default in production)
default_origins = (
    [
        "http://localhost:3000",  # web frontend
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]
    if settings.is_dev
    else []
)
origins = settings.allowed_origins or default_origins
if not settings.is_dev and not origins:
    raise RuntimeError("KUDOS_ALLOWED_ORIGINS must be set in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# Enable GZip compression for responses > 1000 bytes
app.add_middleware(GZipMiddleware, minimum_size=1000)

default_trusted_hosts = (
    ["localhost", "127.0.0.1", "0.0.0.0", "[::1]", "testserver"]
    if settings.is_dev
    else []
)
trusted_hosts = settings.trusted_hosts or default_trusted_hosts
if not settings.is_dev and (not trusted_hosts or "*" in trusted_hosts):
    raise RuntimeError("KUDOS_TRUSTED_HOSTS must list explicit hosts in production")
app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

# Conservative headers for an API-only service
SECURE_HEADERS = Secure(
    hsts=StrictTransportSecurity().max_age(63072000).include_subdomains().preload(),
    xfo=XFrameOptions().deny(),
    referrer=ReferrerPolicy().strict_origin_when_cross_origin(),
    csp=ContentSecurityPolicy().default_src("'none'"),
    xcto=XContentTypeOptions().nosniff(),
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, secure_headers: Secure) -> None:
        super().__init__(app)
        self.secure_headers = secure_headers

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        await self.secure_headers.set_headers_async(response)
        # No HSTS on cleartext requests in dev.
        if settings.is_dev and request.url.scheme not in ("https", "wss"):
            if "Strict-Transport-Security" in response.headers:
                del response.headers["Strict-Transport-Security"]

        # Balances and redemption codes must not land in shared caches
        if request.url.path.startswith(("/auth/", "/points/", "/rewards/", "/recognitions/")):
            response.headers["Cache-Control"] = "no-store"

        return response


app.add_middleware(
    SecurityHeadersMiddleware,
    secure_headers=SECURE_HEADERS,
)

if settings.force_https:
    app.add_middleware(HTTPSRedirectMiddleware)

# Added last (executed first) so request.client.host & scheme are correct.
proxy_trusted_hosts: list[str] | str = (
    "*"
    if settings.is_dev
    else [
        "127.0.0.1",
        "::1",
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
    ]
)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=proxy_trusted_hosts)

# Include Routers
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(points.router, prefix="/points", tags=["points"])
app.include_router(recognitions.router, prefix="/recognitions", tags=["recognitions"])
app.include_router(rewards.router, prefix="/rewards", tags=["rewards"])

@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "kudos-points-api", "app_env": settings.app_env.value}
