from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from crm_admin.core import config
from crm_admin.core.errors import DomainError
from crm_admin.core.ratelimit import limiter
from crm_admin.core.schemas import fail, ok
from crm_admin.core.store.dependencies import close_store, init_store
from crm_admin.features.auth.routes import router as auth_router
from crm_admin.features.members.routes import router as member_router
from crm_admin.features.versions.routes import router as version_router
from crm_admin.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="CRM Admin Backend",
    description="Member management with role-based access control",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.crm_admin.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _envelope(status_code: int, message: str, data=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(fail(message, status_code, data)))


@app.exception_handler(DomainError)
async def domain_exception_handler(_request: Request, exc: DomainError):
    if exc.status_code >= 500:
        log.error("Domain error %s: %s %s", type(exc).__name__, exc.message, exc.details)
    else:
        log.info("Domain error %s: %s", type(exc).__name__, exc.message)
    return _envelope(exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[str(key)] = error["msg"]
    log.info("Request validation error %s", errors)
    return _envelope(400, "Request validation failed", errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException):
    return _envelope(exc.status_code, str(exc.detail))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return _envelope(429, "You are going too fast")


@app.on_event("startup")
async def startup():
    """Initialize the store on application startup."""
    log.info("Initializing store...")
    await init_store()
    log.info("Store initialized successfully")


@app.on_event("shutdown")
async def shutdown():
    await close_store()


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return ok({
        "name": "CRM Admin Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "login": "/api/auth/login",
            "protected_endpoints": ["/api/auth/me", "/api/members/*", "/api/versions/*"],
        },
        "features": {
            "auth": "JWT login with revocable tokens",
            "members": "Users, roles and departments with referential integrity",
            "permissions": "Permission tree and role-based access checks",
            "organization": "Department tree and reporting lines",
            "versions": "Versions, rollbacks and deployments",
        },
    })


@app.get("/health")
async def health():
    """Health check endpoint."""
    return ok({"status": "healthy"})


# Include routers
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(member_router, prefix="/api/members", tags=["members"])
app.include_router(version_router, prefix="/api/versions", tags=["versions"])
