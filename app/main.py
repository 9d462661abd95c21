from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import init_db
from app.core.exceptions import CrmError
from app.features.users.routes import router as user_router
from app.features.organizations.routes import router as organization_router
from app.features.roles.routes import router as role_router
from app.features.objects.routes import router as object_router
from app.features.field_security.routes import router as field_security_router
from app.features.sharing.routes import router as sharing_router
from app.features.records.routes import router as record_router
from app.features.record_security.routes import router as record_security_router
from app.features.users.dependencies import get_authorization_header
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="CRM Security Backend",
    description="Field-level and record-level security for CRM records",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


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


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(CrmError)
async def crm_exception_handler(request: Request, exc: CrmError):
    log.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "CRM Security Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "fail_closed_endpoints": ["/record-security/{object}/{record_id}"],
        },
        "features": {
            "roles": "Organization roles with permission maps and hierarchy levels",
            "objects": "Standard and custom CRM objects with field definitions",
            "field_security": "Per-role field visibility and editability, default allow",
            "sharing": "Organization-wide defaults, sharing rules and manual shares",
            "records": "Generic CRM records filtered by field and record security",
            "record_security": "Per-record capability and field context for clients",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
# Alias for singular form (if frontend uses /user/me)
app.include_router(user_router, prefix="/user", tags=["users"], include_in_schema=False)

app.include_router(organization_router, prefix="/organizations", tags=["organizations"])

app.include_router(role_router, prefix="/roles", tags=["roles"])

app.include_router(object_router, prefix="/objects", tags=["objects"])

# Field-level security
app.include_router(field_security_router, prefix="/field-security", tags=["field-security"])

# Record-level security
app.include_router(sharing_router, prefix="/sharing", tags=["sharing"])
app.include_router(record_router, prefix="/records", tags=["records"])
app.include_router(record_security_router, prefix="/record-security", tags=["record-security"])
