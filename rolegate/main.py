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

from rolegate.core import config
from rolegate.core.database.engine import init_db
from rolegate.features.permissions.repository import DatabasePermissionSource, create_permission_source
from rolegate.features.permissions.routes import router as permission_router
from rolegate.features.permissions.store import PermissionStore
from rolegate.features.users.dependencies import get_authorization_header
from rolegate.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Rolegate",
    description="Role-based permission cache and access checks",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.rolegate.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if not config.JWT_SECRET:
    log.warning("JWT_SECRET is not set; authenticated routes will answer 503")
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


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Create the permission store and load permissions once."""
    source = create_permission_source()
    if isinstance(source, DatabasePermissionSource):
        log.info("Initializing database...")
        await init_db()
    store = PermissionStore(source)
    app.state.permission_store = store
    snapshot = await store.preload()
    log.info("Permission store %s (source: %s)", store.state.value, snapshot.source)


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Rolegate API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    store = getattr(app.state, "permission_store", None)
    return {
        "status": "healthy",
        "permissions": store.state.value if store else "uninitialized",
    }


app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
