import asyncio

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.core.errors import DirectoryError
from app.features.auth.routes import router as auth_router
from app.features.permissions.routes import router as permission_router
from app.features.users.routes import router as user_router
from app.features.users.security import dummy_hash
from app.features.users.service import UserService
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Directory Engine",
    description="User directory with hierarchical permissions and reporting lines",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.user_service = UserService(AsyncSessionLocal)


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


@app.exception_handler(DirectoryError)
async def directory_exception_handler(_request: Request, exc: DirectoryError):
    if exc.status_code >= 500:
        log.error(f"{exc.error_code}: {exc.message}")
    else:
        log.info(f"{exc.error_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder({"error": exc.to_dict()}))


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    await asyncio.to_thread(dummy_hash)


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Directory Engine API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require the acting user's id in the X-Principal-Id header",
            "public_endpoints": ["/auth/login", "/permissions/tree", "/permissions/roles", "/permissions/departments"]
        },
        "features": {
            "users": "Directory CRUD with reporting lines, bulk operations and NDJSON export",
            "permissions": "Hierarchical dot-delimited capabilities with ancestor grants",
            "auth": "Password verification with bcrypt"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])

# Credential routes
app.include_router(auth_router, prefix="/auth", tags=["auth"])

# Permission catalog and checks
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
