from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from carehub.core import config
from carehub.core.database.engine import init_db
from carehub.core.responses import fail
from carehub.features.users.routes import router as user_router
from carehub.features.providers.routes import router as provider_router
from carehub.features.patients.routes import router as patient_router
from carehub.features.clinical.routes import router as clinical_router
from carehub.features.billing.routes import router as billing_router
from carehub.features.beds.routes import router as bed_router
from carehub.features.devices.routes import router as device_router
from carehub.features.consents.routes import patient_router as consent_patient_router
from carehub.features.consents.routes import router as consent_form_router
from carehub.features.accounts.routes import router as account_router
from carehub.features.users.dependencies import get_authorization_header
from carehub.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="CareHub",
    description="EHR and revenue cycle API: patients, clinical time, billing, claims and consents",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(
    key_func=get_authorization_header,
    default_limits=[config.RATE_LIMIT],
    enabled=config.RATE_LIMIT_ENABLED,
)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.carehub.features."), timing=timing, tags=tags))


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


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=fail(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1] if error["loc"] else "root"
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(fail("Validation error", errors)))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse(fail("You are going too fast"), status_code=429)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=fail("Internal server error"))


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
        "message": "CareHub API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "public_endpoints": ["/users/login", "/ehr/consent-form", "/ehr/consent-form/submit"]
        },
        "features": {
            "patients": "Patient records, child clinical records and enhanced profiles",
            "clinical": "Notes and tasks with program time tracking",
            "billing": "Monthly RPM/CCM/PCM minutes and CPT totals",
            "accounts": "Claims, payments and statements",
            "consents": "Emailed consent links and signed consent documents",
            "beds": "Bed assignments",
            "devices": "Remote-monitoring device readings",
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

app.include_router(provider_router, prefix="/providers", tags=["providers"])

# Patient routes; fixed paths are registered before the /{patient_id}/... ones
app.include_router(patient_router, prefix="/patient", tags=["patients"])
app.include_router(clinical_router, prefix="/patient", tags=["clinical"])
app.include_router(consent_patient_router, prefix="/patient", tags=["consents"])
app.include_router(bed_router, prefix="/patient", tags=["beds"])
app.include_router(billing_router, prefix="/patient", tags=["billing"])
app.include_router(device_router, prefix="/patient", tags=["devices"])

# Public consent form
app.include_router(consent_form_router, prefix="/ehr", tags=["consents"])

# Claims, payments and statements
app.include_router(account_router, prefix="/account", tags=["accounts"])
