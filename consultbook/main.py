import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Register every mapped class with Base before create_all
from . import models, models_invoice  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.billing import router as billing_router
from .domain.notifications.router import router as notifications_router
from .domain.scheduling import router as scheduling_router
from .errors import DomainError, StorageUnavailable
from .shared.transactions import TRANSPORT_ERRORS

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Token verification fetches Google certificates through httpx
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Consultbook starting up...")
    # checkfirst keeps this safe when several workers boot at once
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("✅ Database tables ready")
    yield
    logger.info("Consultbook shutting down...")


app = FastAPI(title="Consultbook API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Render domain errors as {"detail": {message, code, details}}"""
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


async def storage_exception_handler(request: Request, exc: Exception):
    """Transport failures outside a service call still answer 503"""
    logger.error(f"❌ {request.method} {request.url.path} - storage failure: {exc}")
    unavailable = StorageUnavailable("Storage is temporarily unavailable, please retry")
    return JSONResponse(status_code=503, content={"detail": unavailable.to_http_exception().detail})


for transport_error in TRANSPORT_ERRORS:
    app.add_exception_handler(transport_error, storage_exception_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"⚠️ Validation error for {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "detail": {
                "message": "Request validation failed",
                "code": "ValidationError",
                "details": {"errors": jsonable_encoder(exc.errors())},
            }
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(scheduling_router, prefix="/api")
app.include_router(billing_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "healthy"}
