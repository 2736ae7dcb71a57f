import logging
import httpx
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from haggle.core.config import settings
from haggle.api.router import router
from haggle.api.responses import envelope, status_for
from haggle.db.session import engine
from haggle.middleware import AuthenticationMiddleware
from haggle.services.exceptions import ServiceException
from haggle.services.billing.shopify_gateway import ShopifyBillingGateway

logger = logging.getLogger(__name__)

def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    # One HTTP client for the billing provider, shared by all requests.
    logger.info("Starting billing gateway client...")
    app.state.http_client = httpx.AsyncClient(timeout=settings.SHOPIFY_HTTP_TIMEOUT)
    app.state.billing_gateway = ShopifyBillingGateway(app.state.http_client)
    if settings.BILLING_TEST_MODE:
        logger.info("Billing runs in test mode; provider charges are created with test=true.")

    yield

    logger.info("Closing billing gateway client...")
    await app.state.http_client.aclose()
    await engine.dispose()

app = FastAPI(
    title="Haggle",
    lifespan=lifespan
)

app.add_middleware(AuthenticationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"])

app.include_router(router)

@app.exception_handler(ServiceException)
async def service_exception_handler(request: Request, exc: ServiceException):
    # Services return results; this only catches exceptions raised outside a service operation.
    logger.warning(f"[API] {request.method} {request.url.path}: {exc.code}: {exc.message}")
    return envelope(status_for(exc.code), exc.message)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return envelope(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid request.",
        data=jsonable_encoder(exc.errors()),
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"[API] Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")
