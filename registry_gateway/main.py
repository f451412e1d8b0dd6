from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from registry_gateway.factories import http_client_factory, registry_service_factory
from registry_gateway.packages.registry import RegistryGatewayError
from registry_gateway.routes import health, registry
from registry_gateway.utils.logging import setup_logger
from registry_gateway.utils.sentry import init_sentry

logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    http = http_client_factory()
    app.state.http_client = http
    app.state.registry_service = registry_service_factory(http)
    logger.info("Registry gateway started")

    yield

    await http.aclose()


init_sentry()
app = FastAPI(lifespan=lifespan)
setup_logger(app)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"title": "Validation error", "description": exc.errors()},
    )


@app.exception_handler(RegistryGatewayError)
async def registry_exception_handler(request: Request, exc: RegistryGatewayError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "items": [],
            "failure": [{"url": str(request.url), "error_message": exc.message}],
            "success": False,
            "message": exc.message,
            "success_count": 0,
            "failure_count": 1,
            "count": 1,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"title": "Internal Server Error", "description": str(exc)},
    )


app.include_router(health.router)
app.include_router(registry.router)
