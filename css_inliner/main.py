"""FastAPI application entrypoint."""

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from css_inliner.api import router as api_router
from css_inliner.api.dependencies import get_auth_dependency
from css_inliner.core.config import settings
from css_inliner.core.errors import InlinerError, NotFound, ParseFailure
from css_inliner.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    ParseFailure: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router.api_router, prefix=settings.api_v1_prefix)


@app.exception_handler(InlinerError)
async def inliner_error_handler(request: Request, exc: InlinerError) -> JSONResponse:
    """Report pipeline failures with their kind; no partial HTML is returned."""

    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning("render_failed", path=request.url.path, kind=exc.kind, error=exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "kind": exc.kind})


@app.get("/healthz", tags=["health"])
def health_check() -> dict:
    """Simple health probe endpoint."""

    logger.debug("health_check_invoked")
    return {"status": "ok", "environment": settings.environment}


@app.get("/auth-check", tags=["health"], dependencies=[Depends(get_auth_dependency)])
def auth_check() -> dict:
    """Endpoint to verify API auth configuration."""

    return {"status": "authorized"}
