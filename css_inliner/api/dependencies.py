"""Shared API dependencies."""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from css_inliner.core.config import settings
from css_inliner.models.render import RenderRequest
from css_inliner.services.inliner import CSSInliner, get_inliner

api_token_header = APIKeyHeader(name=settings.auth_token_header, auto_error=False)


def verify_api_key(token: str | None = Security(api_token_header)) -> str:
    """Validate the static API token when one is configured."""

    expected = settings.api_token
    if not expected:
        return ""

    if token in {expected, f"Bearer {expected}"}:
        return token or ""

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API token")


def get_auth_dependency(token: str = Depends(verify_api_key)) -> str:
    """Expose dependency alias for routers."""

    return token


def inliner_for(payload: RenderRequest) -> CSSInliner:
    """Shared inliner for the request's configuration; unknown dialects are a 422."""

    try:
        return get_inliner(payload.directory, payload.template, payload.above_the_fold)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
