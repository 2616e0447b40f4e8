"""Models for inline and critical-path rendering requests."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from css_inliner.core.config import settings

from .job import JobStatus


class RenderMode(str, Enum):
    """Pipelines a request can run."""

    inline = "inline"
    critical_path = "critical_path"


class RenderRequest(BaseModel):
    """Payload accepted by the inline and critical-path endpoints."""

    html: str = Field(..., description="HTML document or template source.")
    template: Optional[str] = Field(
        default=None,
        description="Template dialect whose tags are shielded, e.g. 'handlebars'.",
    )
    directory: Optional[str] = Field(
        default=None,
        description="Base directory for relative <link> stylesheets, inside the configured template directory.",
    )
    above_the_fold: Optional[str] = Field(
        default=None,
        description="CSS selector for elements treated as critical (critical path only).",
    )

    @field_validator("template", mode="before")
    @classmethod
    def normalize_template(cls, value: Optional[str]) -> Optional[str]:
        """Treat empty and 'none' as no template dialect."""

        if value is None or str(value).strip().lower() in {"", "none"}:
            return None
        return str(value).strip().lower()

    @field_validator("directory")
    @classmethod
    def confine_directory(cls, value: Optional[str]) -> Optional[str]:
        """Resolve against the template directory; anything outside it is rejected."""

        if value is None:
            return None
        root = Path(settings.template_directory).resolve()
        resolved = (root / value).resolve()
        if not resolved.is_relative_to(root):
            raise ValueError("directory must be inside the template directory")
        return str(resolved)


class RenderResult(BaseModel):
    """Rendered document."""

    mode: RenderMode
    html: str


class RenderJobStatusResponse(BaseModel):
    """API response for render job status queries."""

    job_id: str
    status: JobStatus
    mode: RenderMode
    template: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    result: Optional[RenderResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
