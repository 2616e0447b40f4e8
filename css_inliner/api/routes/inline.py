"""Routes for inlining CSS onto elements."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from css_inliner.api.dependencies import get_auth_dependency, inliner_for
from css_inliner.models.job import JobStatus
from css_inliner.models.render import (
    RenderJobStatusResponse,
    RenderMode,
    RenderRequest,
    RenderResult,
)
from css_inliner.services import job_store
from css_inliner.tasks.render_tasks import inline_document

router = APIRouter(prefix="/inline", tags=["inline"], dependencies=[Depends(get_auth_dependency)])


@router.post("", response_model=RenderResult, summary="Inline CSS onto matching elements")
async def render_inline(payload: RenderRequest) -> RenderResult:
    """Return the document with every matching declaration in style attributes."""

    inliner = inliner_for(payload)
    html = await inliner.inline_css(payload.html)
    return RenderResult(mode=RenderMode.inline, html=html)


@router.post(
    "/jobs",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue an inline job",
)
def enqueue_inline(payload: RenderRequest) -> dict:
    """Create an inline job and dispatch it to the worker."""

    inliner_for(payload)
    job_id = f"inline_{uuid.uuid4().hex}"
    serialized_payload = payload.model_dump(mode="json")
    job_store.create_job(
        job_id=job_id,
        job_type=RenderMode.inline.value,
        payload=serialized_payload,
    )
    inline_document.delay(job_id=job_id, payload=serialized_payload)
    return {"job_id": job_id, "status": JobStatus.queued}


@router.get(
    "/jobs/{job_id}",
    response_model=RenderJobStatusResponse,
    summary="Retrieve inline job status",
)
def get_inline_job(job_id: str) -> RenderJobStatusResponse:
    """Return the current status of an inline job."""

    job = job_store.job_store.get_job(job_id)
    if job is None or job.job_type != RenderMode.inline.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    result = RenderResult.model_validate(job.result) if job.result else None

    return RenderJobStatusResponse(
        job_id=job.job_id,
        status=job.status,
        mode=RenderMode.inline,
        template=job.payload.get("template"),
        created_at=job.created_at,
        updated_at=job.updated_at,
        result=result,
        error=job.error,
        error_kind=job.error_kind,
    )
