"""Routes for critical-path CSS extraction."""

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
from css_inliner.tasks.render_tasks import critical_path_document

router = APIRouter(prefix="/critical-path", tags=["critical-path"], dependencies=[Depends(get_auth_dependency)])


@router.post("", response_model=RenderResult, summary="Extract critical CSS into the document head")
async def render_critical_path(payload: RenderRequest) -> RenderResult:
    """Return the document with its critical CSS consolidated at the top of <head>."""

    inliner = inliner_for(payload)
    html = await inliner.critical_path(payload.html)
    return RenderResult(mode=RenderMode.critical_path, html=html)


@router.post(
    "/jobs",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue a critical-path job",
)
def enqueue_critical_path(payload: RenderRequest) -> dict:
    """Create a job that extracts critical CSS for the submitted document."""

    inliner_for(payload)
    job_id = f"critical_{uuid.uuid4().hex}"
    serialized_payload = payload.model_dump(mode="json")
    job_store.create_job(
        job_id=job_id,
        job_type=RenderMode.critical_path.value,
        payload=serialized_payload,
    )
    critical_path_document.delay(job_id=job_id, payload=serialized_payload)
    return {"job_id": job_id, "status": JobStatus.queued}


@router.get(
    "/jobs/{job_id}",
    response_model=RenderJobStatusResponse,
    summary="Retrieve critical-path job status",
)
def get_critical_path_job(job_id: str) -> RenderJobStatusResponse:
    """Return job status and the rendered document if available."""

    job = job_store.job_store.get_job(job_id)
    if job is None or job.job_type != RenderMode.critical_path.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    result = None
    if job.result:
        result = RenderResult.model_validate(job.result)

    return RenderJobStatusResponse(
        job_id=job.job_id,
        status=job.status,
        mode=RenderMode.critical_path,
        template=job.payload.get("template"),
        created_at=job.created_at,
        updated_at=job.updated_at,
        result=result,
        error=job.error,
        error_kind=job.error_kind,
    )
