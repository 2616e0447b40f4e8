"""Celery tasks for inline and critical-path rendering."""

from __future__ import annotations

import asyncio

from css_inliner.core.errors import InlinerError
from css_inliner.core.logging import get_logger
from css_inliner.models.render import RenderMode, RenderRequest, RenderResult
from css_inliner.services import job_store
from css_inliner.services.inliner import get_inliner
from css_inliner.worker.celery_app import celery_app

logger = get_logger(__name__)


def render(request: RenderRequest, mode: RenderMode) -> RenderResult:
    """Run one pipeline to completion on a fresh event loop."""

    inliner = get_inliner(request.directory, request.template, request.above_the_fold)
    pipeline = inliner.inline_css if mode is RenderMode.inline else inliner.critical_path
    html = asyncio.run(pipeline(request.html))
    return RenderResult(mode=mode, html=html)


def _run_job(job_id: str, payload: dict, mode: RenderMode) -> dict:
    logger.info("render_task_started", job_id=job_id, mode=mode.value)
    try:
        job_store.mark_processing(job_id)
        result = render(RenderRequest(**payload), mode)
        result_payload = result.model_dump(mode="json")
        job_store.mark_completed(job_id, result_payload)
        logger.info("render_task_completed", job_id=job_id, mode=mode.value)
        return result_payload
    except InlinerError as exc:
        logger.warning("render_task_failed", job_id=job_id, kind=exc.kind, error=exc.message)
        job_store.mark_failed(job_id, exc.message, exc.kind)
        raise
    except Exception as exc:  # pragma: no cover
        logger.exception("render_task_crashed", job_id=job_id, error=str(exc))
        job_store.mark_failed(job_id, str(exc))
        raise


@celery_app.task(name="render.inline")
def inline_document(job_id: str, payload: dict) -> dict:
    """Inline every matching CSS declaration onto the document's elements."""

    return _run_job(job_id, payload, RenderMode.inline)


@celery_app.task(name="render.critical_path")
def critical_path_document(job_id: str, payload: dict) -> dict:
    """Consolidate the document's critical CSS into one head style block."""

    return _run_job(job_id, payload, RenderMode.critical_path)
