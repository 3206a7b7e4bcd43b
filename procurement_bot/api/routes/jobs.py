"""Job API endpoints."""

import logging
from pathlib import Path
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from procurement_bot.api.deps import get_controller, get_job_store, require_api_key
from procurement_bot.config import settings
from procurement_bot.invoices.models import INVOICE_PDF_RE
from procurement_bot.jobs.models import JobStatus
from procurement_bot.jobs.store import JobStore
from procurement_bot.worker.controller import JobController, ProfileBusyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])

LOG_TAIL_CHARS = 4000


# Request models
class SearchRequest(BaseModel):
    """Request model for starting a search run."""
    file: Optional[str] = None
    terms: List[str] = []
    column_name: Optional[str] = None
    column_index: Optional[int] = None
    sheet_name: Optional[str] = None
    skip_header: Optional[bool] = None
    max_terms: Optional[int] = None
    offers_limit: Optional[int] = None
    delay_ms: Optional[int] = None
    headless: Optional[bool] = None
    capture_html: Optional[bool] = None
    capture_screenshot: Optional[bool] = None
    offline_parse_fallback: Optional[bool] = None
    login_wait_ms: Optional[int] = None
    region: Optional[str] = None


class InvoiceDownloadRequest(BaseModel):
    """Request model for an invoice download run."""
    max_pages: Optional[int] = None
    only_new: Optional[bool] = None
    card_filter: Optional[bool] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    headless: Optional[bool] = None


class InvoiceExtractRequest(BaseModel):
    headless: Optional[bool] = None
    delay_ms: Optional[int] = None


# Response models
class JobStartResponse(BaseModel):
    job_id: str
    status: str
    error: Optional[str] = None


class JobSummaryResponse(BaseModel):
    id: str
    status: str
    counters: dict[str, int]
    meta: dict[str, Any]
    created_at: str
    updated_at: str
    error: Optional[str] = None


class JobDetailResponse(JobSummaryResponse):
    log: str


class KpiResponse(BaseModel):
    total_jobs: int
    running: int
    finished: int
    errors: int
    invoices_downloaded: int
    terms_searched: int


def _started(job) -> JobStartResponse:
    return JobStartResponse(job_id=job.id, status=job.status.value, error=job.error)


@router.post(
    "/search/{source}",
    response_model=JobStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_api_key)],
)
async def start_search(
    source: str,
    request: SearchRequest,
    controller: JobController = Depends(get_controller),
):
    """Start a search run for one source."""
    if not request.file and not request.terms:
        raise HTTPException(status_code=400, detail="Provide a term file or terms")
    try:
        job = await controller.start_search(source, request.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProfileBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _started(job)


@router.post(
    "/invoices/run",
    response_model=JobStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_api_key)],
)
async def start_invoice_download(
    request: InvoiceDownloadRequest,
    controller: JobController = Depends(get_controller),
):
    """Start an invoice download run."""
    try:
        job = await controller.start_invoice_download(request.model_dump(exclude_none=True))
    except ProfileBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _started(job)


@router.post(
    "/invoices/extract",
    response_model=JobStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_api_key)],
)
async def start_invoice_extraction(
    request: InvoiceExtractRequest,
    controller: JobController = Depends(get_controller),
):
    """Convert downloaded invoices to JSON records."""
    try:
        job = await controller.start_invoice_extraction(request.model_dump(exclude_none=True))
    except ProfileBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _started(job)


@router.post(
    "/reconcile",
    response_model=JobStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_api_key)],
)
async def start_reconciliation(controller: JobController = Depends(get_controller)):
    """Match invoice records against the newest incoming statement."""
    job = await controller.start_reconciliation()
    return _started(job)


@router.get("/jobs", response_model=List[JobSummaryResponse])
async def list_jobs(store: JobStore = Depends(get_job_store)):
    """List jobs without their logs."""
    return [JobSummaryResponse(**summary.to_dict()) for summary in await store.list_jobs()]


@router.get("/jobs/{job_id}", response_model=JobDetailResponse)
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)):
    """Get one job with the tail of its log."""
    job = await store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    data = job.to_dict()
    data["log"] = job.log[-LOG_TAIL_CHARS:]
    return JobDetailResponse(**data)


@router.get("/kpi", response_model=KpiResponse)
async def kpi(store: JobStore = Depends(get_job_store)):
    """Aggregate job counts and counters."""
    jobs = await store.list_jobs()
    return KpiResponse(
        total_jobs=len(jobs),
        running=sum(1 for j in jobs if j.status == JobStatus.RUNNING),
        finished=sum(1 for j in jobs if j.status == JobStatus.FINISHED),
        errors=sum(1 for j in jobs if j.status == JobStatus.ERROR),
        invoices_downloaded=sum(j.counters.get("invoices", 0) for j in jobs),
        terms_searched=sum(j.counters.get("terms", 0) for j in jobs),
    )


@router.get("/invoices")
async def list_invoices():
    """List downloaded invoice PDFs."""
    directory = Path(settings.invoice_pdf_dir)
    if not directory.is_dir():
        return {"invoices": []}
    return {"invoices": sorted(p.name for p in directory.iterdir() if INVOICE_PDF_RE.match(p.name))}
