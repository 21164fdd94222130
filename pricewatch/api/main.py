"""FastAPI application for competitor price reports."""

from __future__ import annotations

import logging
from datetime import date
from functools import lru_cache

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel

from pricewatch.db.session import create_engine_from_env
from pricewatch.ingest.spreadsheet import SpreadsheetError
from pricewatch.jobs.errors import JobConflict, JobNotFound
from pricewatch.jobs.models import ReportJob
from pricewatch.jobs.runner import InvalidRequest, ReportRunner, build_runner
from pricewatch.jobs.stream import progress_events
from pricewatch.scraper.config import ScraperConfig
from pricewatch.utils.logging import configure_logging
from pricewatch.utils.urls import verify_download

logger = logging.getLogger(__name__)

configure_logging()
app = FastAPI(title="Pricewatch Reports API")

MODES = {"full": True, "prices-only": False}


class JobResponse(BaseModel):
    id: str
    status: str
    processed: int
    total: int
    result_file: str | None = None
    download_url: str | None = None
    error: str | None = None
    original_filename: str | None = None
    period_from: date
    period_to: date
    created_at: str | None = None
    updated_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None


class CreateReportResponse(BaseModel):
    job: JobResponse
    eta_seconds: float


class HistoryResponse(BaseModel):
    items: list[JobResponse]


@lru_cache(maxsize=1)
def get_runner() -> ReportRunner:
    return build_runner(create_engine_from_env())


def get_scraper_config() -> ScraperConfig:
    return ScraperConfig.from_env()


def _job_response(runner: ReportRunner, job: ReportJob) -> JobResponse:
    return JobResponse(**job.snapshot(), download_url=runner.storage.download_url(job.result_file))


def _load(runner: ReportRunner, job_id: str) -> ReportJob:
    try:
        return runner.store.get(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/reports", response_model=CreateReportResponse, status_code=201)
async def create_report(
    file: UploadFile = File(...),
    period_from: date = Form(...),
    period_to: date = Form(...),
    mode: str = Form("full"),
    runner: ReportRunner = Depends(get_runner),
    config: ScraperConfig = Depends(get_scraper_config),
) -> CreateReportResponse:
    if mode not in MODES:
        raise HTTPException(status_code=400, detail=f"Unknown mode {mode}")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Пустой файл")
    try:
        job = runner.create(
            content,
            file.filename or "upload.xlsx",
            period_from,
            period_to,
            include_stats=MODES[mode],
        )
    except (SpreadsheetError, InvalidRequest) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CreateReportResponse(job=_job_response(runner, job), eta_seconds=config.estimate_seconds(job.total))


@app.get("/reports", response_model=HistoryResponse)
def report_history(
    limit: int = Query(20, ge=1, le=100),
    runner: ReportRunner = Depends(get_runner),
) -> HistoryResponse:
    return HistoryResponse(items=[_job_response(runner, job) for job in runner.store.list_recent(limit)])


@app.get("/reports/{job_id}", response_model=JobResponse)
def report_status(job_id: str, runner: ReportRunner = Depends(get_runner)) -> JobResponse:
    return _job_response(runner, _load(runner, job_id))


@app.post("/reports/{job_id}/step", response_model=JobResponse)
async def step_report(job_id: str, runner: ReportRunner = Depends(get_runner)) -> JobResponse:
    try:
        job = await runner.step(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except JobConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _job_response(runner, job)


@app.post("/reports/{job_id}/stop", response_model=JobResponse)
def stop_report(job_id: str, runner: ReportRunner = Depends(get_runner)) -> JobResponse:
    try:
        job = runner.stop(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except JobConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _job_response(runner, job)


@app.post("/reports/{job_id}/finalize", response_model=JobResponse)
def finalize_report(job_id: str, runner: ReportRunner = Depends(get_runner)) -> JobResponse:
    try:
        job = runner.finalize(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except JobConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _job_response(runner, job)


@app.get("/reports/{job_id}/stream")
async def stream_report(job_id: str, request: Request, runner: ReportRunner = Depends(get_runner)) -> StreamingResponse:
    events = progress_events(
        runner.store,
        job_id,
        log=runner.log(job_id),
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/downloads/{name}")
def download_report(name: str, token: str = Query(...), runner: ReportRunner = Depends(get_runner)) -> FileResponse:
    if not verify_download(token, name):
        raise HTTPException(status_code=403, detail="Invalid token")
    path = runner.storage.local_path(name)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        path,
        filename=name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
