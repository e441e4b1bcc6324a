import time
import logging
from typing import Any, Callable, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from langchain_core.language_models.chat_models import BaseChatModel
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .database import build_engine
from .errors import ExtractionFailure, processing_error
from .extractor import ExtractionHandler
from .schemas import (
    SUPPORTED_LANGUAGES,
    ErrorDetail,
    ErrorResponse,
    OCRJobDetail,
    OCRJobSummary,
    OCRRequestBody,
    OCRStats,
)
from .settings import Settings
from .store import JobStore

logger = logging.getLogger("docintel.main")


def configure_logging(level: str) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    else:
        logging.getLogger().setLevel(level)
    logger.setLevel(level)


ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
}


def _failure_response(failure: ExtractionFailure) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(code=failure.code, message=failure.message),
        raw_content=failure.raw_content,
    )
    return JSONResponse(
        body.model_dump(by_alias=True, exclude_none=True),
        status_code=failure.status_code,
        headers=CORS_HEADERS,
    )


async def _read_body(request: Request) -> OCRRequestBody:
    try:
        payload = await request.json()
        return OCRRequestBody.model_validate(payload)
    except ValueError as ex:
        raise processing_error(f"Invalid request body: {ex}") from ex


def create_app(settings: Optional[Settings] = None, llm: Optional[BaseChatModel] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    handler = ExtractionHandler(settings, llm=llm)
    store: Optional[JobStore] = None
    if settings.persist_results:
        store = JobStore(build_engine(settings.database_url))

    app = FastAPI(
        title="Document OCR Extraction API",
        version="1.0.0",
        description="Extracts vendor, product, date and amount fields from document images.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=ALLOWED_HEADERS,
    )

    # Registered after CORSMiddleware so it runs first: every OPTIONS request,
    # browser preflight included, gets an empty 200
    @app.middleware("http")
    async def answer_preflight(request: Request, call_next: Callable[..., Any]) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        return await call_next(request)

    app.state.settings = settings
    app.state.handler = handler
    app.state.store = store

    async def _record(fn: Callable[..., Any], *args: Any) -> None:
        try:
            await run_in_threadpool(fn, *args)
        except SQLAlchemyError:
            # History is best effort; the extraction response stands
            logger.exception("Failed to record OCR job")

    def _require_store() -> JobStore:
        if store is None:
            raise HTTPException(status_code=503, detail="Job history is disabled")
        return store

    @app.on_event("startup")
    def on_startup() -> None:
        if store is not None:
            store.create_tables()
        logger.info(
            "Application startup: provider=%s engine=%s persistence=%s",
            settings.llm_provider,
            settings.engine_identifier,
            store is not None,
        )

    @app.post("/ocr-extract", tags=["Extraction"])
    async def ocr_extract(request: Request) -> JSONResponse:
        started_at = time.monotonic()
        body: Optional[OCRRequestBody] = None
        failure: Optional[ExtractionFailure] = None
        try:
            body = await _read_body(request)
            result = await handler.extract(body, started_at=started_at)
            response = JSONResponse({"success": True, "data": result.to_payload()}, headers=CORS_HEADERS)
        except ExtractionFailure as ex:
            logger.info("OCR request failed code=%s status=%s", ex.code, ex.status_code)
            failure = ex
        except Exception as ex:
            logger.exception("OCR processing error")
            failure = processing_error(str(ex))

        if failure is not None:
            if store is not None:
                elapsed_ms = int(round((time.monotonic() - started_at) * 1000))
                await _record(store.record_failure, body, failure, elapsed_ms)
            return _failure_response(failure)

        if store is not None:
            await _record(store.record_success, body, result)
        return response

    @app.get("/ocr-languages", tags=["Extraction"])
    def list_languages() -> List[dict]:
        return [{"code": code, "name": name} for code, name in SUPPORTED_LANGUAGES.items()]

    @app.get("/ocr-jobs", response_model=List[OCRJobSummary], tags=["History"])
    def list_jobs(limit: int = Query(50, ge=1, le=500)) -> List[OCRJobSummary]:
        return _require_store().list_jobs(limit=limit)

    @app.get("/ocr-jobs/{job_id}", response_model=OCRJobDetail, tags=["History"])
    def get_job(job_id: str) -> OCRJobDetail:
        job = _require_store().get_job(job_id)
        if job is None:
            logger.info("Job not found for job_id=%s", job_id)
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    @app.get("/ocr-stats", response_model=OCRStats, tags=["History"])
    def get_stats() -> OCRStats:
        return _require_store().stats()

    @app.get("/", tags=["Meta"])
    def root() -> dict:
        return {
            "service": "Document OCR Extraction API",
            "endpoints": [
                "/ocr-extract [POST]",
                "/ocr-languages [GET]",
                "/ocr-jobs [GET]",
                "/ocr-jobs/{job_id} [GET]",
                "/ocr-stats [GET]",
            ],
            "engine": settings.engine_identifier,
            "persistence": store is not None,
        }

    return app


app = create_app()
