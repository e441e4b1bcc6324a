import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine

from .database import Base, build_session_factory, get_session
from .errors import ExtractionFailure
from .models import OCRJob, OCRResultRecord
from .schemas import ExtractionResult, OCRJobDetail, OCRJobSummary, OCRRequestBody, OCRStats

logger = logging.getLogger("docintel.store")


class JobStore:
    """Job history kept by the HTTP layer; the extraction core never writes here."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = build_session_factory(engine)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def record_success(self, body: OCRRequestBody, result: ExtractionResult) -> str:
        payload = result.to_payload()
        with get_session(self._session_factory) as session:
            job = OCRJob(
                id=result.id,
                file_name=body.file_name,
                file_type=body.file_type,
                file_size=body.file_size,
                status="completed",
                document_type=result.document_type,
                confidence=result.confidence,
                processing_time_ms=result.metadata.processing_duration_ms,
            )
            job.result = OCRResultRecord(
                job_id=result.id, raw_text=result.raw_text, payload=json.dumps(payload)
            )
            session.add(job)
        logger.info("Recorded completed job_id=%s", result.id)
        return result.id

    def record_failure(
        self,
        body: Optional[OCRRequestBody],
        failure: ExtractionFailure,
        processing_time_ms: int,
    ) -> str:
        job_id = str(uuid.uuid4())
        with get_session(self._session_factory) as session:
            session.add(
                OCRJob(
                    id=job_id,
                    file_name=body.file_name if body else None,
                    file_type=body.file_type if body else None,
                    file_size=body.file_size if body else None,
                    status="failed",
                    processing_time_ms=processing_time_ms,
                    error_code=failure.code,
                    error_message=failure.message,
                )
            )
        logger.info("Recorded failed job_id=%s code=%s", job_id, failure.code)
        return job_id

    def list_jobs(self, limit: int = 50) -> List[OCRJobSummary]:
        with get_session(self._session_factory) as session:
            jobs = (
                session.query(OCRJob)
                .order_by(OCRJob.created_at.desc())
                .limit(limit)
                .all()
            )
            return [OCRJobSummary.model_validate(job) for job in jobs]

    def get_job(self, job_id: str) -> Optional[OCRJobDetail]:
        with get_session(self._session_factory) as session:
            job = session.get(OCRJob, job_id)
            if job is None:
                return None
            summary = OCRJobSummary.model_validate(job)
            result: Optional[Dict[str, Any]] = None
            if job.result is not None:
                result = json.loads(job.result.payload)
            return OCRJobDetail(**summary.model_dump(), result=result)

    def stats(self) -> OCRStats:
        with get_session(self._session_factory) as session:
            counts = dict(
                session.query(OCRJob.status, func.count(OCRJob.id)).group_by(OCRJob.status).all()
            )
            average_confidence = (
                session.query(func.avg(OCRJob.confidence))
                .filter(OCRJob.status == "completed")
                .scalar()
            )
            average_time = (
                session.query(func.avg(OCRJob.processing_time_ms))
                .filter(OCRJob.processing_time_ms.isnot(None))
                .scalar()
            )
            document_types = dict(
                session.query(OCRJob.document_type, func.count(OCRJob.id))
                .filter(OCRJob.document_type.isnot(None))
                .group_by(OCRJob.document_type)
                .all()
            )
        return OCRStats(
            total_jobs=sum(counts.values()),
            completed_jobs=counts.get("completed", 0),
            failed_jobs=counts.get("failed", 0),
            average_confidence=float(average_confidence) if average_confidence is not None else None,
            average_processing_time_ms=float(average_time) if average_time is not None else None,
            document_types=document_types,
        )
