from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OCRJob(Base):
    __tablename__ = "ocr_jobs"

    # Same id as the ExtractionResult on success, a fresh uuid on failure
    id = Column(String(64), primary_key=True, index=True)

    file_name = Column(String(512), nullable=True)
    file_type = Column(String(128), nullable=True)
    file_size = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, index=True)  # completed | failed

    document_type = Column(String(64), nullable=True)
    confidence = Column(Float, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)

    # Error fields (set when failed)
    error_code = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    result = relationship(
        "OCRResultRecord", back_populates="job", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_ocr_jobs_status_created_at", "status", "created_at"),)


class OCRResultRecord(Base):
    __tablename__ = "ocr_results"

    job_id = Column(String(64), ForeignKey("ocr_jobs.id"), primary_key=True)
    raw_text = Column(Text, nullable=True)
    # Full ExtractionResult wire payload, JSON encoded
    payload = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    job = relationship("OCRJob", back_populates="result")
