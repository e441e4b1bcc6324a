from dataclasses import dataclass
from typing import Optional

MISSING_IMAGE = "MISSING_IMAGE"
CONFIG_ERROR = "CONFIG_ERROR"
RATE_LIMITED = "RATE_LIMITED"
QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
AI_ERROR = "AI_ERROR"
EMPTY_RESPONSE = "EMPTY_RESPONSE"
PARSE_ERROR = "PARSE_ERROR"
PROCESSING_ERROR = "PROCESSING_ERROR"


@dataclass
class ExtractionFailure(Exception):
    code: str
    message: str
    status_code: int = 500
    raw_content: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def missing_image() -> ExtractionFailure:
    return ExtractionFailure(MISSING_IMAGE, "No image data provided", status_code=400)


def configuration_error(detail: str) -> ExtractionFailure:
    # Deployment fault: reported as 500, never as a client error
    return ExtractionFailure(CONFIG_ERROR, f"OCR service not configured ({detail})")


def rate_limited() -> ExtractionFailure:
    return ExtractionFailure(
        RATE_LIMITED, "Service is busy. Please try again in a moment.", status_code=429
    )


def quota_exceeded() -> ExtractionFailure:
    return ExtractionFailure(
        QUOTA_EXCEEDED, "OCR quota exceeded. Please contact support.", status_code=402
    )


def provider_error() -> ExtractionFailure:
    return ExtractionFailure(AI_ERROR, "Failed to process document")


def empty_response() -> ExtractionFailure:
    return ExtractionFailure(EMPTY_RESPONSE, "No extraction result returned")


def parse_error(raw_content: str) -> ExtractionFailure:
    return ExtractionFailure(
        PARSE_ERROR, "Failed to parse extraction results", raw_content=raw_content
    )


def processing_error(message: str) -> ExtractionFailure:
    return ExtractionFailure(PROCESSING_ERROR, message or "Unknown error occurred")
