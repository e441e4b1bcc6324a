import logging
import time
from typing import Any, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel

from .errors import missing_image
from .llm_extractor import build_image_url, build_messages, get_llm, invoke_provider
from .normalizer import build_result
from .parser import parse_model_output
from .schemas import SUPPORTED_LANGUAGES, ExtractionResult, OCRRequestBody
from .settings import Settings

logger = logging.getLogger("docintel.extractor")


def validate_request(body: OCRRequestBody) -> None:
    if not body.image_base64:
        raise missing_image()


def language_warnings(languages: List[str]) -> List[Dict[str, Any]]:
    """Unsupported codes are still sent to the provider, only flagged here."""
    return [
        {
            "code": "UNSUPPORTED_LANGUAGE",
            "message": f"Language '{code}' is not in the supported set",
            "field": "options.language",
            "severity": "warning",
        }
        for code in languages
        if code not in SUPPORTED_LANGUAGES
    ]


class ExtractionHandler:
    """
    Stateless request -> ExtractionResult transformer.

    Every call validates the request, sends the document to the provider once,
    parses the completion and normalizes it. Failures surface as
    ExtractionFailure and nothing is retried here.
    """

    def __init__(self, settings: Settings, llm: Optional[BaseChatModel] = None) -> None:
        self._settings = settings
        self._llm = llm

    def _get_llm(self) -> BaseChatModel:
        if self._llm is not None:
            return self._llm
        return get_llm(self._settings)

    async def extract(self, body: OCRRequestBody, started_at: Optional[float] = None) -> ExtractionResult:
        started_at = time.monotonic() if started_at is None else started_at
        validate_request(body)
        llm = self._get_llm()

        options = body.options
        languages = options.requested_languages
        logger.info(
            "Processing OCR for file=%s type=%s size=%s",
            body.file_name,
            body.file_type,
            body.file_size,
        )
        messages = build_messages(
            image_url=build_image_url(body.image_base64, body.file_type),
            document_type_hint=options.document_type_hint,
            languages=languages,
            extract_reminders=options.wants_reminders,
        )
        content = await invoke_provider(llm, messages)
        parsed = parse_model_output(content)

        result = build_result(
            parsed,
            body,
            started_at=started_at,
            engine_identifier=self._settings.engine_identifier,
            request_issues=language_warnings(languages),
        )
        logger.info(
            "OCR completed id=%s in %sms, document_type=%s confidence=%s",
            result.id,
            result.metadata.processing_duration_ms,
            result.document_type,
            result.confidence,
        )
        return result
