import logging
from typing import Any, Iterable, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from .errors import (
    ExtractionFailure,
    configuration_error,
    empty_response,
    provider_error,
    quota_exceeded,
    rate_limited,
)
from .settings import Settings

logger = logging.getLogger("docintel.llm_extractor")

DEFAULT_MIME_TYPE = "image/jpeg"
_MIME_OVERRIDES = (
    ("png", "image/png"),
    ("webp", "image/webp"),
    ("gif", "image/gif"),
)

SYSTEM_PROMPT = """You are an expert OCR and document analysis system specialized in extracting structured information from invoices, bills, warranty cards, receipts, product manuals, and service documents.

Your task is to analyze the provided document image and extract information into a structured JSON format.

EXTRACTION RULES:
1. Extract all visible text accurately, handling multilingual content (English and Indian regional languages)
2. Identify and classify the document type
3. Extract key fields with high precision
4. Provide confidence scores (0-1) for extracted fields
5. Handle low-quality images, handwritten text, and skewed documents
6. Return null for fields that cannot be found or are unclear

DOCUMENT TYPES:
- invoice: Commercial invoices with line items
- bill: Utility bills, service bills
- warranty_card: Product warranty documents
- receipt: Purchase receipts
- product_manual: User manuals, guides
- service_document: Service records, maintenance logs
- unknown: Cannot determine type

OUTPUT FORMAT:
You MUST respond with ONLY a valid JSON object (no markdown, no explanation) with this exact structure:
{
  "documentType": "string",
  "documentTypeConfidence": number,
  "rawText": "string (all extracted text)",
  "extractedFields": {
    "vendor": {
      "name": "string or null",
      "address": "string or null",
      "phone": "string or null",
      "email": "string or null",
      "gstin": "string or null (Indian GST Number format: 22AAAAA0000A1Z5)",
      "pan": "string or null (PAN format: AAAAA0000A)"
    },
    "product": {
      "name": "string or null",
      "model": "string or null",
      "serialNumber": "string or null",
      "category": "string or null",
      "quantity": number or null,
      "unitPrice": number or null,
      "totalPrice": number or null
    },
    "dates": {
      "purchaseDate": "string or null (format: YYYY-MM-DD if possible)",
      "warrantyExpiry": "string or null",
      "serviceInterval": "string or null (e.g., '6 months', '10000 km')",
      "nextServiceDue": "string or null",
      "invoiceDate": "string or null"
    },
    "amount": {
      "subtotal": number or null,
      "tax": number or null,
      "total": number or null,
      "currency": "string (default: INR)"
    },
    "custom": [
      {
        "fieldName": "string",
        "value": "string",
        "confidence": number
      }
    ]
  },
  "confidence": number,
  "detectedLanguages": ["string"],
  "suggestedReminders": [
    {
      "type": "warranty_expiry | service_due | payment_due",
      "date": "string",
      "description": "string",
      "priority": "low | medium | high"
    }
  ],
  "errors": [
    {
      "code": "string",
      "message": "string",
      "field": "string or null",
      "severity": "warning | error"
    }
  ]
}"""

USER_INSTRUCTION = (
    "Analyze this document image and extract all structured information. "
    "Document hint: {document_hint}. "
    "Languages to consider: {languages}. "
    "Extract reminders: {extract_reminders}"
)


def infer_mime_type(file_type: Optional[str]) -> str:
    hint = (file_type or "").lower()
    for marker, mime_type in _MIME_OVERRIDES:
        if marker in hint:
            return mime_type
    return DEFAULT_MIME_TYPE


def build_image_url(image_base64: str, file_type: Optional[str]) -> str:
    """Payloads that already carry a data URI prefix are sent unchanged."""
    if image_base64.startswith("data:"):
        return image_base64
    return f"data:{infer_mime_type(file_type)};base64,{image_base64}"


def _build_prompt() -> ChatPromptTemplate:
    # The system prompt goes in as a variable so its JSON braces are not
    # read as template placeholders.
    return ChatPromptTemplate.from_messages(
        [
            ("system", "{system_prompt}"),
            (
                "user",
                [
                    {"type": "text", "text": USER_INSTRUCTION},
                    {"type": "image_url", "image_url": {"url": "{image_url}"}},
                ],
            ),
        ]
    )


def build_messages(
    image_url: str,
    document_type_hint: Optional[str],
    languages: Iterable[str],
    extract_reminders: bool,
) -> List[BaseMessage]:
    return _build_prompt().format_messages(
        system_prompt=SYSTEM_PROMPT,
        image_url=image_url,
        document_hint=document_type_hint or "auto-detect",
        languages=", ".join(languages),
        extract_reminders="true" if extract_reminders else "false",
    )


def get_llm(settings: Settings) -> BaseChatModel:
    """
    Create a vision-capable chat model from settings.
    Supported:
      - openai: any OpenAI-compatible chat completions endpoint (api_key, base_url, model)
      - ollama: a local Ollama server (ollama_base_url, ollama_model)
    Raises CONFIG_ERROR when the credential or endpoint is missing.
    """
    provider = settings.llm_provider
    if provider == "openai":
        if not settings.api_key:
            logger.error("LLM API key not configured")
            raise configuration_error("missing API key")
        if not settings.base_url:
            raise configuration_error("missing provider endpoint")
        # Retry policy belongs to the caller
        return ChatOpenAI(
            model=settings.model,
            api_key=settings.api_key,
            base_url=settings.base_url,
            temperature=settings.temperature,
            timeout=settings.timeout_seconds,
            max_retries=0,
        )
    if provider == "ollama":
        if not settings.ollama_base_url:
            raise configuration_error("missing Ollama endpoint")
        return ChatOllama(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            temperature=settings.temperature,
        )
    logger.error("Unsupported LLM_PROVIDER '%s'", provider)
    raise configuration_error(f"unsupported provider '{provider}'")


def _status_code_of(ex: BaseException) -> Optional[int]:
    # openai.APIStatusError and ollama.ResponseError both expose status_code
    status = getattr(ex, "status_code", None)
    if status is None:
        status = getattr(getattr(ex, "response", None), "status_code", None)
    return status if isinstance(status, int) else None


def map_provider_error(ex: BaseException) -> ExtractionFailure:
    status = _status_code_of(ex)
    if status == 429:
        return rate_limited()
    if status == 402:
        return quota_exceeded()
    return provider_error()


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text") or ""))
        return "".join(parts)
    return ""


async def invoke_provider(llm: BaseChatModel, messages: List[BaseMessage]) -> str:
    """
    Send one request to the provider and return its raw completion text.

    No retries. Provider failures come back as RATE_LIMITED, QUOTA_EXCEEDED
    or AI_ERROR; an empty completion as EMPTY_RESPONSE.
    """
    try:
        response = await llm.ainvoke(messages)
    except Exception as ex:
        logger.error("AI provider error status=%s: %s", _status_code_of(ex), ex)
        raise map_provider_error(ex) from ex

    content = _message_text(getattr(response, "content", None))
    if not content:
        logger.error("No content in AI response")
        raise empty_response()
    return content
