from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DOCUMENT_TYPES = (
    "invoice",
    "bill",
    "warranty_card",
    "receipt",
    "product_manual",
    "service_document",
    "unknown",
)

SUPPORTED_LANGUAGES = {
    "en": "English",
    "hi": "Hindi",
    "bn": "Bengali",
    "ta": "Tamil",
    "te": "Telugu",
    "mr": "Marathi",
    "gu": "Gujarati",
    "kn": "Kannada",
    "ml": "Malayalam",
    "pa": "Punjabi",
}

DEFAULT_LANGUAGES = ["en", "hi"]

StatusLiteral = Literal["completed", "failed"]
SeverityLiteral = Literal["warning", "error"]
PriorityLiteral = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OCROptions(CamelModel):
    languages: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("language", "languages")
    )
    document_type_hint: Optional[str] = None
    extract_reminders: Optional[bool] = None

    @property
    def requested_languages(self) -> List[str]:
        return list(DEFAULT_LANGUAGES) if self.languages is None else list(self.languages)

    @property
    def wants_reminders(self) -> bool:
        # Only an explicit false turns reminders off
        return self.extract_reminders is not False


class OCRRequestBody(CamelModel):
    image_base64: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    options: OCROptions = Field(default_factory=OCROptions)

    @field_validator("options", mode="before")
    @classmethod
    def _null_options(cls, value: Any) -> Any:
        return {} if value is None else value


class _ResultModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class _OpenResultModel(_ResultModel):
    # Provider-supplied keys outside the fixed schema are kept as-is
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow"
    )


class VendorFields(_OpenResultModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    gstin: Optional[str] = None
    pan: Optional[str] = None


class ProductFields(_OpenResultModel):
    name: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None


class DateFields(_OpenResultModel):
    purchase_date: Optional[str] = None
    warranty_expiry: Optional[str] = None
    service_interval: Optional[str] = None
    next_service_due: Optional[str] = None
    invoice_date: Optional[str] = None


class AmountFields(_OpenResultModel):
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    currency: str = "INR"


class CustomField(_ResultModel):
    field_name: str
    value: Optional[str] = None
    confidence: Optional[float] = None


class ExtractedFields(_OpenResultModel):
    vendor: VendorFields = Field(default_factory=VendorFields)
    product: ProductFields = Field(default_factory=ProductFields)
    dates: DateFields = Field(default_factory=DateFields)
    amount: AmountFields = Field(default_factory=AmountFields)
    custom: List[CustomField] = Field(default_factory=list)


class ExtractionIssue(_ResultModel):
    code: str
    message: str
    field: Optional[str] = None
    severity: SeverityLiteral = "warning"


class Reminder(_ResultModel):
    type: str
    date: Optional[str] = None
    description: Optional[str] = None
    priority: PriorityLiteral = "medium"


class ReminderData(_ResultModel):
    suggested_reminders: List[Reminder] = Field(default_factory=list)


class ResultMetadata(_ResultModel):
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    page_count: int = 1
    processed_at: str
    processing_duration_ms: int
    engine_identifier: str
    detected_languages: List[str] = Field(default_factory=lambda: ["en"])
    image_quality: str = "medium"
    preprocessing_applied: List[str] = Field(default_factory=list)


class ExtractionResult(_ResultModel):
    id: str
    status: StatusLiteral = "completed"
    document_type: str = "unknown"
    extracted_fields: ExtractedFields = Field(default_factory=ExtractedFields)
    raw_text: str = ""
    confidence: float = 0.5
    metadata: ResultMetadata
    errors: List[ExtractionIssue] = Field(default_factory=list)
    reminder_data: Optional[ReminderData] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire form: camelCase keys, reminderData omitted when not requested."""
        data = self.model_dump(by_alias=True)
        if self.reminder_data is None:
            data.pop("reminderData", None)
        return data


class ErrorDetail(CamelModel):
    code: str
    message: str


class ErrorResponse(CamelModel):
    success: Literal[False] = False
    error: ErrorDetail
    raw_content: Optional[str] = None


class OCRJobSummary(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    file_name: Optional[str]
    file_type: Optional[str]
    file_size: Optional[int]
    status: StatusLiteral
    document_type: Optional[str]
    confidence: Optional[float]
    processing_time_ms: Optional[int]
    error_code: Optional[str]
    error_message: Optional[str]
    created_at: datetime


class OCRJobDetail(OCRJobSummary):
    result: Optional[Dict[str, Any]] = None


class OCRStats(CamelModel):
    total_jobs: int
    completed_jobs: int
    failed_jobs: int
    average_confidence: Optional[float]
    average_processing_time_ms: Optional[float]
    document_types: Dict[str, int]
