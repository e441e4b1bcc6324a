import copy
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .schemas import (
    DOCUMENT_TYPES,
    ExtractionResult,
    OCRRequestBody,
)

logger = logging.getLogger("docintel.normalizer")

DEFAULT_CONFIDENCE = 0.5
DEFAULT_CURRENCY = "INR"
DEFAULT_DETECTED_LANGUAGES = ["en"]
DEFAULT_IMAGE_QUALITY = "medium"
PREPROCESSING_APPLIED = ["ai-enhancement"]

# Every leaf the result schema guarantees, with the value used when the
# provider leaves it out.
DEFAULT_EXTRACTED_FIELDS: Dict[str, Any] = {
    "vendor": {
        "name": None,
        "address": None,
        "phone": None,
        "email": None,
        "gstin": None,
        "pan": None,
    },
    "product": {
        "name": None,
        "model": None,
        "serialNumber": None,
        "category": None,
        "quantity": None,
        "unitPrice": None,
        "totalPrice": None,
    },
    "dates": {
        "purchaseDate": None,
        "warrantyExpiry": None,
        "serviceInterval": None,
        "nextServiceDue": None,
        "invoiceDate": None,
    },
    "amount": {
        "subtotal": None,
        "tax": None,
        "total": None,
        "currency": DEFAULT_CURRENCY,
    },
    "custom": [],
}

NUMERIC_FIELDS = {
    "product.quantity",
    "product.unitPrice",
    "product.totalPrice",
    "amount.subtotal",
    "amount.tax",
    "amount.total",
}

_NUMBER_TOKEN = re.compile(r"-?\d[\d,.]*")


def _issue(code: str, message: str, field: Optional[str] = None, severity: str = "warning") -> Dict[str, Any]:
    return {"code": code, "message": message, "field": field, "severity": severity}


def coerce_number(value: Any) -> Optional[float]:
    """
    Accept JSON numbers and amount-like strings ("1,299.00", "₹ 450", "1.234,56").
    Returns None for empty strings, raises ValueError for anything else.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"boolean {value!r} is not a number")
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{type(value).__name__} is not a number")
    tokens = _NUMBER_TOKEN.findall(value)
    if not tokens:
        if value.strip():
            raise ValueError(f"{value!r} is not a number")
        return None
    if len(tokens) > 1:
        raise ValueError(f"{value!r} holds more than one number")
    raw_number = tokens[0].rstrip(",.")
    normalized = raw_number.replace(",", "")
    if "," in raw_number and "." in raw_number:
        # Decimal comma with dot thousands separators
        if raw_number.rfind(",") > raw_number.rfind("."):
            normalized = raw_number.replace(".", "").replace(",", ".")
    return float(normalized)


def _coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return str(value)
    raise ValueError(f"{type(value).__name__} is not a text value")


def _coerce_leaf(path: str, value: Any, issues: List[Dict[str, Any]]) -> Any:
    try:
        if path in NUMERIC_FIELDS:
            return coerce_number(value)
        return _coerce_text(value)
    except ValueError as ex:
        issues.append(_issue("INVALID_FIELD_VALUE", f"Discarded value: {ex}", field=path))
        return None


def _normalize_custom(value: Any, issues: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        issues.append(_issue("INVALID_FIELD_VALUE", "Custom fields must be a list", field="custom"))
        return []
    custom: List[Dict[str, Any]] = []
    for index, entry in enumerate(value):
        path = f"custom[{index}]"
        if not isinstance(entry, dict) or not entry.get("fieldName"):
            issues.append(_issue("INVALID_FIELD_VALUE", "Custom field without a name", field=path))
            continue
        custom.append(
            {
                "fieldName": str(entry["fieldName"]),
                "value": _coerce_leaf(f"{path}.value", entry.get("value"), issues),
                "confidence": _clamp_optional(
                    _coerce_leaf_number(f"{path}.confidence", entry.get("confidence"), issues)
                ),
            }
        )
    return custom


def _coerce_leaf_number(path: str, value: Any, issues: List[Dict[str, Any]]) -> Optional[float]:
    try:
        return coerce_number(value)
    except ValueError as ex:
        issues.append(_issue("INVALID_FIELD_VALUE", f"Discarded value: {ex}", field=path))
        return None


def _clamp_optional(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return min(max(value, 0.0), 1.0)


def merge_extracted_fields(provided: Any, issues: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge the provider's extractedFields over DEFAULT_EXTRACTED_FIELDS.

    Known leaves are coerced to their schema type (a value that cannot be
    coerced becomes null and is reported in issues). Keys outside the fixed
    schema are kept unchanged.
    """
    merged = copy.deepcopy(DEFAULT_EXTRACTED_FIELDS)
    if provided is None:
        return merged
    if not isinstance(provided, dict):
        issues.append(_issue("INVALID_FIELD_VALUE", "extractedFields must be an object", field="extractedFields"))
        return merged

    for section, value in provided.items():
        if section == "custom":
            merged["custom"] = _normalize_custom(value, issues)
            continue
        if section not in merged:
            merged[section] = value
            continue
        if value is None:
            continue
        if not isinstance(value, dict):
            issues.append(_issue("INVALID_FIELD_VALUE", f"{section} must be an object", field=section))
            continue
        for name, leaf in value.items():
            path = f"{section}.{name}"
            if name in DEFAULT_EXTRACTED_FIELDS[section]:
                merged[section][name] = _coerce_leaf(path, leaf, issues)
            else:
                merged[section][name] = leaf

    if not merged["amount"].get("currency"):
        merged["amount"]["currency"] = DEFAULT_CURRENCY
    return merged


def normalize_document_type(value: Any, issues: List[Dict[str, Any]]) -> str:
    if not value:
        return "unknown"
    if not isinstance(value, str):
        issues.append(_issue("UNRECOGNIZED_DOCUMENT_TYPE", f"Ignored document type {value!r}", field="documentType"))
        return "unknown"
    if value not in DOCUMENT_TYPES:
        # Passed through verbatim; consumers treat it like unknown
        issues.append(
            _issue("UNRECOGNIZED_DOCUMENT_TYPE", f"Document type '{value}' is not a known type", field="documentType")
        )
    return value


def normalize_confidence(value: Any, issues: List[Dict[str, Any]]) -> float:
    try:
        number = coerce_number(value)
    except ValueError:
        issues.append(_issue("INVALID_CONFIDENCE", f"Confidence {value!r} is not a number", field="confidence"))
        return DEFAULT_CONFIDENCE
    if number is None:
        return DEFAULT_CONFIDENCE
    if not 0.0 <= number <= 1.0:
        issues.append(_issue("INVALID_CONFIDENCE", f"Confidence {number} clamped to [0, 1]", field="confidence"))
        return _clamp_optional(float(number))
    return number


def normalize_languages(value: Any) -> List[str]:
    if isinstance(value, list):
        languages = [str(item) for item in value if item]
        if languages:
            return languages
    return list(DEFAULT_DETECTED_LANGUAGES)


def normalize_errors(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    errors: List[Dict[str, Any]] = []
    for entry in value:
        if not isinstance(entry, dict) or not entry.get("code"):
            logger.debug("Dropping malformed provider error entry: %r", entry)
            continue
        severity = entry.get("severity")
        errors.append(
            _issue(
                str(entry["code"]),
                str(entry.get("message") or ""),
                field=str(entry["field"]) if entry.get("field") else None,
                severity=severity if severity in ("warning", "error") else "warning",
            )
        )
    return errors


def normalize_reminders(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    reminders: List[Dict[str, Any]] = []
    for entry in value:
        if not isinstance(entry, dict) or not entry.get("type"):
            logger.debug("Dropping malformed reminder entry: %r", entry)
            continue
        priority = str(entry.get("priority") or "").lower()
        reminders.append(
            {
                "type": str(entry["type"]),
                "date": entry.get("date") if isinstance(entry.get("date"), str) else None,
                "description": entry.get("description") if isinstance(entry.get("description"), str) else None,
                "priority": priority if priority in ("low", "medium", "high") else "medium",
            }
        )
    return reminders


def build_result(
    parsed: Dict[str, Any],
    body: OCRRequestBody,
    started_at: float,
    engine_identifier: str,
    request_issues: Optional[List[Dict[str, Any]]] = None,
) -> ExtractionResult:
    """
    Map the loosely-typed provider object onto ExtractionResult, filling every
    omitted field with its default.

    started_at is a time.monotonic() reading taken when the request arrived.
    """
    issues: List[Dict[str, Any]] = []
    document_type = normalize_document_type(parsed.get("documentType"), issues)
    extracted_fields = merge_extracted_fields(parsed.get("extractedFields"), issues)
    confidence = normalize_confidence(parsed.get("confidence"), issues)
    raw_text = parsed.get("rawText")

    errors = normalize_errors(parsed.get("errors"))
    errors.extend(request_issues or [])
    errors.extend(issues)

    reminder_data = None
    if body.options.wants_reminders:
        reminder_data = {"suggestedReminders": normalize_reminders(parsed.get("suggestedReminders"))}

    image_quality = parsed.get("imageQuality")
    processing_duration_ms = int(round((time.monotonic() - started_at) * 1000))

    return ExtractionResult.model_validate(
        {
            "id": str(uuid.uuid4()),
            "status": "completed",
            "documentType": document_type,
            "extractedFields": extracted_fields,
            "rawText": raw_text if isinstance(raw_text, str) else "",
            "confidence": confidence,
            "metadata": {
                "fileName": body.file_name,
                "fileType": body.file_type,
                "fileSize": body.file_size,
                "pageCount": 1,
                "processedAt": datetime.now(timezone.utc).isoformat(),
                "processingDurationMs": processing_duration_ms,
                "engineIdentifier": engine_identifier,
                "detectedLanguages": normalize_languages(parsed.get("detectedLanguages")),
                "imageQuality": image_quality if isinstance(image_quality, str) and image_quality else DEFAULT_IMAGE_QUALITY,
                "preprocessingApplied": list(PREPROCESSING_APPLIED),
            },
            "errors": errors,
            "reminderData": reminder_data,
        }
    )
