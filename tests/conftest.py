import dataclasses
import json
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from docintel.main import create_app
from docintel.schemas import OCRRequestBody
from docintel.settings import Settings

FULL_EXTRACTED_FIELDS: Dict[str, Any] = {
    "vendor": {
        "name": "Sharma Electronics",
        "address": "12 MG Road, Bengaluru",
        "phone": "+91 80 1234 5678",
        "email": "sales@sharma.example",
        "gstin": "29ABCDE1234F1Z5",
        "pan": "ABCDE1234F",
    },
    "product": {
        "name": "Front Load Washer",
        "model": "FLW-7000",
        "serialNumber": "SN-99812",
        "category": "Appliances",
        "quantity": 1.0,
        "unitPrice": 32000.0,
        "totalPrice": 32000.0,
    },
    "dates": {
        "purchaseDate": "2025-01-15",
        "warrantyExpiry": "2026-01-15",
        "serviceInterval": "6 months",
        "nextServiceDue": "2025-07-15",
        "invoiceDate": "2025-01-15",
    },
    "amount": {
        "subtotal": 27118.64,
        "tax": 4881.36,
        "total": 32000.0,
        "currency": "INR",
    },
    "custom": [
        {"fieldName": "Invoice Number", "value": "INV-2025-0042", "confidence": 0.93},
    ],
}

PROVIDER_RESPONSE: Dict[str, Any] = {
    "documentType": "invoice",
    "rawText": "SHARMA ELECTRONICS\nTAX INVOICE INV-2025-0042",
    "extractedFields": FULL_EXTRACTED_FIELDS,
    "confidence": 0.9,
    "detectedLanguages": ["en", "hi"],
    "suggestedReminders": [
        {"type": "warranty_expiry", "date": "2026-01-15", "priority": "high"},
    ],
    "errors": [],
}

REQUEST_BODY: Dict[str, Any] = {
    "imageBase64": "data:image/png;base64,AAAA",
    "fileName": "x.png",
    "fileType": "image/png",
    "fileSize": 10,
    "options": {"extractReminders": True},
}


def make_llm(content: str = "", side_effect: Optional[BaseException] = None) -> MagicMock:
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content=content), side_effect=side_effect)
    return llm


def provider_json(**overrides: Any) -> str:
    data = dict(PROVIDER_RESPONSE)
    data.update(overrides)
    return json.dumps(data)


def status_error(status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://gateway.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    error_cls = openai.RateLimitError if status == 429 else openai.APIStatusError
    return error_cls(f"provider returned {status}", response=response, body=None)


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(
        request=httpx.Request("POST", "https://gateway.test/v1/chat/completions")
    )


def make_body(**overrides: Any) -> OCRRequestBody:
    data = dict(REQUEST_BODY)
    data.update(overrides)
    return OCRRequestBody.model_validate(data)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_key="test-key",
        model="test-vision-model",
        database_url=f"sqlite:///{tmp_path / 'ocr.db'}",
    )


@pytest.fixture
def client_factory(settings):
    clients = []

    def _make(llm: Optional[MagicMock] = None, **overrides: Any) -> TestClient:
        app = create_app(dataclasses.replace(settings, **overrides), llm=llm)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)
