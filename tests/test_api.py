import copy
import logging

import pytest

from tests.conftest import (
    FULL_EXTRACTED_FIELDS,
    REQUEST_BODY,
    connection_error,
    make_llm,
    provider_json,
    status_error,
)


def _post(client, body=None):
    return client.post("/ocr-extract", json=REQUEST_BODY if body is None else body)


def test_extract_success_shape(client_factory):
    client = client_factory(make_llm(provider_json()))
    resp = _post(client)

    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-headers"] == "authorization, x-client-info, apikey, content-type"
    payload = resp.json()
    assert payload["success"] is True
    data = payload["data"]
    assert data["status"] == "completed"
    assert data["documentType"] == "invoice"
    assert data["confidence"] == 0.9
    assert data["extractedFields"] == FULL_EXTRACTED_FIELDS
    assert len(data["reminderData"]["suggestedReminders"]) == 1
    assert set(data["metadata"]) == {
        "fileName",
        "fileType",
        "fileSize",
        "pageCount",
        "processedAt",
        "processingDurationMs",
        "engineIdentifier",
        "detectedLanguages",
        "imageQuality",
        "preprocessingApplied",
    }


def test_reminder_data_key_absent_when_disabled(client_factory):
    client = client_factory(make_llm(provider_json()))
    body = dict(REQUEST_BODY, options={"extractReminders": False})
    data = _post(client, body).json()["data"]
    assert "reminderData" not in data


@pytest.mark.parametrize("image", [None, ""])
def test_missing_image_returns_400(client_factory, image):
    llm = make_llm(provider_json())
    client = client_factory(llm)
    body = dict(REQUEST_BODY, imageBase64=image)

    resp = _post(client, body)

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": {"code": "MISSING_IMAGE", "message": "No image data provided"},
    }
    assert llm.ainvoke.await_count == 0


def test_missing_image_field_entirely(client_factory):
    llm = make_llm(provider_json())
    client = client_factory(llm)
    body = {k: v for k, v in REQUEST_BODY.items() if k != "imageBase64"}
    assert _post(client, body).json()["error"]["code"] == "MISSING_IMAGE"
    assert llm.ainvoke.await_count == 0


def test_missing_credential_returns_config_error(client_factory):
    client = client_factory(None, api_key=None)
    resp = _post(client)
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "CONFIG_ERROR"


@pytest.mark.parametrize(
    "error, status, code",
    [
        (status_error(429), 429, "RATE_LIMITED"),
        (status_error(402), 402, "QUOTA_EXCEEDED"),
        (status_error(503), 500, "AI_ERROR"),
        (connection_error(), 500, "AI_ERROR"),
    ],
)
def test_provider_errors_are_translated(client_factory, error, status, code):
    client = client_factory(make_llm(side_effect=error))
    resp = _post(client)
    assert resp.status_code == status
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert "rawContent" not in body


def test_empty_provider_content(client_factory):
    client = client_factory(make_llm(""))
    resp = _post(client)
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "EMPTY_RESPONSE"


def test_parse_error_includes_raw_content(client_factory):
    raw = "```json\n{\"documentType\": \"invoice\",\n```"
    client = client_factory(make_llm(raw))
    resp = _post(client)
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "PARSE_ERROR"
    assert body["rawContent"] == raw


def test_invalid_json_body_is_processing_error(client_factory):
    client = client_factory(make_llm(provider_json()))
    resp = client.post("/ocr-extract", content=b"not json", headers={"content-type": "application/json"})
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "PROCESSING_ERROR"


def test_unexpected_fault_is_processing_error(client_factory, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("normalizer exploded")

    monkeypatch.setattr("docintel.extractor.build_result", _boom)
    client = client_factory(make_llm(provider_json()))
    resp = _post(client)
    assert resp.status_code == 500
    assert resp.json()["error"] == {"code": "PROCESSING_ERROR", "message": "normalizer exploded"}


def test_options_preflight(client_factory):
    client = client_factory(make_llm())
    resp = client.options("/ocr-extract")
    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-origin"] == "*"


@pytest.mark.parametrize(
    "requested_headers",
    ["content-type", "content-type, x-supabase-api-version"],
)
def test_browser_preflight_is_empty_200(client_factory, requested_headers):
    client = client_factory(make_llm())
    resp = client.options(
        "/ocr-extract",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": requested_headers,
        },
    )
    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-headers"] == "authorization, x-client-info, apikey, content-type"


@pytest.mark.parametrize(
    "content",
    [
        '{"documentType": "invoice", "confidence": NaN}',
        '{"documentType": "invoice", "extractedFields": {"amount": {"total": Infinity}}}',
    ],
)
def test_non_finite_numbers_are_parse_errors(client_factory, content):
    client = client_factory(make_llm(content))
    resp = _post(client)

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "PARSE_ERROR"
    assert body["rawContent"] == content
    assert resp.headers["access-control-allow-origin"] == "*"
    assert [job["status"] for job in client.get("/ocr-jobs").json()] == ["failed"]


def test_unrenderable_result_is_processing_error(client_factory, monkeypatch):
    monkeypatch.setattr(
        "docintel.schemas.ExtractionResult.to_payload",
        lambda self: {"confidence": float("nan")},
    )
    client = client_factory(make_llm(provider_json()))
    resp = _post(client)

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "PROCESSING_ERROR"
    assert [job["status"] for job in client.get("/ocr-jobs").json()] == ["failed"]


def test_log_level_comes_from_settings(client_factory):
    client_factory(make_llm(), log_level="DEBUG")
    assert logging.getLogger("docintel.main").level == logging.DEBUG


def test_supported_languages(client_factory):
    client = client_factory(make_llm())
    codes = [item["code"] for item in client.get("/ocr-languages").json()]
    assert codes == ["en", "hi", "bn", "ta", "te", "mr", "gu", "kn", "ml", "pa"]


def test_job_history_records_success_and_failure(client_factory):
    llm = make_llm(provider_json())
    client = client_factory(llm)
    data = _post(client).json()["data"]
    _post(client, dict(REQUEST_BODY, imageBase64=""))

    jobs = client.get("/ocr-jobs").json()
    assert len(jobs) == 2
    assert {job["status"] for job in jobs} == {"completed", "failed"}
    failed = next(job for job in jobs if job["status"] == "failed")
    assert failed["errorCode"] == "MISSING_IMAGE"
    assert failed["fileName"] == "x.png"

    detail = client.get(f"/ocr-jobs/{data['id']}").json()
    assert detail["status"] == "completed"
    assert detail["documentType"] == "invoice"
    assert detail["result"]["extractedFields"] == FULL_EXTRACTED_FIELDS

    stats = client.get("/ocr-stats").json()
    assert stats["totalJobs"] == 2
    assert stats["completedJobs"] == 1
    assert stats["failedJobs"] == 1
    assert stats["averageConfidence"] == pytest.approx(0.9)
    assert stats["documentTypes"] == {"invoice": 1}


def test_unknown_job_is_404(client_factory):
    client = client_factory(make_llm())
    assert client.get("/ocr-jobs/does-not-exist").status_code == 404


def test_history_disabled(client_factory):
    client = client_factory(make_llm(provider_json()), persist_results=False)
    assert _post(client).status_code == 200
    assert client.get("/ocr-jobs").status_code == 503


def test_empty_stats(client_factory):
    client = client_factory(make_llm())
    stats = client.get("/ocr-stats").json()
    assert stats == {
        "totalJobs": 0,
        "completedJobs": 0,
        "failedJobs": 0,
        "averageConfidence": None,
        "averageProcessingTimeMs": None,
        "documentTypes": {},
    }


def test_requests_do_not_share_state(client_factory):
    client = client_factory(make_llm(provider_json()))
    first = _post(client).json()["data"]
    second = _post(client, copy.deepcopy(REQUEST_BODY)).json()["data"]
    assert first["id"] != second["id"]
