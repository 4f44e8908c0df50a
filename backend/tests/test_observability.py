import json
import logging
from uuid import UUID

from fastapi.testclient import TestClient

from writingresearch.observability import JsonFormatter, normalize_request_id, sanitize_for_logging


def test_request_id_header_is_generated_when_missing(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    request_id = response.headers.get("X-Request-ID")
    assert request_id is not None
    UUID(request_id)


def test_request_id_header_is_preserved_when_provided(client: TestClient) -> None:
    response = client.get("/ready", headers={"X-Request-ID": "demo-request-123"})
    assert response.status_code == 200
    assert response.headers.get("X-Request-ID") == "demo-request-123"


def test_invalid_request_id_is_replaced() -> None:
    assert normalize_request_id("demo-1") == "demo-1"
    UUID(normalize_request_id("not valid!"))
    UUID(normalize_request_id(None))


def test_request_started_log_redacts_sensitive_query_values(client: TestClient, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="writingresearch.api"):
        response = client.get("/health?token=supersecret&contact=user@example.org&q=public")
    assert response.status_code == 200

    request_started_logs = [
        record for record in caplog.records if getattr(record, "event", None) == "request_started"
    ]
    assert request_started_logs
    query = request_started_logs[-1].query
    assert query["token"] == "[REDACTED]"
    assert query["contact"] == "[REDACTED_EMAIL]"
    assert query["q"] == "public"


def test_sanitize_for_logging_collapses_participant_writing() -> None:
    payload = {
        "session_key": "A|S1",
        "text": "My essay about rivers",
        "draft": {"text": "Draft body", "timestamp": 1},
        "messages": [{"message": "hello partner", "sender_id": "S2"}],
        "admin_password": "letmein",
        "Authorization": "Bearer abc.def.ghi",
    }
    sanitized = sanitize_for_logging(payload)
    assert sanitized["session_key"] == "A|S1"
    assert sanitized["text"] == "[21 chars]"
    assert sanitized["draft"] == "[10 chars]"
    assert sanitized["messages"] == [{"message": "[13 chars]", "sender_id": "S2"}]
    assert sanitized["admin_password"] == "[REDACTED]"
    assert sanitized["Authorization"] == "[REDACTED]"


def test_sanitize_for_logging_redacts_free_text_patterns() -> None:
    sanitized = sanitize_for_logging("sent Bearer abc123 to kim@example.org")
    assert "abc123" not in sanitized
    assert "kim@example.org" not in sanitized
    assert sanitize_for_logging("x" * 300, max_string_length=10) == "xxxxxxxxxx...[truncated]"
    assert sanitize_for_logging(b"raw") == "[3 bytes]"


def test_json_formatter_emits_extra_fields_and_redacts() -> None:
    record = logging.LogRecord("writingresearch.sessions", logging.INFO, __file__, 1, "session_created", None, None)
    record.event = "session_created"
    record.session_key = "A|S1"
    record.text = "secret essay"
    record.request_id = "req-1"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "session_created"
    assert payload["logger"] == "writingresearch.sessions"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "req-1"
    assert payload["event"] == "session_created"
    assert payload["session_key"] == "A|S1"
    assert payload["text"] == "[12 chars]"
