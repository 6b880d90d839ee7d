"""Request audit logging."""
import json
import logging


def _audit_lines(caplog):
    return [
        record.getMessage()
        for record in caplog.records
        if record.name == "melodie.api" and record.getMessage().startswith("API ")
    ]


def test_json_body_preview_redacts_secrets(client, caplog):
    caplog.set_level(logging.INFO, logger="melodie.api")
    client.post("/v1/classify", json={"question": "Will I find love?", "captchaToken": "secret-value"})
    line = _audit_lines(caplog)[-1]
    assert '"question":"Will I find love?"' in line
    assert "secret-value" not in line


def test_streamed_body_is_not_buffered_for_preview(client, caplog):
    caplog.set_level(logging.INFO, logger="melodie.api")
    body = json.dumps({"question": "Will I find love?"}).encode()
    response = client.post(
        "/v1/classify",
        content=iter([body]),
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 200
    line = _audit_lines(caplog)[-1]
    assert "req=<streamed; application/json>" in line
    assert "Will I find love?" not in line


def test_bodyless_request_preview_is_dash(client, caplog):
    caplog.set_level(logging.INFO, logger="melodie.api")
    client.get("/health")
    assert "req=- |" in _audit_lines(caplog)[-1]
