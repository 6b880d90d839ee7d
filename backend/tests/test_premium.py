"""Premium capture and direct redemption."""
import asyncio

from fakes import RecordingMailer

SUBMISSION = {
    "email": "x@y.com",
    "question": "Will I find love?",
    "fullName": "Jane Doe",
    "birthDate": "1990-05-14",
    "g-recaptcha-response": "tok",
}


def _capture(client) -> str:
    response = client.post("/v1/premium/submissions", json=SUBMISSION)
    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["ok"] is True
    assert payload["expiresIn"] == 7 * 24 * 3600
    return payload["premiumToken"]


def test_capture_stores_snapshot_without_captcha_token(client, service):
    token = _capture(client)
    assert token.startswith("pt_")
    stored = asyncio.run(service.store.load(token))
    assert stored["email"] == "x@y.com"
    assert stored["fullName"] == "Jane Doe"
    assert "g-recaptcha-response" not in stored


def test_redeem_delivers_and_consumes_token(client, service, mailer):
    token = _capture(client)

    response = client.post("/v1/premium/redeem", json={"premiumToken": token})
    assert response.status_code == 200, response.text
    assert response.json() == {"ok": True, "emailId": "email_1"}
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["subject"] == "Your Premium Spiritual Report"
    assert mailer.sent[0]["attachments"][0].filename == "premium-spiritual-report.pdf"
    assert "Hi Jane Doe" in mailer.sent[0]["html"]
    assert asyncio.run(service.store.load(token)) is None


def test_second_redeem_is_404(client, mailer):
    token = _capture(client)
    assert client.post("/v1/premium/redeem", json={"premiumToken": token}).status_code == 200

    response = client.post("/v1/premium/redeem", json={"premiumToken": token})
    assert response.status_code == 404
    assert response.json()["ok"] is False
    assert len(mailer.sent) == 1


def test_unknown_token_is_404(client, mailer):
    response = client.post("/v1/premium/redeem", json={"premiumToken": "pt_missing"})
    assert response.status_code == 404
    assert mailer.sent == []


def test_email_failure_keeps_token_for_retry(client, service):
    token = _capture(client)
    service.mailer = RecordingMailer(fail=True)

    response = client.post("/v1/premium/redeem", json={"premiumToken": token})
    assert response.status_code == 500
    assert asyncio.run(service.store.load(token)) is not None

    service.mailer = RecordingMailer()
    assert client.post("/v1/premium/redeem", json={"premiumToken": token}).status_code == 200


def test_in_flight_token_is_409(client, service, mailer):
    token = _capture(client)
    asyncio.run(service.store.claim(token))

    response = client.post("/v1/premium/redeem", json={"premiumToken": token})
    assert response.status_code == 409
    assert mailer.sent == []
    assert asyncio.run(service.store.load(token)) is not None


def test_redeem_requires_token_field(client):
    response = client.post("/v1/premium/redeem", json={})
    assert response.status_code == 400


def test_capture_validates_submission(client):
    response = client.post("/v1/premium/submissions", json={"email": "x@y.com"})
    assert response.status_code == 400
