import os

import pytest
from fastapi.testclient import TestClient

# Engines run in fallback mode unless a test installs a fake LLM.
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("REDIS_URL", None)
os.environ["CAPTCHA_BYPASS"] = "true"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "test-shopify-secret"

from melodie.limiter import limiter  # noqa: E402
from melodie.main import app  # noqa: E402

from fakes import RecordingMailer  # noqa: E402

limiter.enabled = False


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def service(client):
    return app.state.report_service


@pytest.fixture()
def mailer(service):
    recording = RecordingMailer()
    service.mailer = recording
    return recording
