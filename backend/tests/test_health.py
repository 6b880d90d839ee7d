def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert "timestamp" in payload


def test_health_reports_integrations_without_secrets(client):
    integrations = client.get("/health").json()["integrations"]
    assert integrations["llm"] is None
    assert integrations["captcha"] == "bypass"
    assert integrations["tokenStore"] == "memory"
    assert integrations["pdfBackend"] == "reportlab"
    assert "test-shopify-secret" not in str(integrations)


def test_wrong_method_is_405_envelope(client):
    response = client.get("/v1/reports")
    assert response.status_code == 405
    assert response.json() == {"ok": False, "error": "Method Not Allowed"}


def test_unknown_path_is_404_envelope(client):
    response = client.get("/v1/nope")
    assert response.status_code == 404
    assert response.json()["ok"] is False
