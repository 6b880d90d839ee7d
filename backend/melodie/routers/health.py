from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from ..config import Settings
from ..dependencies import app_settings, get_report_service
from ..delivery import ReportService
from ..limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health")
@limiter.limit("60/minute")
def health(
    request: Request,
    settings: Settings = Depends(app_settings),
    service: ReportService = Depends(get_report_service),
):
    return {
        "ok": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": {
            "llm": service.llm.label() if service.llm is not None else None,
            "email": service.mailer.configured,
            "captcha": "bypass" if service.captcha.bypass else service.captcha.configured,
            "astrologyapi": settings.astrologyapi_configured(),
            "tokenStore": "redis" if settings.redis_url else "memory",
            "pdfBackend": service.pdf_backend,
        },
    }
