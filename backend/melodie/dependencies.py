from fastapi import Request

from .config import Settings, get_settings
from .delivery import ReportService
from .llm_engine import LLMClient


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_llm(request: Request) -> LLMClient | None:
    return getattr(request.app.state, "llm", None)


def app_settings() -> Settings:
    return get_settings()


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None
