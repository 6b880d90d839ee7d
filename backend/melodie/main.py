from contextlib import asynccontextmanager
import json
import logging
import time
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .astrology_api import AstrologyAPIClient
from .captcha import RecaptchaVerifier
from .config import settings
from .delivery import ReportService
from .errors import ReportError
from .limiter import limiter
from .llm_engine import LLMClient
from .mailer import ResendMailer
from .routers import classify, health, premium, reports, webhooks
from .token_store import build_token_store


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    force=True,
)
logger = logging.getLogger("melodie.api")

_BODY_PREVIEW_LIMIT = 102400  # 100 KB
_SECRET_KEYS = {"premiumToken", "g-recaptcha-response", "recaptchaToken", "captchaToken", "palmImageBase64"}


def _truncate(text: str, limit: int = 900) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated]"


def _redact(payload):
    if isinstance(payload, dict):
        return {k: ("***" if k in _SECRET_KEYS else _redact(v)) for k, v in payload.items()}
    if isinstance(payload, list):
        return [_redact(item) for item in payload]
    return payload


def _body_preview(raw: bytes, content_type: str) -> str:
    if not raw:
        return "-"
    if "application/json" in content_type:
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except ValueError:
            return f"<{len(raw)} bytes; unparseable json>"
        return _truncate(json.dumps(_redact(parsed), ensure_ascii=False, separators=(",", ":")))
    return f"<{len(raw)} bytes; {content_type or 'unknown'}>"


class ApiAuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        request_id = uuid4().hex[:8]
        started_at = time.perf_counter()

        request_content_type = request.headers.get("content-type", "")
        raw_length = request.headers.get("content-length")
        content_length = int(raw_length) if raw_length and raw_length.isdigit() else None
        # Only buffer small non-multipart bodies of known length for the preview
        if content_length is None:
            chunked = "chunked" in request.headers.get("transfer-encoding", "").lower()
            request_preview = f"<streamed; {request_content_type or 'unknown'}>" if chunked else "-"
        elif content_length <= _BODY_PREVIEW_LIMIT and "multipart/" not in request_content_type:
            request_body = await request.body()
            request_preview = _body_preview(request_body, request_content_type)
        else:
            request_preview = f"<{content_length} bytes; {request_content_type or 'unknown'}>"

        method = request.method
        full_path = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started_at) * 1000
            logger.exception(
                "API %s %s | status=500 | t=%.1fms | req=%s | req_id=%s",
                method,
                full_path,
                elapsed_ms,
                request_preview,
                request_id,
            )
            raise

        response_content_type = response.headers.get("content-type", "")
        response_body = b""
        async for chunk in response.body_iterator:
            response_body += chunk

        elapsed_ms = (time.perf_counter() - started_at) * 1000
        logger.info(
            "API %s %s | status=%s | t=%.1fms | req=%s | resp=%s | req_id=%s",
            method,
            full_path,
            response.status_code,
            elapsed_ms,
            request_preview,
            _body_preview(response_body, response_content_type),
            request_id,
        )

        return Response(
            content=response_body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )


logging.getLogger("uvicorn.access").disabled = True
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("fontTools").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    http = httpx.AsyncClient()
    store = build_token_store(
        settings.redis_url,
        settings.premium_token_ttl_seconds,
        claim_ttl_seconds=settings.premium_claim_ttl_seconds,
    )
    llm = LLMClient.from_settings(http, settings)
    if not llm.configured:
        logger.warning("OPENAI_API_KEY not set, every engine will use its fallback")

    app.state.http = http
    app.state.llm = llm
    app.state.report_service = ReportService(
        llm=llm,
        astrology=AstrologyAPIClient.from_settings(http, settings),
        mailer=ResendMailer.from_settings(http, settings),
        captcha=RecaptchaVerifier.from_settings(http, settings),
        store=store,
        brand=settings.brand_name,
        pdf_backend=settings.pdf_backend,
        max_upload_bytes=settings.max_upload_bytes,
    )

    yield

    await store.close()
    await http.aclose()


app = FastAPI(title="Melodie Says API", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed | path=%s | status=%s | err=%s", request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": f"{field}: {message}" if field else message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = "Method Not Allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": error},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"ok": False, "error": "Internal server error"})


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(ApiAuditMiddleware)

if settings.cors_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

app.include_router(health.router)
app.include_router(classify.router)
app.include_router(reports.router)
app.include_router(premium.router)
app.include_router(webhooks.router)
