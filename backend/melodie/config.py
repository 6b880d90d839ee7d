from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    brand_name: str = "Melodie Says"
    cors_origins_raw: str = ""

    # OpenAI-compatible chat completions endpoint. Without a key every
    # LLM-backed step (classifier, content engines) uses its fallback.
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4.1-mini"
    openai_vision_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 45.0

    # Resend transactional email
    resend_api_key: str | None = None
    resend_base_url: str = "https://api.resend.com"
    email_from: str = "Melodies Web <noreply@melodiesweb.com>"
    email_timeout_seconds: float = 20.0

    # reCAPTCHA v2 siteverify
    recaptcha_secret: str | None = None
    recaptcha_verify_url: str = "https://www.google.com/recaptcha/api/siteverify"
    captcha_bypass: bool = False
    captcha_timeout_seconds: float = 10.0

    # AstrologyAPI: optional natal facts, offline sun-sign fallback otherwise
    astrologyapi_base_url: str = "https://json.astrologyapi.com/v1"
    astrologyapi_user_id: str | None = None
    astrologyapi_api_key: str | None = None
    astrologyapi_timeout_seconds: float = 15.0

    shopify_webhook_secret: str | None = None

    # Premium token store: Redis when configured, in-process dict otherwise
    redis_url: str | None = None
    premium_token_ttl_seconds: int = 7 * 24 * 3600
    premium_claim_ttl_seconds: int = 300

    # - "reportlab": canvas drawing primitives
    # - "fpdf": HTML rendered through fpdf2 write_html
    pdf_backend: str = "reportlab"

    max_upload_bytes: int = 10 * 1024 * 1024

    @field_validator("pdf_backend")
    @classmethod
    def pdf_backend_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"reportlab", "fpdf"}:
            raise ValueError("pdf_backend must be 'reportlab' or 'fpdf'")
        return v

    def cors_origins(self) -> list[str]:
        raw = self.cors_origins_raw.strip()
        if not raw:
            return []
        return [item.strip() for item in raw.split(",") if item.strip()]

    def astrologyapi_configured(self) -> bool:
        return bool(self.astrologyapi_user_id and self.astrologyapi_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
