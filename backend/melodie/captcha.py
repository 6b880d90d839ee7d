"""reCAPTCHA v2 siteverify collaborator."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import Settings

logger = logging.getLogger("melodie.captcha")


@dataclass(frozen=True)
class CaptchaResult:
    ok: bool
    error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class RecaptchaVerifier:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        secret: str | None,
        verify_url: str,
        bypass: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self._http = http
        self._secret = secret
        self._verify_url = verify_url
        self.bypass = bypass
        self.timeout = timeout

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "RecaptchaVerifier":
        return cls(
            http,
            secret=settings.recaptcha_secret,
            verify_url=settings.recaptcha_verify_url,
            bypass=settings.captcha_bypass,
            timeout=settings.captcha_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    async def verify(self, token: str, remote_ip: str | None = None) -> CaptchaResult:
        if self.bypass:
            logger.warning("CAPTCHA bypass enabled, skipping verification")
            return CaptchaResult(ok=True, raw={"bypass": True})
        if not self._secret:
            logger.error("CAPTCHA secret missing and bypass disabled")
            return CaptchaResult(ok=False, error="Server missing CAPTCHA credentials")
        if not token:
            return CaptchaResult(ok=False, error="No reCAPTCHA token provided")

        form = {"secret": self._secret, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip
        try:
            resp = await self._http.post(self._verify_url, data=form, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("CAPTCHA verification request failed | err=%s", exc)
            return CaptchaResult(ok=False, error="CAPTCHA verification unavailable")

        if not isinstance(data, dict):
            return CaptchaResult(ok=False, error="CAPTCHA verification failed")
        if data.get("success") is True:
            return CaptchaResult(ok=True, raw=data)
        logger.info("CAPTCHA rejected | codes=%s", data.get("error-codes"))
        return CaptchaResult(ok=False, error="CAPTCHA verification failed", raw=data)
