"""Outbound email through the Resend HTTP API."""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

import httpx

from .config import Settings

logger = logging.getLogger("melodie.mailer")


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes


@dataclass(frozen=True)
class EmailResult:
    success: bool
    id: str | None = None
    error: str | None = None


class ResendMailer:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str | None,
        sender: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 20.0,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self.sender = sender
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "ResendMailer":
        return cls(
            http,
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            base_url=settings.resend_base_url,
            timeout=settings.email_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(
        self,
        *,
        to: str,
        subject: str,
        html: str,
        attachments: list[Attachment] | None = None,
    ) -> EmailResult:
        """Never raises; transport problems come back as ``success=False``."""
        if not self._api_key:
            logger.error("Email not sent, RESEND_API_KEY missing | subject=%s", subject)
            return EmailResult(success=False, error="Email transport not configured")

        payload: dict = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if attachments:
            payload["attachments"] = [
                {"filename": a.filename, "content": base64.b64encode(a.content).decode("ascii")}
                for a in attachments
            ]
        try:
            resp = await self._http.post(
                f"{self._base_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:300] if exc.response is not None else ""
            logger.warning("Email HTTP error | status=%s | body=%s", exc.response.status_code, body)
            return EmailResult(success=False, error=f"Email HTTP {exc.response.status_code}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Email request failed | err=%s", exc)
            return EmailResult(success=False, error=str(exc) or exc.__class__.__name__)

        email_id = data.get("id") if isinstance(data, dict) else None
        logger.info("Email sent | subject=%s | id=%s", subject, email_id)
        return EmailResult(success=True, id=email_id)
