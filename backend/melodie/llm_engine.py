from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

import httpx

from .config import Settings
from .errors import LLMError

logger = logging.getLogger("melodie.llm")

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

JSON_ONLY_SYSTEM_PROMPT = (
    "You are a careful assistant. Respond ONLY with valid JSON matching the requested schema. "
    "No markdown, no commentary outside the JSON, no extra keys."
)


def _sanitize_user_input(text: str, max_length: int = 500) -> str:
    """Strip control characters and cap length before injecting into LLM prompts."""
    text = _CONTROL_CHARS_RE.sub("", text or "")
    return text[:max_length]


def _extract_json_dict(text: str) -> dict[str, Any] | None:
    if not text:
        return None

    candidates = [text.strip()]
    cleaned = re.sub(r"^```(?:json)?", "", text.strip(), flags=re.IGNORECASE).strip()
    cleaned = re.sub(r"```$", "", cleaned).strip()
    if cleaned:
        candidates.append(cleaned)

    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        candidates.append(match.group(0).strip())

    for candidate in candidates:
        if not candidate:
            continue
        try:
            payload = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(payload, dict):
            return payload

    return None


def _extract_message_text(data: Any) -> str | None:
    try:
        text = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if isinstance(text, list):
        chunks = [
            item["text"].strip()
            for item in text
            if isinstance(item, dict) and isinstance(item.get("text"), str) and item["text"].strip()
        ]
        return "\n".join(chunks) if chunks else None
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


class LLMClient:
    """OpenAI-compatible chat-completions client that only ever returns JSON objects.

    One instance is created in the application lifespan and shared by the
    classifier and every content engine. Every failure mode (no key, HTTP
    error, timeout, unparseable content) surfaces as ``LLMError`` so callers
    have a single fallback path.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str | None,
        base_url: str,
        model: str,
        vision_model: str | None = None,
        timeout: float = 45.0,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.model = model
        self.vision_model = vision_model or model
        self.timeout = timeout

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "LLMClient":
        return cls(
            http,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            vision_model=settings.openai_vision_model,
            timeout=settings.llm_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def label(self) -> str | None:
        return f"openai:{self.model}" if self.configured else None

    async def complete_json(
        self,
        prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 1200,
        system_prompt: str = JSON_ONLY_SYSTEM_PROMPT,
        image_data_url: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        if not self.configured:
            raise LLMError("LLM API key not configured")

        model = self.vision_model if image_data_url else self.model
        user_content: Any = prompt
        if image_data_url:
            user_content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ]
        payload = {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        effective_timeout = timeout if timeout is not None else self.timeout
        started_at = time.time()
        try:
            resp = await self._http.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=effective_timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            logger.warning("LLM timeout after %.0fs | model=%s", effective_timeout, model)
            raise LLMError("LLM request timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else -1
            body = exc.response.text[:300] if exc.response is not None else ""
            logger.warning("LLM HTTP error | status=%s | model=%s | body=%s", status, model, body)
            raise LLMError(f"LLM HTTP {status}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("LLM request failed | model=%s | err=%s", model, exc)
            raise LLMError(str(exc)) from exc

        text = _extract_message_text(data)
        result = _extract_json_dict(text or "")
        if result is None:
            logger.warning("LLM returned non-JSON content | model=%s | preview=%s", model, (text or "")[:120])
            raise LLMError("LLM output is not a JSON object")

        logger.info("LLM success | model=%s | time=%.2fs", model, time.time() - started_at)
        return result
