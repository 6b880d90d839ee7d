from __future__ import annotations

import logging

from .errors import LLMError
from .llm_engine import LLMClient, _sanitize_user_input
from .schemas import QuestionType

logger = logging.getLogger("melodie.classifier")

PERSONAL_KEYWORDS: tuple[str, ...] = (
    "my",
    "should i",
    "will i",
    "born",
    "relationship",
    "marriage",
    "career",
    "health",
    "love",
    "life",
    "astrology",
    "numerology",
    "palm",
)

_CLASSIFY_PROMPT = (
    'Classify the question as "personal" (love, fate, career, health, spirituality, astrology, '
    'numerology, palmistry, life path) or "technical" (finance, math, science, engineering, '
    "programming, technology).\n"
    'Return ONLY JSON like {{"type": "personal"}} or {{"type": "technical"}}.\n\n'
    'Question: "{question}"'
)


def classify_by_keywords(question: str) -> QuestionType:
    text = (question or "").lower()
    return "personal" if any(k in text for k in PERSONAL_KEYWORDS) else "technical"


async def classify_question(question: str, llm: LLMClient | None) -> QuestionType:
    """Return "personal" or "technical". Never raises."""
    if llm is None or not llm.configured:
        return classify_by_keywords(question)

    prompt = _CLASSIFY_PROMPT.format(question=_sanitize_user_input(question, max_length=1000))
    try:
        payload = await llm.complete_json(prompt, temperature=0.0, max_tokens=20)
    except LLMError as exc:
        logger.warning("Classifier LLM failed, using keyword fallback | err=%s", exc)
        return classify_by_keywords(question)

    kind = str(payload.get("type", "")).strip().lower()
    if kind in ("personal", "technical"):
        return kind  # type: ignore[return-value]

    logger.warning("Classifier LLM returned unknown type=%r, using keyword fallback", kind)
    return classify_by_keywords(question)
