"""LLM-backed content engines.

Every engine has a fixed key set and a fallback built from the same keys.
An engine never raises and never returns fewer keys than its schema: a
missing credential, an HTTP failure, a timeout or unusable JSON all land in
the fallback, and individual missing keys are filled from it.
"""
from __future__ import annotations

import base64
import json
import logging
import math
from dataclasses import dataclass
from typing import Any

from .errors import LLMError
from .llm_engine import LLMClient, _sanitize_user_input
from .numerology_engine import describe_expression, describe_life_path
from .schemas import AstrologyChart, EngineResult, NumerologyProfile, Person

logger = logging.getLogger("melodie.engines")

NO_PALM_IMAGE = "No palm image provided"
COMPAT_FALLBACK_SCORE = 50
TECH_FILE_PROMPT_CHARS = 8000


@dataclass(frozen=True)
class PalmImage:
    content: bytes
    content_type: str = "image/jpeg"

    def data_url(self) -> str:
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


# ── Schemas ──────────────────────────────────────────────────────────

ASTROLOGY_KEYS = (
    "summary", "planetaryPositions", "ascendant", "houses",
    "family", "loveHouse", "health", "career",
)
NUMEROLOGY_KEYS = ("summary", "lifePath", "expression", "personality", "soulUrge", "maturity")
PALMISTRY_KEYS = (
    "summary", "lifeLine", "headLine", "heartLine", "fateLine",
    "thumb", "indexFinger", "middleFinger", "ringFinger", "pinkyFinger",
    "mounts", "marriage", "children", "travelLines", "stressLines",
)
DIRECT_ANSWER_KEYS = ("answer",)
TRIAD_KEYS = ("summary", "combinedInsight", "shadow", "growth")
SUMMARY_KEYS = ("summary",)
TECHNICAL_KEYS = ("summary", "keyPoints", "explanation", "recommendations")
_COMPAT_PAIRED_KEYS = (
    "num_lifePath", "num_expression", "num_soulUrge", "num_personality",
    "astro_sun", "astro_moon", "astro_rising",
    "palm_life", "palm_head", "palm_heart",
)
COMPAT_KEYS = (
    "score", "summary", "answerToQuestion", "reasoning",
    "coreCompatibility", "strengths", "challenges", "overall",
) + tuple(f"{key}{n}" for key in _COMPAT_PAIRED_KEYS for n in (1, 2))


def _schema(keys: tuple[str, ...], hint: str = "string") -> str:
    return json.dumps({key: hint for key in keys}, indent=2)


# ── Shared runner ────────────────────────────────────────────────────

def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return "; ".join(t for t in (_as_text(item) for item in value) if t)
    if isinstance(value, dict):
        return "; ".join(f"{k}: {t}" for k, v in value.items() if (t := _as_text(v)))
    return str(value).strip()


def coerce_result(payload: dict[str, Any], keys: tuple[str, ...], fallback: EngineResult) -> EngineResult:
    result: EngineResult = {}
    for key in keys:
        text = _as_text(payload.get(key))
        result[key] = text or fallback[key]
    return result


async def _run_engine(
    name: str,
    llm: LLMClient | None,
    prompt: str,
    keys: tuple[str, ...],
    fallback: EngineResult,
    *,
    temperature: float = 0.6,
    max_tokens: int = 1200,
    image_data_url: str | None = None,
    timeout: float | None = None,
) -> EngineResult:
    if llm is None or not llm.configured:
        logger.info("Engine fallback | engine=%s | reason=llm_unconfigured", name)
        return dict(fallback)

    full_prompt = f"{prompt}\n\nReturn STRICT JSON only, exactly these keys:\n{_schema(keys)}"
    try:
        payload = await llm.complete_json(
            full_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            image_data_url=image_data_url,
            timeout=timeout,
        )
    except LLMError as exc:
        logger.warning("Engine fallback | engine=%s | err=%s", name, exc)
        return dict(fallback)

    missing = [key for key in keys if not _as_text(payload.get(key))]
    if missing:
        logger.warning("Engine partial output | engine=%s | missing=%s", name, missing)
    return coerce_result(payload, keys, fallback)


def _person_block(person: Person, label: str = "Person") -> str:
    return (
        f"{label}:\n"
        f"  Name: {_sanitize_user_input(person.full_name, 200) or 'Unknown'}\n"
        f"  Date of birth: {person.date_of_birth or 'Unknown'}\n"
        f"  Time of birth: {person.time_of_birth or 'Unknown'}\n"
        f"  Birth place: {_sanitize_user_input(person.birth_place, 200) or 'Unknown'}"
    )


def _q(question: str) -> str:
    return _sanitize_user_input(question, max_length=1000)


# ── Astrology ────────────────────────────────────────────────────────

def astrology_fallback(chart: AstrologyChart | None = None) -> EngineResult:
    sun = chart.sun_sign if chart else "Unknown"
    return {
        "summary": (
            f"Your Sun in {sun} colours how you meet this question: trust the steady, "
            "long-term currents in your chart rather than short-lived moods."
            if sun != "Unknown"
            else "Your chart points to a period of gradual change; patience and reflection serve you well."
        ),
        "planetaryPositions": f"Sun: {sun}. Detailed planetary positions are unavailable right now.",
        "ascendant": "Your rising sign shapes first impressions; a precise birth time refines it.",
        "houses": "House emphasis could not be calculated for this report.",
        "family": "Family ties ask for honest, gentle communication in this cycle.",
        "loveHouse": "Relationships grow through openness and shared intentions.",
        "health": "Rest, routine and movement keep your energy balanced.",
        "career": "Career progress favours consistent effort over sudden leaps.",
    }


async def run_astrology(
    llm: LLMClient | None,
    *,
    question: str,
    person: Person,
    chart: AstrologyChart,
    timeout: float | None = None,
) -> EngineResult:
    prompt = (
        "You are an experienced Western astrologer. Interpret the natal chart below in relation "
        "to the user's question. Be warm, specific and practical.\n\n"
        f'Question: "{_q(question)}"\n\n'
        f"{_person_block(person)}\n\n"
        f"Sun sign: {chart.sun_sign}\nMoon sign: {chart.moon_sign}\nRising sign: {chart.rising_sign}\n"
        f"Chart source: {chart.source}"
    )
    return await _run_engine(
        "astrology", llm, prompt, ASTROLOGY_KEYS, astrology_fallback(chart), timeout=timeout
    )


# ── Numerology narrative ─────────────────────────────────────────────

def numerology_fallback(profile: NumerologyProfile | None = None) -> EngineResult:
    if profile is None:
        return {
            "summary": "Your numbers describe a path of steady growth and self-discovery.",
            "lifePath": "Life Path insight is unavailable for this report.",
            "expression": "Expression insight is unavailable for this report.",
            "personality": "Personality insight is unavailable for this report.",
            "soulUrge": "Soul Urge insight is unavailable for this report.",
            "maturity": "Maturity insight is unavailable for this report.",
        }
    return {
        "summary": (
            f"Life Path {profile.life_path}: {describe_life_path(profile.life_path)} "
            f"Expression {profile.expression}: {describe_expression(profile.expression)}"
        ),
        "lifePath": f"Life Path {profile.life_path}: {describe_life_path(profile.life_path)}",
        "expression": f"Expression {profile.expression}: {describe_expression(profile.expression)}",
        "personality": f"Personality {profile.personality}: how others first experience you.",
        "soulUrge": f"Soul Urge {profile.soul_urge}: what your heart quietly longs for.",
        "maturity": f"Maturity {profile.maturity}: the theme that strengthens in later life.",
    }


async def run_numerology(
    llm: LLMClient | None,
    *,
    question: str,
    person: Person,
    profile: NumerologyProfile,
    timeout: float | None = None,
) -> EngineResult:
    prompt = (
        "You are a Pythagorean numerologist. Interpret these numbers for the user and relate them "
        "to the question. Master numbers 11 and 22 carry heightened potential.\n\n"
        f'Question: "{_q(question)}"\n\n'
        f"{_person_block(person)}\n\n"
        f"Life Path: {profile.life_path}\nExpression: {profile.expression}\n"
        f"Personality: {profile.personality}\nSoul Urge: {profile.soul_urge}\n"
        f"Maturity: {profile.maturity}\n"
        f"Pinnacles: {profile.pinnacles['first']}, {profile.pinnacles['second']}\n"
        f"Challenges: {profile.challenges['first']}, {profile.challenges['second']}"
    )
    return await _run_engine(
        "numerology", llm, prompt, NUMEROLOGY_KEYS, numerology_fallback(profile), timeout=timeout
    )


# ── Palmistry ────────────────────────────────────────────────────────

def palmistry_placeholder() -> EngineResult:
    return {key: NO_PALM_IMAGE for key in PALMISTRY_KEYS}


def palmistry_fallback() -> EngineResult:
    return {
        "summary": (
            "Your hands suggest a sensitive and perceptive soul with strong potential for "
            "spiritual growth and creative self-expression."
        ),
        "lifeLine": "A steady life line speaks of resilience.",
        "headLine": "Your head line favours thoughtful, considered decisions.",
        "heartLine": "Your heart line shows depth of feeling and loyalty.",
        "fateLine": "Your fate line suggests a path you shape through your own choices.",
        "thumb": "A balanced thumb reflects willpower tempered by reason.",
        "indexFinger": "Your index finger points to quiet ambition.",
        "middleFinger": "Your middle finger reflects a sense of responsibility.",
        "ringFinger": "Your ring finger hints at creativity seeking expression.",
        "pinkyFinger": "Your little finger suggests a gift for communication.",
        "mounts": "The mounts of your palm show a blend of drive and imagination.",
        "marriage": "Relationship lines favour a committed, growing partnership.",
        "children": "Family lines are open and full of possibility.",
        "travelLines": "Travel lines hint at meaningful journeys ahead.",
        "stressLines": "Stress lines are light; rest restores you quickly.",
    }


async def run_palmistry(
    llm: LLMClient | None,
    *,
    image: PalmImage | None,
    person: Person,
    timeout: float | None = None,
) -> EngineResult:
    if image is None or not image.content:
        return palmistry_placeholder()

    prompt = (
        "You are a modern palmistry expert. Read the attached palm image: major lines, fingers, "
        "mounts and special markings. Give a short, empowering interpretation for each key.\n\n"
        f"{_person_block(person)}"
    )
    return await _run_engine(
        "palmistry",
        llm,
        prompt,
        PALMISTRY_KEYS,
        palmistry_fallback(),
        temperature=0.7,
        image_data_url=image.data_url(),
        timeout=timeout,
    )


# ── Direct answer ────────────────────────────────────────────────────

def direct_answer_fallback(question: str) -> EngineResult:
    return {
        "answer": (
            f'Your question "{_q(question)}" has been received. The energies around it show '
            "movement; the sections below offer guidance drawn from your personal data."
        ),
    }


async def run_direct_answer(
    llm: LLMClient | None,
    *,
    question: str,
    technical: bool = False,
    timeout: float | None = None,
) -> EngineResult:
    role = (
        "You are a precise technical analyst (software, finance, science)."
        if technical
        else "You are a compassionate spiritual advisor."
    )
    prompt = f'{role} Answer the question directly in 2-4 sentences.\n\nQuestion: "{_q(question)}"'
    return await _run_engine(
        "direct_answer", llm, prompt, DIRECT_ANSWER_KEYS, direct_answer_fallback(question),
        temperature=0.4, max_tokens=400, timeout=timeout,
    )


# ── Triad + cross-engine summary ─────────────────────────────────────

def _triad_context(astrology: EngineResult, numerology: EngineResult, palmistry: EngineResult) -> str:
    return (
        f"ASTROLOGY:\n{json.dumps(astrology, indent=2)}\n\n"
        f"NUMEROLOGY:\n{json.dumps(numerology, indent=2)}\n\n"
        f"PALMISTRY:\n{json.dumps(palmistry, indent=2)}"
    )


def triad_fallback() -> EngineResult:
    return {
        "summary": "Astrology, numerology and palmistry together point toward meaningful progress ahead.",
        "combinedInsight": (
            "Astrology shows your motivations and energy cycles, numerology your timing, and "
            "palmistry your subconscious direction. Together they favour patient, deliberate steps."
        ),
        "shadow": "The main tension sits between comfort and expansion.",
        "growth": "Growth comes from trusting your intuition while acting with steady discipline.",
    }


async def run_triad(
    llm: LLMClient | None,
    *,
    question: str,
    astrology: EngineResult,
    numerology: EngineResult,
    palmistry: EngineResult,
    timeout: float | None = None,
) -> EngineResult:
    prompt = (
        "You are a spiritual analysis system. Blend astrology, numerology and palmistry into one "
        "unified reading. Tone: clear, compassionate, precise.\n\n"
        f'Question: "{_q(question)}"\n\n'
        f"{_triad_context(astrology, numerology, palmistry)}"
    )
    return await _run_engine("triad", llm, prompt, TRIAD_KEYS, triad_fallback(), timeout=timeout)


def summary_fallback(question: str) -> EngineResult:
    return {
        "summary": (
            f'For your question "{_q(question)}", your chart, numbers and palm agree on one theme: '
            "move forward with patience and trust what has been quietly building."
        ),
    }


async def run_summary(
    llm: LLMClient | None,
    *,
    question: str,
    astrology: EngineResult,
    numerology: EngineResult,
    palmistry: EngineResult,
    timeout: float | None = None,
) -> EngineResult:
    prompt = (
        "Write a single short paragraph (3-4 sentences) that answers the question using the three "
        "readings below. No headings.\n\n"
        f'Question: "{_q(question)}"\n\n'
        f"{_triad_context(astrology, numerology, palmistry)}"
    )
    return await _run_engine(
        "summary", llm, prompt, SUMMARY_KEYS, summary_fallback(question),
        temperature=0.5, max_tokens=400, timeout=timeout,
    )


# ── Technical breakdown ──────────────────────────────────────────────

def technical_fallback(question: str) -> EngineResult:
    return {
        "summary": f'Your technical question "{_q(question)}" has been received.',
        "keyPoints": "Share logs, stack traces or sample data for a deeper analysis.",
        "explanation": "A detailed technical analysis is unavailable right now.",
        "recommendations": "Retry with more detail, including your environment and a failing example.",
    }


async def run_technical(
    llm: LLMClient | None,
    *,
    question: str,
    tech_file_text: str = "",
    timeout: float | None = None,
) -> EngineResult:
    file_text = _sanitize_user_input(tech_file_text, max_length=TECH_FILE_PROMPT_CHARS).strip()
    prompt = (
        "You are a technical analyst specialising in software engineering, debugging, finance and "
        "systems design. Respond with clarity, correctness and actionable steps. keyPoints is a "
        "list of short strings.\n\n"
        f'Technical question: "{_q(question)}"\n\n'
        f"Additional file content (optional):\n{file_text or '(none)'}"
    )
    return await _run_engine(
        "technical", llm, prompt, TECHNICAL_KEYS, technical_fallback(question),
        temperature=0.3, timeout=timeout,
    )


# ── Compatibility ────────────────────────────────────────────────────

def clamp_score(value: Any, default: int = COMPAT_FALLBACK_SCORE) -> int:
    """Clamp to [0, 100] and round half up. Non-numeric values give ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return int(math.floor(min(max(number, 0.0), 100.0) + 0.5))


def compat_fallback(
    profiles: tuple[NumerologyProfile, NumerologyProfile],
    charts: tuple[AstrologyChart, AstrologyChart],
    palms: tuple[EngineResult, EngineResult],
) -> EngineResult:
    result: EngineResult = {
        "score": str(COMPAT_FALLBACK_SCORE),
        "summary": "Your connection blends complementary strengths with lessons you can learn together.",
        "answerToQuestion": "The bond has real potential when both of you communicate openly.",
        "reasoning": "Numerology and sun signs show a mix of harmony and healthy friction.",
        "coreCompatibility": "Balanced",
        "strengths": "Shared values, mutual curiosity and a willingness to grow.",
        "challenges": "Different paces and communication styles need patience.",
        "overall": "A relationship worth nurturing with honesty and care.",
    }
    for n, (profile, chart, palm) in enumerate(zip(profiles, charts, palms), start=1):
        result[f"num_lifePath{n}"] = str(profile.life_path)
        result[f"num_expression{n}"] = str(profile.expression)
        result[f"num_soulUrge{n}"] = str(profile.soul_urge)
        result[f"num_personality{n}"] = str(profile.personality)
        result[f"astro_sun{n}"] = chart.sun_sign
        result[f"astro_moon{n}"] = chart.moon_sign
        result[f"astro_rising{n}"] = chart.rising_sign
        result[f"palm_life{n}"] = palm["lifeLine"]
        result[f"palm_head{n}"] = palm["headLine"]
        result[f"palm_heart{n}"] = palm["heartLine"]
    return result


async def run_compatibility(
    llm: LLMClient | None,
    *,
    question: str,
    persons: tuple[Person, Person],
    profiles: tuple[NumerologyProfile, NumerologyProfile],
    charts: tuple[AstrologyChart, AstrologyChart],
    palms: tuple[EngineResult, EngineResult],
    timeout: float | None = None,
) -> tuple[EngineResult, int]:
    """Return the compatibility reading and its clamped integer score."""
    fallback = compat_fallback(profiles, charts, palms)
    blocks = []
    for n, (person, profile, chart, palm) in enumerate(zip(persons, profiles, charts, palms), start=1):
        blocks.append(
            f"{_person_block(person, f'Person {n}')}\n"
            f"  Life Path {profile.life_path}, Expression {profile.expression}, "
            f"Soul Urge {profile.soul_urge}, Personality {profile.personality}\n"
            f"  Sun {chart.sun_sign}, Moon {chart.moon_sign}, Rising {chart.rising_sign}\n"
            f"  Palm: life={palm['lifeLine']}; head={palm['headLine']}; heart={palm['heartLine']}"
        )
    prompt = (
        "You are a relationship astrologer, numerologist and palm reader. Assess the compatibility "
        "of the two people below and answer the question. score is a number from 0 to 100. "
        "Keys ending in 1 describe Person 1, keys ending in 2 describe Person 2.\n\n"
        f'Question: "{_q(question)}"\n\n' + "\n\n".join(blocks)
    )
    result = await _run_engine(
        "compatibility", llm, prompt, COMPAT_KEYS, fallback, temperature=0.5, max_tokens=1800,
        timeout=timeout,
    )
    score = clamp_score(result["score"])
    result["score"] = str(score)
    return result, score
