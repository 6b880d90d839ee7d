"""Natal facts from AstrologyAPI, with a local sun-sign fallback.

The provider is optional: without credentials, or on any provider failure,
``fetch_chart`` returns an offline chart whose sun sign is computed from the
birth date alone.
"""
from __future__ import annotations

import logging
from datetime import date

import httpx

from .config import Settings
from .errors import UpstreamDegraded
from .schemas import AstrologyChart, Person

logger = logging.getLogger("melodie.astrology")

# (month, last day of the sign in that month, sign starting the next day)
_SIGN_BOUNDARIES: tuple[tuple[int, int, str, str], ...] = (
    (1, 19, "Capricorn", "Aquarius"),
    (2, 18, "Aquarius", "Pisces"),
    (3, 20, "Pisces", "Aries"),
    (4, 19, "Aries", "Taurus"),
    (5, 20, "Taurus", "Gemini"),
    (6, 20, "Gemini", "Cancer"),
    (7, 22, "Cancer", "Leo"),
    (8, 22, "Leo", "Virgo"),
    (9, 22, "Virgo", "Libra"),
    (10, 22, "Libra", "Scorpio"),
    (11, 21, "Scorpio", "Sagittarius"),
    (12, 21, "Sagittarius", "Capricorn"),
)


def parse_birth_date(value: str) -> date | None:
    try:
        return date.fromisoformat((value or "").strip()[:10])
    except ValueError:
        return None


def get_sun_sign(birth_date: date) -> str:
    for month, last_day, current, following in _SIGN_BOUNDARIES:
        if birth_date.month == month:
            return current if birth_date.day <= last_day else following
    return "Unknown"


def offline_chart(person: Person) -> AstrologyChart:
    parsed = parse_birth_date(person.date_of_birth)
    return AstrologyChart(
        offline=True,
        sun_sign=get_sun_sign(parsed) if parsed else "Unknown",
        source="offline",
    )


def _parse_time(value: str) -> tuple[int, int]:
    try:
        hour, minute = (int(part) for part in (value or "12:00").split(":")[:2])
    except ValueError:
        return 12, 0
    return hour, minute


class AstrologyAPIClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str,
        user_id: str | None,
        api_key: str | None,
        timeout: float = 15.0,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._auth = (user_id, api_key) if user_id and api_key else None
        self.timeout = timeout

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "AstrologyAPIClient":
        return cls(
            http,
            base_url=settings.astrologyapi_base_url,
            user_id=settings.astrologyapi_user_id,
            api_key=settings.astrologyapi_api_key,
            timeout=settings.astrologyapi_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return self._auth is not None

    async def _astro_details(self, person: Person, birth_date: date) -> dict:
        hour, minute = _parse_time(person.time_of_birth)
        payload = {
            "day": birth_date.day,
            "month": birth_date.month,
            "year": birth_date.year,
            "hour": hour,
            "min": minute,
            "lat": 0,
            "lon": 0,
            "tzone": 0,
        }
        try:
            resp = await self._http.post(
                f"{self._base_url}/astro_details",
                json=payload,
                auth=self._auth,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamDegraded(f"AstrologyAPI request failed: {exc}") from exc
        if not isinstance(data, dict):
            raise UpstreamDegraded("AstrologyAPI returned a non-object body")
        return data

    async def fetch_chart(self, person: Person) -> AstrologyChart:
        """Never raises: provider problems degrade to ``offline_chart``."""
        birth_date = parse_birth_date(person.date_of_birth)
        if not self.configured or birth_date is None:
            return offline_chart(person)

        try:
            data = await self._astro_details(person, birth_date)
        except UpstreamDegraded as exc:
            logger.warning("AstrologyAPI unavailable, using offline chart | err=%s", exc)
            return offline_chart(person)

        return AstrologyChart(
            offline=False,
            sun_sign=str(data.get("sun_sign") or get_sun_sign(birth_date)),
            moon_sign=str(data.get("moon_sign") or "Unknown"),
            rising_sign=str(data.get("ascendant") or "Unknown"),
            source="astrologyapi",
        )
