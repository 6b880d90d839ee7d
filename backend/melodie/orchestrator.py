"""Run the engines for one request and merge their output.

Dependency graph per mode:

    personal   palmistry ─┐
               numerology ┼─> triad, summary
               astrology ─┘
               direct answer (independent)

    technical  direct answer, technical breakdown

    compat     palmistry x2 ─> compatibility

Engines own their fallbacks, so nothing here retries or catches.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from . import engines
from .astrology_api import AstrologyAPIClient, offline_chart
from .engines import PalmImage
from .llm_engine import LLMClient
from .numerology_engine import calculate_all
from .schemas import AstrologyChart, Mode, Person, SynthesisResult

logger = logging.getLogger("melodie.orchestrator")


@dataclass(frozen=True)
class SynthesisRequest:
    mode: Mode
    question: str
    person: Person
    palm_image: PalmImage | None = None
    partner: Person | None = None
    partner_palm_image: PalmImage | None = None
    tech_file_text: str = ""


class EngineOrchestrator:
    def __init__(
        self,
        llm: LLMClient | None,
        astrology: AstrologyAPIClient | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.llm = llm
        self.astrology = astrology
        self.timeout = timeout

    async def _chart(self, person: Person) -> AstrologyChart:
        if self.astrology is None:
            return offline_chart(person)
        return await self.astrology.fetch_chart(person)

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        started_at = time.time()
        if request.mode == "compat":
            result = await self._compat(request)
        elif request.mode == "technical":
            result = await self._technical(request)
        else:
            result = await self._personal(request)
        logger.info(
            "Synthesis complete | mode=%s | time=%.2fs", request.mode, time.time() - started_at
        )
        return result

    async def _personal(self, request: SynthesisRequest) -> SynthesisResult:
        person = request.person
        profile = calculate_all(person.full_name, person.date_of_birth)

        async def astrology_branch() -> tuple[AstrologyChart, dict[str, str]]:
            chart = await self._chart(person)
            reading = await engines.run_astrology(
                self.llm, question=request.question, person=person, chart=chart, timeout=self.timeout
            )
            return chart, reading

        palmistry, numerology, (chart, astrology), direct = await asyncio.gather(
            engines.run_palmistry(
                self.llm, image=request.palm_image, person=person, timeout=self.timeout
            ),
            engines.run_numerology(
                self.llm, question=request.question, person=person, profile=profile,
                timeout=self.timeout,
            ),
            astrology_branch(),
            engines.run_direct_answer(self.llm, question=request.question, timeout=self.timeout),
        )

        triad, summary = await asyncio.gather(
            engines.run_triad(
                self.llm, question=request.question, astrology=astrology,
                numerology=numerology, palmistry=palmistry, timeout=self.timeout,
            ),
            engines.run_summary(
                self.llm, question=request.question, astrology=astrology,
                numerology=numerology, palmistry=palmistry, timeout=self.timeout,
            ),
        )

        return SynthesisResult(
            mode="personal",
            summary=summary["summary"],
            direct_answer=direct["answer"],
            astrology=astrology,
            numerology=numerology,
            palmistry=palmistry,
            triad=triad,
            numerology_profile=profile,
            chart=chart,
        )

    async def _technical(self, request: SynthesisRequest) -> SynthesisResult:
        direct, technical = await asyncio.gather(
            engines.run_direct_answer(
                self.llm, question=request.question, technical=True, timeout=self.timeout
            ),
            engines.run_technical(
                self.llm, question=request.question, tech_file_text=request.tech_file_text,
                timeout=self.timeout,
            ),
        )
        return SynthesisResult(
            mode="technical",
            summary=technical["summary"],
            direct_answer=direct["answer"],
            technical=technical,
        )

    async def _compat(self, request: SynthesisRequest) -> SynthesisResult:
        person = request.person
        partner = request.partner or Person()
        profiles = (
            calculate_all(person.full_name, person.date_of_birth),
            calculate_all(partner.full_name, partner.date_of_birth),
        )

        palm1, palm2, chart1, chart2 = await asyncio.gather(
            engines.run_palmistry(
                self.llm, image=request.palm_image, person=person, timeout=self.timeout
            ),
            engines.run_palmistry(
                self.llm, image=request.partner_palm_image, person=partner, timeout=self.timeout
            ),
            self._chart(person),
            self._chart(partner),
        )

        compat, score = await engines.run_compatibility(
            self.llm,
            question=request.question,
            persons=(person, partner),
            profiles=profiles,
            charts=(chart1, chart2),
            palms=(palm1, palm2),
            timeout=self.timeout,
        )

        return SynthesisResult(
            mode="compat",
            summary=compat["summary"],
            direct_answer=compat["answerToQuestion"],
            palmistry=palm1,
            partner_palmistry=palm2,
            compat=compat,
            compat_score=score,
            numerology_profile=profiles[0],
            chart=chart1,
        )
