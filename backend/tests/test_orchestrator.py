"""Engine orchestrator: mode fan-out and dependency ordering."""
import asyncio

from melodie.engines import NO_PALM_IMAGE, PalmImage
from melodie.orchestrator import EngineOrchestrator, SynthesisRequest
from melodie.schemas import Person, dump_result

from fakes import FailingLLM, FakeLLM

JANE = Person(full_name="Jane Doe", email="x@y.com", date_of_birth="1990-05-14")
JOHN = Person(full_name="John Roe", date_of_birth="1988-11-30")


def _synthesize(llm, **kwargs):
    request = SynthesisRequest(question=kwargs.pop("question", "Should I change careers?"), **kwargs)
    return asyncio.run(EngineOrchestrator(llm).synthesize(request))


def test_personal_fallback_populates_every_branch():
    result = _synthesize(None, mode="personal", person=JANE)
    assert result.summary
    assert result.direct_answer
    for section in (result.astrology, result.numerology, result.palmistry, result.triad):
        assert section and all(section.values())
    assert result.technical is None
    assert result.compat is None
    assert result.numerology_profile.life_path == 11
    assert result.chart.sun_sign == "Taurus"


def test_personal_triad_and_summary_run_after_base_engines():
    order = []

    def respond(prompt, **kwargs):
        if "Western astrologer" in prompt:
            order.append("astrology")
        elif "Pythagorean numerologist" in prompt:
            order.append("numerology")
        elif "palmistry expert" in prompt:
            order.append("palmistry")
        elif "spiritual analysis system" in prompt:
            order.append("triad")
            assert "ASTROLOGY" in prompt
        elif "single short paragraph" in prompt:
            order.append("summary")
        return {"summary": "model text"}

    _synthesize(FakeLLM(respond), mode="personal", person=JANE, palm_image=PalmImage(b"img"))
    assert set(order[:3]) == {"astrology", "numerology", "palmistry"}
    assert set(order[3:]) == {"triad", "summary"}


def test_engine_failures_do_not_break_synthesis():
    result = _synthesize(FailingLLM(), mode="personal", person=JANE)
    assert result.summary
    assert result.palmistry["summary"] == NO_PALM_IMAGE


def test_technical_skips_spiritual_engines():
    llm = FakeLLM(lambda prompt, **kw: {"summary": "Quicksort is O(n log n) on average", "answer": "n log n"})
    result = _synthesize(llm, mode="technical", person=JANE, question="Quicksort complexity?")
    assert result.mode == "technical"
    assert result.summary == "Quicksort is O(n log n) on average"
    assert result.direct_answer == "n log n"
    assert result.astrology is None and result.numerology is None and result.palmistry is None
    assert len(llm.calls) == 2


def test_technical_passes_file_text_to_breakdown():
    llm = FakeLLM()
    _synthesize(llm, mode="technical", person=JANE, question="Crash?", tech_file_text="OOM killed pid 7")
    assert sum("OOM killed pid 7" in call["prompt"] for call in llm.calls) == 1


def test_compat_runs_palmistry_for_both_and_no_triad():
    llm = FakeLLM(lambda prompt, **kw: {"score": 140, "summary": "Great match"})
    result = _synthesize(
        llm, mode="compat", person=JANE, partner=JOHN, partner_palm_image=PalmImage(b"img")
    )
    assert result.triad is None
    assert result.compat_score == 100
    assert result.summary == "Great match"
    assert result.palmistry["lifeLine"] == NO_PALM_IMAGE
    assert result.partner_palmistry["summary"] == "Great match"
    # one palmistry call (the other person has no image) + one compatibility call
    assert len(llm.calls) == 2


def test_dump_uses_camel_case_and_drops_empty_branches():
    dumped = dump_result(_synthesize(None, mode="compat", person=JANE, partner=JOHN))
    assert dumped["compatScore"] == 50
    assert "partnerPalmistry" in dumped
    assert "triad" not in dumped
