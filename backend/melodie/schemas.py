from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Mode = Literal["personal", "technical", "compat"]
QuestionType = Literal["personal", "technical"]
EngineResult = dict[str, str]


class Person(BaseModel):
    full_name: str = ""
    email: str = ""
    date_of_birth: str = ""
    time_of_birth: str = ""
    birth_place: str = ""


class NumerologyProfile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    life_path: int
    expression: int
    personality: int
    soul_urge: int
    birthday: int
    maturity: int
    pinnacles: dict[str, int]
    challenges: dict[str, int]


class AstrologyChart(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    offline: bool = True
    sun_sign: str = "Unknown"
    moon_sign: str = "Unknown"
    rising_sign: str = "Unknown"
    source: str = "offline"


class SynthesisResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mode: Mode
    summary: str
    direct_answer: str | None = None
    astrology: EngineResult | None = None
    numerology: EngineResult | None = None
    palmistry: EngineResult | None = None
    triad: EngineResult | None = None
    technical: EngineResult | None = None
    compat: EngineResult | None = None
    compat_score: int | None = None
    partner_palmistry: EngineResult | None = None
    numerology_profile: NumerologyProfile | None = None
    chart: AstrologyChart | None = None


class ClassifyRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        return v


class ClassifyResponse(BaseModel):
    ok: bool = True
    type: QuestionType


class PremiumRedeemRequest(BaseModel):
    premium_token: str = Field(alias="premiumToken", min_length=1, max_length=128)


class PremiumCaptureResponse(BaseModel):
    ok: bool = True
    premium_token: str = Field(serialization_alias="premiumToken")
    expires_in: int = Field(serialization_alias="expiresIn")


class ReportResponse(BaseModel):
    ok: bool = True
    mode: Mode
    question_type: QuestionType = Field(serialization_alias="questionType")
    email_id: str | None = Field(default=None, serialization_alias="emailId")
    summary_html: str = Field(serialization_alias="summaryHtml")
    result: dict[str, Any]


def dump_result(result: SynthesisResult) -> dict[str, Any]:
    return result.model_dump(by_alias=True, exclude_none=True)
