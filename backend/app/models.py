from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, confloat, field_validator


class FeedbackType(str, Enum):
    claim = "Claim"
    reasoning = "Reasoning"
    evidence = "Evidence"
    rebuttal = "Rebuttal"
    others = "Others"
    organization = "Organization"
    word_usage = "Word Usage"
    orthography = "Orthography"


class FeedbackSource(str, Enum):
    service = "service"
    notation = "notation"
    fallback = "fallback"


class Sentence(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int = Field(ge=1)
    paragraph: int = Field(default=1, ge=1)
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("sentence content must not be blank")
        return value


class HowItem(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str
    strategy: str


class PlanStep(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sentence: str
    what: list[int] = Field(default_factory=list)
    why: str = ""
    how: list[HowItem] = Field(default_factory=list)


class FeedbackItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(ge=1)
    content: str = Field(min_length=1)
    type: FeedbackType
    actionability: confloat(ge=0, le=1) = 0.8
    justification: confloat(ge=0, le=1) = 0.6
    sentiment: confloat(ge=0, le=1) = 0.5
    specificity: confloat(ge=0, le=1) = 0.6
    engagement: float = 2.5
    source: FeedbackSource = FeedbackSource.service
    file: str = "LLM"
    plan: list[PlanStep] = Field(default_factory=list)
    addressed: bool = False


class SegmentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str


class SegmentResponse(BaseModel):
    sentences: list[Sentence]


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str | None = None
    sentences: list[Sentence] | None = None
    api_key: str | None = None


class RoundSummary(BaseModel):
    state: str
    succeeded: bool
    entries_parsed: int = Field(ge=0)
    entries_added: int = Field(ge=0)
    error_code: str | None = None


class FeedbackResponse(BaseModel):
    items: list[FeedbackItem]
    summary: str
    fallback_used: bool = False
    fallback_count: int = Field(default=0, ge=0)
    rounds: list[RoundSummary] = Field(default_factory=list)
    error_code: str | None = None
    error_message: str | None = None


class SummaryRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[FeedbackItem]


class SummaryResponse(BaseModel):
    summary: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
    provider: str | None = None
    model: str | None = None
