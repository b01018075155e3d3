from typing import List, Literal

from pydantic import BaseModel, Field, field_validator


class RelevancyVerdict(BaseModel):
    score: int = Field(ge=0, le=100)
    reason: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        # Models occasionally answer 105 or "72"; anything numeric is clamped.
        if isinstance(value, bool) or value is None:
            raise ValueError("score must be numeric")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("score must be numeric") from exc
        return int(round(max(0.0, min(100.0, number))))

    @field_validator("reason", mode="before")
    @classmethod
    def coerce_reason(cls, value):
        return "" if value is None else str(value)


class AdjustmentSuggestion(BaseModel):
    type: Literal["keep", "filter", "borderline"]
    text: str = Field(min_length=1)
    reasoning: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, value):
        return str(value or "").strip().lower()

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, value):
        return str(value or "").strip()


class CorrectionAnalysis(BaseModel):
    pattern_analysis: str = ""
    adjustments: List[dict] = Field(default_factory=list)
