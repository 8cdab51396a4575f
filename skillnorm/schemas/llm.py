# skillnorm/schemas/llm.py
"""
Response contracts for every LLM call site.

Each call site validates the model's JSON against one of these and falls
back to a documented default (empty list / identity mapping) on failure.
"""
from pydantic import BaseModel, Field, field_validator


class ExtractedSkill(BaseModel):
    skill: str
    required: bool = False

    @field_validator("required", mode="before")
    @classmethod
    def _coerce_required(cls, v):
        # models occasionally answer "yes"/"no" or null
        if isinstance(v, str):
            return v.strip().lower() in {"true", "yes", "required", "1"}
        return bool(v)


class ExtractionResponse(BaseModel):
    skills: list[ExtractedSkill] = Field(default_factory=list)


class NormalizationResponse(BaseModel):
    mappings: dict[str, str] = Field(default_factory=dict)


class SkillListResponse(BaseModel):
    skills: list[str] = Field(default_factory=list)
