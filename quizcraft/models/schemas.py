from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def new_item_id(prefix: str = "item") -> str:
    """Timestamp plus random suffix; collision-resistant, not cryptographic."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Generated items ---


class GeneratedItem(CamelModel):
    """One generated question.

    The question payload itself (question, options, answer, explanation, ...)
    is kept as extra fields exactly as the backend returned it.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str = Field(default_factory=new_item_id)
    group_key: str = ""
    is_supplementary: bool = False
    parent_id: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if value is None or value == "":
            return new_item_id()
        return str(value)

    @field_validator("is_supplementary", mode="before")
    @classmethod
    def _coerce_is_supplementary(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("group_key", mode="before")
    @classmethod
    def _coerce_group_key(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def question_type(self) -> str | None:
        extra = self.model_extra or {}
        value = extra.get("type") or extra.get("questionType")
        return str(value) if value else None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Requests ---


class GenerationRequest(CamelModel):
    division: str = Field(min_length=1)
    model: str | None = None
    existing_items: list[GeneratedItem] = Field(default_factory=list)


class VocabularyRequest(GenerationRequest):
    passage: str = Field(min_length=1)
    terms: list[str] = Field(min_length=1)
    question_types: list[str] = Field(min_length=1)


class ParagraphRequest(GenerationRequest):
    title: str = Field(min_length=1)
    paragraphs: list[str] = Field(min_length=1)
    selected_paragraphs: list[int] = Field(min_length=1)
    question_types: list[str] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_selected_paragraphs(self) -> "ParagraphRequest":
        for number in self.selected_paragraphs:
            if number < 1 or number > len(self.paragraphs):
                raise ValueError(f"Invalid paragraph number: {number}")
        return self


class ComprehensiveRequest(GenerationRequest):
    passage: str = Field(min_length=1)
    subject: str = ""
    area: str = ""
    question_types: list[str] = Field(min_length=1)
    include_supplementary: bool | None = None


# --- Responses ---


class GroupSummary(CamelModel):
    by_group: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    basic: int = 0
    supplementary: int = 0


class GenerationResponse(CamelModel):
    workflow: str
    status: str
    message: str
    success_count: int
    failure_count: int
    first_prompt: str = ""
    items: list[dict[str, Any]] = Field(default_factory=list)
    new_item_count: int = 0
    groups: GroupSummary = Field(default_factory=GroupSummary)
    errors: dict[str, str] = Field(default_factory=dict)


class ModelsResponse(BaseModel):
    models: list[str]
    default: str
