"""Data models for promptbench — all inputs/outputs are Pydantic v2 validated.

Field names are snake_case in Python and camelCase on the wire
(``hard_filter`` ↔ ``hardFilter``); both spellings are accepted on input.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

from promptbench.errors import InvalidRequestError

Answer = Union[str, list[str]]
Day = date


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict[str, Any]:
        """Dump with camelCase keys, JSON-safe values."""
        return self.model_dump(by_alias=True, mode="json")


# ============================================================
# Questions
# ============================================================

class QuestionType(str, enum.Enum):
    TEXT = "text"
    SELECT = "select"
    MULTISELECT = "multiselect"


def _normalize_options(qtype: QuestionType | None, options: list[str] | None) -> list[str] | None:
    if qtype is None:
        return options
    if qtype == QuestionType.TEXT:
        return []
    if not options:
        raise ValueError(f"options are required for '{qtype.value}' questions")
    return options


class Question(_Model):
    id: str
    text: str
    type: QuestionType = QuestionType.TEXT
    required: bool = False
    hard_filter: bool = False
    options: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class QuestionCreate(_Model):
    text: str = Field(min_length=1)
    type: QuestionType = QuestionType.TEXT
    required: bool = False
    hard_filter: bool = False
    options: list[str] | None = None
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_options(self) -> "QuestionCreate":
        self.options = _normalize_options(self.type, self.options)
        return self


class QuestionUpdate(_Model):
    """Field-level update: only fields explicitly sent are applied."""
    text: str | None = Field(default=None, min_length=1)
    type: QuestionType | None = None
    required: bool | None = None
    hard_filter: bool | None = None
    options: list[str] | None = None
    tags: list[str] | None = None

    @field_validator("text", "type", "required", "hard_filter", "tags", mode="before")
    @classmethod
    def _reject_null(cls, value: Any, info: ValidationInfo) -> Any:
        # Omitted means "keep"; an explicit null is not a value these fields can hold.
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    def apply(self, question: Question) -> Question:
        """Merged question, re-validated as a whole.

        Raises:
            InvalidRequestError: the merged question is not valid (e.g. a
                select question left without options).
        """
        merged = {**question.model_dump(), **self.model_dump(exclude_unset=True)}
        try:
            merged["options"] = _normalize_options(merged["type"], merged["options"]) or []
            return Question.model_validate(merged)
        except ValueError as e:
            raise InvalidRequestError("Invalid question update", details=str(e)) from e


# ============================================================
# Prompts
# ============================================================

class Prompt(_Model):
    id: str
    name: str
    base_prompt_id: str | None = None
    version: int = Field(default=1, ge=1)
    questions: list[Question] = Field(default_factory=list)
    answers: dict[str, Answer] = Field(default_factory=dict)
    generated_prompt: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    # Filled by listings only.
    test_count: int | None = None
    last_test: datetime | None = None


class PromptCreate(_Model):
    name: str = Field(min_length=1)
    questions: list[Question] = Field(default_factory=list)
    answers: dict[str, Answer] = Field(default_factory=dict)
    generated_prompt: str | None = None
    excluded_question_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class PromptVersionCreate(_Model):
    """New version of an existing prompt; omitted fields are carried over from the base."""
    questions: list[Question] | None = None
    answers: dict[str, Answer] | None = None
    generated_prompt: str | None = None
    excluded_question_ids: list[str] = Field(default_factory=list)
    tags: list[str] | None = None


class PromptClone(_Model):
    name: str | None = None


class PromptDiff(_Model):
    questions_changed: bool = False
    answers_changed: bool = False
    prompt_changed: bool = False


class PromptComparison(_Model):
    current: Prompt
    version: Prompt
    comparison: PromptDiff


class CompilePreview(_Model):
    name: str = ""
    questions: list[Question] = Field(default_factory=list)
    answers: dict[str, Answer] = Field(default_factory=dict)
    excluded_question_ids: list[str] = Field(default_factory=list)


# ============================================================
# Test results
# ============================================================

class DataKind(str, enum.Enum):
    TEXT = "text"
    JSON = "json"


def data_kind(payload: Any) -> DataKind:
    """Uploaded text is wrapped as {"type": "text", "content": ...}; anything else is JSON."""
    if isinstance(payload, dict) and payload.get("type") == DataKind.TEXT.value:
        return DataKind.TEXT
    return DataKind.JSON


class AnalysisResult(_Model):
    summary: str = ""
    insights: list[str] = Field(default_factory=list, max_length=5)
    confidence: float = Field(default=0.5, ge=0.0, le=0.95)
    processing_time_ms: int = 0
    chat_gpt_response: str = Field(default="", alias="chatGPTResponse")
    model: str = ""
    tokens_used: int = 0
    cost_usd: float = 0.0


class TestResult(_Model):
    __test__: ClassVar[bool] = False

    id: str
    prompt_id: str
    prompt_name: str
    prompt_version: int = 1
    json_data: Any = None
    result: AnalysisResult
    success: bool = True
    error_message: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def json_type(self) -> DataKind:
        return data_kind(self.json_data)


class TestRequest(_Model):
    __test__: ClassVar[bool] = False

    prompt_id: str = Field(min_length=1)
    json_data: Any

    @model_validator(mode="after")
    def _check_data(self) -> "TestRequest":
        if self.json_data is None:
            raise ValueError("jsonData is required")
        return self


class UploadResult(_Model):
    filename: str
    original_name: str
    data: Any
    size: int
    file_type: str = ""


# ============================================================
# Analytics
# ============================================================

class DailyStats(_Model):
    date: Day
    total_tests: int = 0
    avg_confidence: float | None = None
    avg_processing_time: float | None = None
    success_rate: float | None = None
    total_tokens: int = 0
    total_cost: float = 0.0


class PromptStats(_Model):
    prompt_id: str
    prompt_name: str
    version: int = 1
    total_tests: int = 0
    avg_confidence: float | None = None
    avg_processing_time: float | None = None
    success_rate: float | None = None
    last_test: datetime | None = None
    total_tokens: int = 0
    total_cost: float = 0.0


# ============================================================
# LLM provider config
# ============================================================

class LLMProviderConfig(BaseModel):
    """Completion call settings and the rate-limit retry policy."""
    model: str = "gpt-4"
    max_tokens: int = 1000
    temperature: float = 0.7
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = 2.0
    timeout: int | None = None
