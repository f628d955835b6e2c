"""PromptBench — application service tying storage, compilation, testing and analytics together.

Flow:
    questions + answers
      → compile_prompt (unless the caller supplies edited text)
      → Repository.insert_prompt (next version of the name)
      → TestRunner.run (completion API, rate-limit retry)
      → score_response
      → Repository.add_test_result
      → analytics

Usage:
    bench = PromptBench.from_env(get_env_config())
    prompt = bench.create_prompt(PromptCreate(name="ICP", questions=[...], answers={...}))
    result = await bench.run_test(TestRequest(prompt_id=prompt.id, json_data={"type": "text", "content": "..."}))
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import date
from typing import Any

from nfo.decorators import log_call

from promptbench.analytics import overall_analytics, prompt_analytics
from promptbench.compiler import compile_prompt
from promptbench.env_config import EnvConfig
from promptbench.errors import NotFoundError
from promptbench.llm_provider import LLMProvider
from promptbench.models import (
    AnalysisResult,
    Answer,
    DailyStats,
    Prompt,
    PromptComparison,
    PromptCreate,
    PromptDiff,
    PromptStats,
    PromptVersionCreate,
    Question,
    QuestionCreate,
    QuestionUpdate,
    TestRequest,
    TestResult,
)
from promptbench.prompt_registry import PromptRegistry, get_registry
from promptbench.runner import TestRunner
from promptbench.scorer import score_response
from promptbench.store import Repository, SQLiteStore

logger = logging.getLogger("promptbench.service")


def _new_id() -> str:
    return str(uuid.uuid4())


def _question_content(prompt: Prompt) -> list[dict[str, Any]]:
    # Snapshot creation times differ between versions even when nothing was edited.
    return [q.model_dump(exclude={"created_at"}) for q in prompt.questions]


class PromptBench:
    """Business operations over an injected Repository and TestRunner."""

    def __init__(
        self,
        store: Repository,
        runner: TestRunner,
        registry: PromptRegistry | None = None,
    ):
        self.store = store
        self.runner = runner
        self.registry = registry or get_registry()

    @classmethod
    def from_env(cls, env: EnvConfig) -> "PromptBench":
        registry = get_registry()
        provider = LLMProvider(env.provider_config(), api_key=env.api_key)
        return cls(
            store=SQLiteStore(env.db_path),
            runner=TestRunner(provider, registry=registry),
            registry=registry,
        )

    # ============================================================
    # Questions
    # ============================================================

    def list_questions(self) -> list[Question]:
        return self.store.list_questions()

    def get_question(self, question_id: str) -> Question:
        question = self.store.get_question(question_id)
        if question is None:
            raise NotFoundError("Question", question_id)
        return question

    def create_question(self, data: QuestionCreate) -> Question:
        question = Question(
            id=_new_id(),
            text=data.text,
            type=data.type,
            required=data.required,
            hard_filter=data.hard_filter,
            options=data.options or [],
            tags=data.tags,
        )
        return self.store.add_question(question)

    def update_question(self, question_id: str, changes: QuestionUpdate) -> Question:
        return self.store.save_question(changes.apply(self.get_question(question_id)))

    def delete_question(self, question_id: str) -> None:
        # Prompts keep their own question snapshots, so nothing depends on the row.
        if not self.store.delete_question(question_id):
            logger.debug(f"Delete of unknown question {question_id} ignored")

    # ============================================================
    # Prompts
    # ============================================================

    def compile(
        self,
        name: str,
        questions: Iterable[Question],
        answers: dict[str, Answer],
        excluded: Iterable[str] = (),
    ) -> str:
        return compile_prompt(name, questions, answers, excluded, registry=self.registry)

    @log_call
    def create_prompt(self, data: PromptCreate) -> Prompt:
        """Save a prompt as the next version of its name.

        ``generated_prompt`` is compiled from the answers unless the caller
        sends (possibly hand-edited) text, which is stored as-is.
        """
        excluded = set(data.excluded_question_ids)
        generated = data.generated_prompt
        if generated is None:
            generated = self.compile(data.name, data.questions, data.answers, excluded)

        draft = Prompt(
            id=_new_id(),
            name=data.name,
            questions=[q for q in data.questions if q.id not in excluded],
            answers=data.answers,
            generated_prompt=generated,
            tags=data.tags,
        )
        prompt = self.store.insert_prompt(draft)
        logger.info(f"Created prompt '{prompt.name}' v{prompt.version}")
        return prompt

    def create_version(self, base_prompt_id: str, data: PromptVersionCreate) -> Prompt:
        """Next version of the chain ``base_prompt_id`` belongs to; unset fields come from the base."""
        base = self.get_prompt(base_prompt_id)
        questions = data.questions if data.questions is not None else base.questions
        answers = data.answers if data.answers is not None else base.answers
        generated = data.generated_prompt
        if generated is None:
            if data.questions is None and data.answers is None and not data.excluded_question_ids:
                generated = base.generated_prompt
        return self.create_prompt(PromptCreate(
            name=base.name,
            questions=questions,
            answers=answers,
            generated_prompt=generated,
            excluded_question_ids=data.excluded_question_ids,
            tags=data.tags if data.tags is not None else base.tags,
        ))

    def get_prompt(self, prompt_id: str) -> Prompt:
        prompt = self.store.get_prompt(prompt_id)
        if prompt is None:
            raise NotFoundError("Prompt", prompt_id)
        return prompt

    def list_prompts(self) -> list[Prompt]:
        return self.store.list_prompts()

    def list_versions(self, name: str) -> list[Prompt]:
        return self.store.list_versions(name)

    def clone_prompt(self, prompt_id: str, name: str | None = None) -> Prompt:
        original = self.get_prompt(prompt_id)
        return self.create_prompt(PromptCreate(
            name=name or f"{original.name} (Copy)",
            questions=original.questions,
            answers=original.answers,
            generated_prompt=original.generated_prompt,
            tags=original.tags,
        ))

    def compare_prompts(self, prompt_id: str, other_id: str) -> PromptComparison:
        current = self.store.get_prompt(prompt_id)
        other = self.store.get_prompt(other_id)
        if current is None or other is None:
            raise NotFoundError("Prompt", prompt_id if current is None else other_id)
        return PromptComparison(
            current=current,
            version=other,
            comparison=PromptDiff(
                questions_changed=_question_content(current) != _question_content(other),
                answers_changed=current.answers != other.answers,
                prompt_changed=current.generated_prompt != other.generated_prompt,
            ),
        )

    def delete_prompt(self, prompt_id: str, cascade: bool = True) -> None:
        if not self.store.delete_prompt(prompt_id, cascade=cascade):
            raise NotFoundError("Prompt", prompt_id)
        logger.info(f"Deleted prompt {prompt_id}")

    # ============================================================
    # Testing
    # ============================================================

    async def run_test(self, request: TestRequest) -> TestResult:
        """Run a prompt against uploaded data and persist the scored result.

        Nothing is stored when the completion call fails.
        """
        prompt = self.get_prompt(request.prompt_id)
        completion = await self.runner.run(prompt, request.json_data)
        score = score_response(completion.content)

        result = TestResult(
            id=_new_id(),
            prompt_id=prompt.id,
            prompt_name=prompt.name,
            prompt_version=prompt.version,
            json_data=request.json_data,
            result=AnalysisResult(
                summary=f"Analysis of JSON data using custom prompt: {prompt.name}",
                insights=score.insights,
                confidence=score.confidence,
                processing_time_ms=completion.elapsed_ms,
                chat_gpt_response=completion.content,
                model=completion.model,
                tokens_used=completion.tokens_used,
                cost_usd=completion.cost_usd,
            ),
        )
        return self.store.add_test_result(result)

    def list_results(self, prompt_id: str | None = None) -> list[TestResult]:
        return self.store.list_test_results(prompt_id)

    # ============================================================
    # Analytics
    # ============================================================

    def prompt_analytics(
        self,
        prompt_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[DailyStats]:
        return prompt_analytics(self.store.list_test_results(prompt_id), prompt_id, start_date, end_date)

    def overall_analytics(self) -> list[PromptStats]:
        return overall_analytics(self.store.list_prompts(), self.store.list_test_results())

    def close(self) -> None:
        self.store.close()

    def describe(self) -> dict[str, Any]:
        return {
            "store": type(self.store).__name__,
            "model": self.runner.provider.config.model,
        }
