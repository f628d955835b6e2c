"""Prompt compiler — turns answered questions into the analysis prompt text.

The layout (preamble, one "- question: answer" line per answered question,
trailing instruction) comes from the "compile" template in configs/prompts.yaml.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from nfo.decorators import log_call

from promptbench.models import Question
from promptbench.prompt_registry import PromptRegistry, get_registry

logger = logging.getLogger("promptbench.compiler")


def format_answer(answer: Any) -> str:
    """Render one answer; list answers are joined with ", ". Empty answers render as ""."""
    if answer is None:
        return ""
    if isinstance(answer, (list, tuple)):
        return ", ".join(str(a) for a in answer)
    return str(answer)


def answered_lines(
    questions: Iterable[Question],
    answers: Mapping[str, Any],
    excluded: Iterable[str] = (),
) -> list[dict[str, str]]:
    """Question/answer pairs that make it into the prompt, in question order."""
    skip = set(excluded)
    lines = []
    for question in questions:
        if question.id in skip:
            continue
        rendered = format_answer(answers.get(question.id))
        if rendered == "":
            continue
        lines.append({"text": question.text, "answer": rendered})
    return lines


@log_call
def compile_prompt(
    name: str,
    questions: Iterable[Question],
    answers: Mapping[str, Any],
    excluded: Iterable[str] = (),
    registry: PromptRegistry | None = None,
) -> str:
    """Build the prompt text for a named questionnaire.

    Excluded questions and questions without an answer are left out. The
    result may be edited by the user before it is saved; saved text is
    never re-validated against the questions.
    """
    lines = answered_lines(questions, answers, excluded)
    logger.debug(f"Compiling prompt '{name}' with {len(lines)} answered questions")
    return (registry or get_registry()).get("compile", name=name, lines=lines)
