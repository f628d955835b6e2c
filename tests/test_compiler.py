"""Tests for the prompt compiler — answered questions → analysis prompt text."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from promptbench.compiler import answered_lines, compile_prompt, format_answer
from promptbench.models import Question, QuestionType
from promptbench.prompt_registry import PromptRegistry


def _q(qid: str, text: str, qtype: QuestionType = QuestionType.TEXT, options: list[str] | None = None) -> Question:
    return Question(id=qid, text=text, type=qtype, options=options or [])


@pytest.fixture
def questions() -> list[Question]:
    return [
        _q("q1", "Industry"),
        _q("q2", "Regions", QuestionType.MULTISELECT, ["EU", "US", "APAC"]),
        _q("q3", "Company size", QuestionType.SELECT, ["Small", "Large"]),
    ]


class TestFormatAnswer:
    def test_string(self):
        assert format_answer("Retail") == "Retail"

    def test_list_joined(self):
        assert format_answer(["EU", "US"]) == "EU, US"

    def test_empty(self):
        assert format_answer(None) == ""
        assert format_answer("") == ""
        assert format_answer([]) == ""


class TestAnsweredLines:
    def test_question_order_kept(self, questions):
        lines = answered_lines(questions, {"q3": "Large", "q1": "Retail"})
        assert [l["text"] for l in lines] == ["Industry", "Company size"]

    def test_excluded_and_unanswered_skipped(self, questions):
        answers = {"q1": "Retail", "q2": ["EU"], "q3": ""}
        lines = answered_lines(questions, answers, excluded={"q1"})
        assert lines == [{"text": "Regions", "answer": "EU"}]

    def test_unknown_answer_keys_ignored(self, questions):
        assert answered_lines(questions, {"nope": "x"}) == []


class TestCompilePrompt:
    def test_exact_layout(self):
        text = compile_prompt("X", [_q("q", "q")], {"q": "a"})
        assert text == (
            "Custom Analysis Prompt\n"
            "\n"
            "Name: X\n"
            "\n"
            "Context:\n"
            "All answers define our customers ICP for webshop matching\n"
            "- q: a\n"
            "\n"
            "Instructions: Analyze JSON data with focus on patterns and recommendations.\n"
        )

    def test_multiselect_joined(self, questions):
        text = compile_prompt("ICP", questions, {"q2": ["EU", "US"]})
        assert "- Regions: EU, US\n" in text

    def test_exclusion(self, questions):
        text = compile_prompt("ICP", questions, {"q1": "Retail", "q3": "Small"}, excluded=["q1"])
        assert "Industry" not in text
        assert "- Company size: Small\n" in text

    def test_no_answers(self, questions):
        text = compile_prompt("Empty", questions, {})
        assert "Context:\nAll answers define our customers ICP for webshop matching\n\nInstructions:" in text

    def test_custom_registry(self, tmp_path: Path):
        path = tmp_path / "prompts.yaml"
        path.write_text(yaml.dump({"prompts": {"compile": {
            "system": "{{ name }}|{% for item in lines %}{{ item.text }}={{ item.answer }};{% endfor %}",
        }}}))
        text = compile_prompt("N", [_q("a", "A")], {"a": "1"}, registry=PromptRegistry(path))
        assert text == "N|A=1;"
