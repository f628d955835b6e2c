"""Repositories for questions, prompts and test results.

Backends:
    SQLiteStore — single database file, structured fields as JSON text columns.
    MemoryStore — in-process dicts with the same semantics (tests, ephemeral runs).

Both assign prompt versions atomically (see promptbench.versioning) and
refuse to delete a prompt that a later version still points to.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from promptbench.errors import NotFoundError, ReferentialIntegrityError
from promptbench.models import AnalysisResult, Prompt, Question, TestResult
from promptbench.versioning import assign_version

logger = logging.getLogger("promptbench.store")

_DEFAULT_DB_PATH = ".promptbench/prompt_tester.db"


class Repository(ABC):
    """Storage interface used by the service layer."""

    # Questions
    @abstractmethod
    def list_questions(self) -> list[Question]: ...

    @abstractmethod
    def get_question(self, question_id: str) -> Question | None: ...

    @abstractmethod
    def add_question(self, question: Question) -> Question: ...

    @abstractmethod
    def save_question(self, question: Question) -> Question: ...

    @abstractmethod
    def delete_question(self, question_id: str) -> bool: ...

    # Prompts
    @abstractmethod
    def insert_prompt(self, draft: Prompt) -> Prompt:
        """Insert as the next version of ``draft.name``; version fields of the draft are ignored."""

    @abstractmethod
    def get_prompt(self, prompt_id: str) -> Prompt | None: ...

    @abstractmethod
    def list_prompts(self) -> list[Prompt]:
        """Newest first, with ``test_count`` and ``last_test`` filled in."""

    @abstractmethod
    def list_versions(self, name: str) -> list[Prompt]:
        """All prompts with this name, highest version first."""

    @abstractmethod
    def delete_prompt(self, prompt_id: str, cascade: bool = True) -> bool:
        """Delete a prompt, first removing its test results when ``cascade`` is set.

        Raises:
            ReferentialIntegrityError: test results remain (cascade off) or a
                later version references this prompt.
        """

    # Test results
    @abstractmethod
    def add_test_result(self, result: TestResult) -> TestResult:
        """Store a result for an existing prompt.

        Raises:
            NotFoundError: the prompt does not exist (e.g. deleted while the test ran).
        """

    @abstractmethod
    def list_test_results(self, prompt_id: str | None = None) -> list[TestResult]:
        """Newest first, optionally for one prompt."""

    def close(self) -> None:
        pass


# ============================================================
# In-memory backend
# ============================================================

class MemoryStore(Repository):
    """Dict-backed repository; a lock makes version assignment atomic."""

    def __init__(self) -> None:
        self._questions: dict[str, Question] = {}
        self._prompts: dict[str, Prompt] = {}
        self._results: dict[str, TestResult] = {}
        self._lock = threading.RLock()

    def list_questions(self) -> list[Question]:
        with self._lock:
            return list(reversed(self._questions.values()))

    def get_question(self, question_id: str) -> Question | None:
        return self._questions.get(question_id)

    def add_question(self, question: Question) -> Question:
        with self._lock:
            self._questions[question.id] = question
        return question

    def save_question(self, question: Question) -> Question:
        with self._lock:
            self._questions[question.id] = question
        return question

    def delete_question(self, question_id: str) -> bool:
        with self._lock:
            return self._questions.pop(question_id, None) is not None

    def insert_prompt(self, draft: Prompt) -> Prompt:
        with self._lock:
            versions = self._versions(draft.name)
            prompt = assign_version(draft, versions[0] if versions else None)
            self._prompts[prompt.id] = prompt
        logger.debug(f"Stored prompt '{prompt.name}' v{prompt.version} ({prompt.id})")
        return prompt

    def get_prompt(self, prompt_id: str) -> Prompt | None:
        return self._prompts.get(prompt_id)

    def list_prompts(self) -> list[Prompt]:
        with self._lock:
            listed = []
            for prompt in reversed(self._prompts.values()):
                results = [r for r in self._results.values() if r.prompt_id == prompt.id]
                listed.append(prompt.model_copy(update={
                    "test_count": len(results),
                    "last_test": max((r.timestamp for r in results), default=None),
                }))
            return listed

    def list_versions(self, name: str) -> list[Prompt]:
        with self._lock:
            return self._versions(name)

    def _versions(self, name: str) -> list[Prompt]:
        return sorted(
            (p for p in self._prompts.values() if p.name == name),
            key=lambda p: p.version,
            reverse=True,
        )

    def delete_prompt(self, prompt_id: str, cascade: bool = True) -> bool:
        with self._lock:
            if prompt_id not in self._prompts:
                return False
            dependents = [p.id for p in self._prompts.values() if p.base_prompt_id == prompt_id]
            if dependents:
                raise ReferentialIntegrityError(f"referenced by prompt(s): {', '.join(dependents)}")
            result_ids = [rid for rid, r in self._results.items() if r.prompt_id == prompt_id]
            if result_ids and not cascade:
                raise ReferentialIntegrityError(f"{len(result_ids)} test result(s) reference this prompt")
            for rid in result_ids:
                del self._results[rid]
            del self._prompts[prompt_id]
        return True

    def add_test_result(self, result: TestResult) -> TestResult:
        with self._lock:
            if result.prompt_id not in self._prompts:
                raise NotFoundError("Prompt", result.prompt_id)
            self._results[result.id] = result
        return result

    def list_test_results(self, prompt_id: str | None = None) -> list[TestResult]:
        with self._lock:
            results = [r for r in self._results.values() if prompt_id is None or r.prompt_id == prompt_id]
        return sorted(results, key=lambda r: r.timestamp, reverse=True)


# ============================================================
# SQLite backend
# ============================================================

_SCHEMA = """
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    text TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'text',
    required INTEGER DEFAULT 0,
    hardFilter INTEGER DEFAULT 0,
    options TEXT,
    tags TEXT DEFAULT '[]',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prompts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    base_prompt_id TEXT,
    version INTEGER DEFAULT 1,
    questions TEXT NOT NULL,
    answers TEXT NOT NULL,
    generated_prompt TEXT NOT NULL,
    tags TEXT DEFAULT '[]',
    created_at TEXT NOT NULL,
    FOREIGN KEY (base_prompt_id) REFERENCES prompts(id)
);

CREATE TABLE IF NOT EXISTS test_results (
    id TEXT PRIMARY KEY,
    prompt_id TEXT NOT NULL,
    prompt_name TEXT NOT NULL,
    prompt_version INTEGER DEFAULT 1,
    json_data TEXT NOT NULL,
    json_type TEXT DEFAULT 'json',
    result_summary TEXT NOT NULL,
    result_insights TEXT,
    confidence REAL DEFAULT 0.0,
    processing_time INTEGER DEFAULT 0,
    chatgpt_response TEXT,
    model TEXT,
    tokens_used INTEGER DEFAULT 0,
    cost_usd REAL DEFAULT 0.0,
    success INTEGER DEFAULT 1,
    error_message TEXT,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (prompt_id) REFERENCES prompts(id)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_prompts_name_version ON prompts(name, version);
CREATE INDEX IF NOT EXISTS idx_prompts_base_id ON prompts(base_prompt_id);
CREATE INDEX IF NOT EXISTS idx_test_results_prompt_id ON test_results(prompt_id);
CREATE INDEX IF NOT EXISTS idx_test_results_timestamp ON test_results(timestamp);
"""


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


class SQLiteStore(Repository):
    """Single-file SQLite repository.

    Usage:
        store = SQLiteStore(".promptbench/prompt_tester.db")
        prompt = store.insert_prompt(draft)
        store.close()
    """

    def __init__(self, path: str | Path = _DEFAULT_DB_PATH):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode; multi-statement writes open explicit transactions.
        conn = sqlite3.connect(str(self.path), check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(_SCHEMA)
        logger.debug(f"SQLite database ready at {self.path}")
        return conn

    # ---------------- questions ----------------

    def list_questions(self) -> list[Question]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM questions ORDER BY created_at DESC, rowid DESC").fetchall()
        return [self._row_to_question(r) for r in rows]

    def get_question(self, question_id: str) -> Question | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM questions WHERE id = ?", (question_id,)).fetchone()
        return self._row_to_question(row) if row else None

    def add_question(self, question: Question) -> Question:
        with self._lock:
            self._conn.execute(
                "INSERT INTO questions (id, text, type, required, hardFilter, options, tags, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    question.id,
                    question.text,
                    question.type.value,
                    int(question.required),
                    int(question.hard_filter),
                    json.dumps(question.options),
                    json.dumps(question.tags),
                    _ts(question.created_at),
                ),
            )
        return question

    def save_question(self, question: Question) -> Question:
        with self._lock:
            self._conn.execute(
                "UPDATE questions SET text = ?, type = ?, required = ?, hardFilter = ?, options = ?, tags = ? "
                "WHERE id = ?",
                (
                    question.text,
                    question.type.value,
                    int(question.required),
                    int(question.hard_filter),
                    json.dumps(question.options),
                    json.dumps(question.tags),
                    question.id,
                ),
            )
        return question

    def delete_question(self, question_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM questions WHERE id = ?", (question_id,))
        return cur.rowcount > 0

    @staticmethod
    def _row_to_question(row: sqlite3.Row) -> Question:
        return Question(
            id=row["id"],
            text=row["text"],
            type=row["type"],
            required=bool(row["required"]),
            hard_filter=bool(row["hardFilter"]),
            options=json.loads(row["options"]) if row["options"] else [],
            tags=json.loads(row["tags"] or "[]"),
            created_at=row["created_at"],
        )

    # ---------------- prompts ----------------

    def insert_prompt(self, draft: Prompt) -> Prompt:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT * FROM prompts WHERE name = ? ORDER BY version DESC LIMIT 1",
                    (draft.name,),
                ).fetchone()
                prompt = assign_version(draft, self._row_to_prompt(row) if row else None)
                self._conn.execute(
                    "INSERT INTO prompts (id, name, base_prompt_id, version, questions, answers, "
                    "generated_prompt, tags, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        prompt.id,
                        prompt.name,
                        prompt.base_prompt_id,
                        prompt.version,
                        json.dumps([q.to_api() for q in prompt.questions]),
                        json.dumps(prompt.answers),
                        prompt.generated_prompt,
                        json.dumps(prompt.tags),
                        _ts(prompt.created_at),
                    ),
                )
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        logger.debug(f"Stored prompt '{prompt.name}' v{prompt.version} ({prompt.id})")
        return prompt

    def get_prompt(self, prompt_id: str) -> Prompt | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM prompts WHERE id = ?", (prompt_id,)).fetchone()
        return self._row_to_prompt(row) if row else None

    def list_prompts(self) -> list[Prompt]:
        with self._lock:
            rows = self._conn.execute("""
                SELECT p.*, COUNT(tr.id) AS test_count, MAX(tr.timestamp) AS last_test
                FROM prompts p
                LEFT JOIN test_results tr ON p.id = tr.prompt_id
                GROUP BY p.id
                ORDER BY p.created_at DESC, p.rowid DESC
            """).fetchall()
        return [
            self._row_to_prompt(r).model_copy(update={
                "test_count": r["test_count"] or 0,
                "last_test": datetime.fromisoformat(r["last_test"]) if r["last_test"] else None,
            })
            for r in rows
        ]

    def list_versions(self, name: str) -> list[Prompt]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM prompts WHERE name = ? ORDER BY version DESC", (name,)
            ).fetchall()
        return [self._row_to_prompt(r) for r in rows]

    def delete_prompt(self, prompt_id: str, cascade: bool = True) -> bool:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                if cascade:
                    self._conn.execute("DELETE FROM test_results WHERE prompt_id = ?", (prompt_id,))
                cur = self._conn.execute("DELETE FROM prompts WHERE id = ?", (prompt_id,))
            except sqlite3.IntegrityError as e:
                self._conn.execute("ROLLBACK")
                raise ReferentialIntegrityError(str(e)) from e
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return cur.rowcount > 0

    @staticmethod
    def _row_to_prompt(row: sqlite3.Row) -> Prompt:
        return Prompt(
            id=row["id"],
            name=row["name"],
            base_prompt_id=row["base_prompt_id"],
            version=row["version"],
            questions=json.loads(row["questions"]),
            answers=json.loads(row["answers"]),
            generated_prompt=row["generated_prompt"],
            tags=json.loads(row["tags"] or "[]"),
            created_at=row["created_at"],
        )

    # ---------------- test results ----------------

    def add_test_result(self, result: TestResult) -> TestResult:
        r = result.result
        with self._lock:
            try:
                self._conn.execute(
                    """INSERT INTO test_results (
                        id, prompt_id, prompt_name, prompt_version, json_data, json_type,
                        result_summary, result_insights, confidence, processing_time,
                        chatgpt_response, model, tokens_used, cost_usd, success, error_message, timestamp
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        result.id,
                        result.prompt_id,
                        result.prompt_name,
                        result.prompt_version,
                        json.dumps(result.json_data),
                        result.json_type.value,
                        r.summary,
                        json.dumps(r.insights),
                        r.confidence,
                        r.processing_time_ms,
                        r.chat_gpt_response,
                        r.model,
                        r.tokens_used,
                        r.cost_usd,
                        int(result.success),
                        result.error_message,
                        _ts(result.timestamp),
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "FOREIGN KEY" not in str(e):
                    raise
                raise NotFoundError("Prompt", result.prompt_id) from e
        return result

    def list_test_results(self, prompt_id: str | None = None) -> list[TestResult]:
        query = "SELECT * FROM test_results"
        params: tuple[Any, ...] = ()
        if prompt_id is not None:
            query += " WHERE prompt_id = ?"
            params = (prompt_id,)
        query += " ORDER BY timestamp DESC, rowid DESC"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_result(r) for r in rows]

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> TestResult:
        return TestResult(
            id=row["id"],
            prompt_id=row["prompt_id"],
            prompt_name=row["prompt_name"],
            prompt_version=row["prompt_version"],
            json_data=json.loads(row["json_data"]),
            result=AnalysisResult(
                summary=row["result_summary"],
                insights=json.loads(row["result_insights"]) if row["result_insights"] else [],
                confidence=row["confidence"],
                processing_time_ms=row["processing_time"],
                chat_gpt_response=row["chatgpt_response"] or "",
                model=row["model"] or "",
                tokens_used=row["tokens_used"] or 0,
                cost_usd=row["cost_usd"] or 0.0,
            ),
            success=bool(row["success"]),
            error_message=row["error_message"],
            timestamp=row["timestamp"],
        )

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
