"""Tests for the repositories — versioning, listings and referential integrity on both backends."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from promptbench.errors import NotFoundError, ReferentialIntegrityError
from promptbench.models import AnalysisResult, Prompt, Question, QuestionType, TestResult
from promptbench.store import MemoryStore, SQLiteStore
from promptbench.versioning import assign_version, resolve_version


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        repo = MemoryStore()
    else:
        repo = SQLiteStore(tmp_path / "db" / "prompt_tester.db")
    yield repo
    repo.close()


_counter = iter(range(10_000))


def _draft(name: str = "ICP", **kw) -> Prompt:
    return Prompt(id=f"p-{next(_counter)}", name=name, generated_prompt=kw.pop("generated_prompt", "text"), **kw)


def _result(prompt: Prompt, confidence: float = 0.6, ts: datetime | None = None) -> TestResult:
    return TestResult(
        id=f"r-{next(_counter)}",
        prompt_id=prompt.id,
        prompt_name=prompt.name,
        prompt_version=prompt.version,
        json_data={"a": 1},
        result=AnalysisResult(summary="s", insights=["i"], confidence=confidence, processing_time_ms=10),
        timestamp=ts or datetime.now(timezone.utc),
    )


class TestVersionResolution:
    def test_first_version(self):
        slot = resolve_version(None)
        assert slot.version == 1
        assert slot.base_prompt_id is None

    def test_next_version(self):
        latest = Prompt(id="abc", name="n", version=4)
        slot = resolve_version(latest)
        assert slot.version == 5
        assert slot.base_prompt_id == "abc"

    def test_assign_ignores_draft_fields(self):
        draft = Prompt(id="new", name="n", version=9, base_prompt_id="bogus")
        assigned = assign_version(draft, None)
        assert assigned.version == 1
        assert assigned.base_prompt_id is None
        assert draft.version == 9


class TestQuestions:
    def test_add_get_list(self, store):
        q1 = store.add_question(Question(id="q1", text="Industry"))
        store.add_question(Question(
            id="q2", text="Regions", type=QuestionType.MULTISELECT, options=["EU", "US"], hard_filter=True,
        ))
        assert store.get_question("q1") == q1
        fetched = store.get_question("q2")
        assert fetched.type == QuestionType.MULTISELECT
        assert fetched.options == ["EU", "US"]
        assert fetched.hard_filter is True
        assert {q.id for q in store.list_questions()} == {"q1", "q2"}

    def test_save(self, store):
        q = store.add_question(Question(id="q1", text="Old"))
        store.save_question(q.model_copy(update={"text": "New", "required": True}))
        fetched = store.get_question("q1")
        assert fetched.text == "New"
        assert fetched.required is True

    def test_delete(self, store):
        store.add_question(Question(id="q1", text="Industry"))
        assert store.delete_question("q1") is True
        assert store.delete_question("q1") is False
        assert store.get_question("q1") is None


class TestPromptVersioning:
    def test_sequential_versions(self, store):
        v1 = store.insert_prompt(_draft())
        v2 = store.insert_prompt(_draft())
        v3 = store.insert_prompt(_draft())
        assert (v1.version, v2.version, v3.version) == (1, 2, 3)
        assert v1.base_prompt_id is None
        assert v2.base_prompt_id == v1.id
        assert v3.base_prompt_id == v2.id

    def test_names_are_independent(self, store):
        store.insert_prompt(_draft("A"))
        store.insert_prompt(_draft("A"))
        b = store.insert_prompt(_draft("B"))
        assert b.version == 1
        assert b.base_prompt_id is None

    def test_list_versions(self, store):
        for _ in range(3):
            store.insert_prompt(_draft("A"))
        store.insert_prompt(_draft("B"))
        assert [p.version for p in store.list_versions("A")] == [3, 2, 1]
        assert store.list_versions("missing") == []

    def test_snapshot_roundtrip(self, store):
        q = Question(id="q1", text="Regions", type=QuestionType.MULTISELECT, options=["EU"])
        saved = store.insert_prompt(_draft(questions=[q], answers={"q1": ["EU"]}, tags=["icp"]))
        fetched = store.get_prompt(saved.id)
        assert fetched.questions[0].id == "q1"
        assert fetched.questions[0].options == ["EU"]
        assert fetched.answers == {"q1": ["EU"]}
        assert fetched.tags == ["icp"]
        assert fetched.generated_prompt == "text"

    def test_concurrent_inserts_get_distinct_versions(self, store):
        created: list[Prompt] = []
        lock = threading.Lock()

        def worker():
            p = store.insert_prompt(_draft("Race"))
            with lock:
                created.append(p)

        threads = [threading.Thread(target=worker) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(p.version for p in created) == list(range(1, 13))

    def test_concurrent_inserts_across_connections(self, tmp_path):
        path = tmp_path / "shared.db"
        stores = [SQLiteStore(path), SQLiteStore(path)]
        errors: list[Exception] = []

        def worker(repo):
            try:
                for _ in range(5):
                    repo.insert_prompt(_draft("Shared"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(s,)) for s in stores]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert [p.version for p in stores[0].list_versions("Shared")] == list(range(10, 0, -1))
        for s in stores:
            s.close()


class TestPromptListing:
    def test_counts_and_last_test(self, store):
        p = store.insert_prompt(_draft())
        untested = store.insert_prompt(_draft("Other"))
        older = datetime(2026, 1, 1, tzinfo=timezone.utc)
        store.add_test_result(_result(p, ts=older))
        store.add_test_result(_result(p, ts=older + timedelta(hours=1)))

        listed = {x.id: x for x in store.list_prompts()}
        assert listed[p.id].test_count == 2
        assert listed[p.id].last_test == older + timedelta(hours=1)
        assert listed[untested.id].test_count == 0
        assert listed[untested.id].last_test is None

    def test_newest_first(self, store):
        a = store.insert_prompt(_draft("A"))
        b = store.insert_prompt(_draft("B"))
        assert [p.id for p in store.list_prompts()] == [b.id, a.id]


class TestTestResults:
    def test_filter_and_order(self, store):
        p1 = store.insert_prompt(_draft("A"))
        p2 = store.insert_prompt(_draft("B"))
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        r1 = store.add_test_result(_result(p1, ts=base))
        r2 = store.add_test_result(_result(p1, ts=base + timedelta(minutes=5)))
        r3 = store.add_test_result(_result(p2, ts=base + timedelta(minutes=1)))

        assert [r.id for r in store.list_test_results(p1.id)] == [r2.id, r1.id]
        assert [r.id for r in store.list_test_results()] == [r2.id, r3.id, r1.id]

    def test_roundtrip(self, store):
        p = store.insert_prompt(_draft())
        saved = store.add_test_result(_result(p, confidence=0.75))
        fetched = store.list_test_results(p.id)[0]
        assert fetched.id == saved.id
        assert fetched.json_data == {"a": 1}
        assert fetched.result.confidence == 0.75
        assert fetched.result.insights == ["i"]
        assert fetched.timestamp == saved.timestamp

    def test_unknown_prompt_rejected(self, store):
        orphan = _result(Prompt(id="ghost", name="ghost"))
        with pytest.raises(NotFoundError):
            store.add_test_result(orphan)

    def test_deleted_prompt_rejected(self, store):
        p = store.insert_prompt(_draft())
        store.delete_prompt(p.id)
        with pytest.raises(NotFoundError) as exc:
            store.add_test_result(_result(p))
        assert exc.value.status_code == 404
        assert exc.value.message == "Prompt not found"
        assert store.list_test_results() == []


class TestPromptDeletion:
    def test_missing_returns_false(self, store):
        assert store.delete_prompt("nope") is False

    def test_cascade_removes_results(self, store):
        p = store.insert_prompt(_draft())
        store.add_test_result(_result(p))
        assert store.delete_prompt(p.id) is True
        assert store.get_prompt(p.id) is None
        assert store.list_test_results(p.id) == []

    def test_results_block_without_cascade(self, store):
        p = store.insert_prompt(_draft())
        store.add_test_result(_result(p))
        with pytest.raises(ReferentialIntegrityError) as exc:
            store.delete_prompt(p.id, cascade=False)
        assert exc.value.status_code == 400
        assert exc.value.message.startswith("Cannot delete prompt")
        assert store.get_prompt(p.id) is not None
        assert len(store.list_test_results(p.id)) == 1

    def test_later_version_blocks_delete(self, store):
        v1 = store.insert_prompt(_draft())
        v2 = store.insert_prompt(_draft())
        store.add_test_result(_result(v1))
        with pytest.raises(ReferentialIntegrityError):
            store.delete_prompt(v1.id)
        # Nothing removed, including v1's results
        assert store.get_prompt(v1.id) is not None
        assert len(store.list_test_results(v1.id)) == 1
        # Deleting from the newest end works
        assert store.delete_prompt(v2.id) is True
        assert store.delete_prompt(v1.id) is True

    def test_version_after_deleting_latest(self, store):
        store.insert_prompt(_draft())
        v2 = store.insert_prompt(_draft())
        store.delete_prompt(v2.id)
        v2_again = store.insert_prompt(_draft())
        assert v2_again.version == 2


class TestSQLitePersistence:
    def test_reopen(self, tmp_path):
        path = tmp_path / "bench.db"
        first = SQLiteStore(path)
        p = first.insert_prompt(_draft())
        first.add_test_result(_result(p))
        first.close()

        second = SQLiteStore(path)
        assert second.get_prompt(p.id).name == "ICP"
        assert len(second.list_test_results()) == 1
        assert second.insert_prompt(_draft()).version == 2
        second.close()
