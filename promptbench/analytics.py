"""Analytics — aggregates over stored test results, recomputed on every query.

Success rate is a percentage (0-100). Averages over an empty group are None.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from promptbench.models import DailyStats, Prompt, PromptStats, TestResult


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def _aggregate(results: list[TestResult]) -> dict:
    return {
        "total_tests": len(results),
        "avg_confidence": _mean([r.result.confidence for r in results]),
        "avg_processing_time": _mean([float(r.result.processing_time_ms) for r in results]),
        "success_rate": _mean([100.0 if r.success else 0.0 for r in results]),
        "total_tokens": sum(r.result.tokens_used for r in results),
        "total_cost": sum(r.result.cost_usd for r in results),
    }


def prompt_analytics(
    results: Iterable[TestResult],
    prompt_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[DailyStats]:
    """Per-day stats for one prompt, newest day first. Date bounds are inclusive."""
    by_day: dict[date, list[TestResult]] = defaultdict(list)
    for r in results:
        if r.prompt_id != prompt_id:
            continue
        day = r.timestamp.date()
        if start_date and day < start_date:
            continue
        if end_date and day > end_date:
            continue
        by_day[day].append(r)

    return [DailyStats(date=day, **_aggregate(by_day[day])) for day in sorted(by_day, reverse=True)]


def overall_analytics(prompts: Iterable[Prompt], results: Iterable[TestResult]) -> list[PromptStats]:
    """Per-prompt stats across all prompts (untested ones included), most tested first."""
    by_prompt: dict[str, list[TestResult]] = defaultdict(list)
    for r in results:
        by_prompt[r.prompt_id].append(r)

    stats = []
    for p in prompts:
        rows = by_prompt.get(p.id, [])
        stats.append(PromptStats(
            prompt_id=p.id,
            prompt_name=p.name,
            version=p.version,
            last_test=max((r.timestamp for r in rows), default=None),
            **_aggregate(rows),
        ))
    # sorted() is stable, so ties keep the incoming prompt order
    return sorted(stats, key=lambda s: s.total_tests, reverse=True)
