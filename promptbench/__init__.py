"""promptbench — build prompts from questionnaires, version them by name, and test them against an LLM.

Usage:
    from promptbench import PromptBench, PromptCreate, TestRequest, get_env_config

    bench = PromptBench.from_env(get_env_config())
    prompt = bench.create_prompt(PromptCreate(name="ICP", questions=questions, answers=answers))
    result = await bench.run_test(TestRequest(prompt_id=prompt.id, json_data={"type": "text", "content": "..."}))
    print(result.result.confidence, result.result.insights)
"""

__version__ = "0.1.0"

from promptbench.analytics import overall_analytics, prompt_analytics
from promptbench.compiler import compile_prompt
from promptbench.env_config import EnvConfig, check_api_key, get_env_config
from promptbench.errors import (
    AuthError,
    InvalidRequestError,
    NotFoundError,
    PromptBenchError,
    QuotaExceeded,
    RateLimited,
    ReferentialIntegrityError,
    UpstreamError,
)
from promptbench.llm_provider import CompletionResult, LLMProvider
from promptbench.models import (
    AnalysisResult,
    DailyStats,
    LLMProviderConfig,
    Prompt,
    PromptCreate,
    PromptStats,
    PromptVersionCreate,
    Question,
    QuestionCreate,
    QuestionType,
    QuestionUpdate,
    TestRequest,
    TestResult,
)
from promptbench.prompt_registry import PromptRegistry
from promptbench.runner import TestRunner
from promptbench.scorer import ScoreResult, calculate_confidence, extract_insights, score_response
from promptbench.service import PromptBench
from promptbench.store import MemoryStore, Repository, SQLiteStore

# Logging
from promptbench.logging_setup import setup_logging, get_logger

__all__ = [
    # Service
    "PromptBench",
    # Components
    "compile_prompt",
    "LLMProvider",
    "CompletionResult",
    "TestRunner",
    "PromptRegistry",
    "score_response",
    "extract_insights",
    "calculate_confidence",
    "ScoreResult",
    "prompt_analytics",
    "overall_analytics",
    # Storage
    "Repository",
    "SQLiteStore",
    "MemoryStore",
    # Models
    "AnalysisResult",
    "DailyStats",
    "LLMProviderConfig",
    "Prompt",
    "PromptCreate",
    "PromptStats",
    "PromptVersionCreate",
    "Question",
    "QuestionCreate",
    "QuestionType",
    "QuestionUpdate",
    "TestRequest",
    "TestResult",
    # Errors
    "PromptBenchError",
    "InvalidRequestError",
    "NotFoundError",
    "ReferentialIntegrityError",
    "UpstreamError",
    "AuthError",
    "RateLimited",
    "QuotaExceeded",
    # Config
    "EnvConfig",
    "get_env_config",
    "check_api_key",
    # Logging
    "setup_logging",
    "get_logger",
]
