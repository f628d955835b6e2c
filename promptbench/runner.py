"""Test runner — sends a saved prompt plus uploaded data to the completion API.

Text uploads ({"type": "text", "content": ...}) are embedded verbatim in a
```text fence; any other payload is pretty-printed JSON in a ```json fence.
"""

from __future__ import annotations

import json
import logging
from typing import Any, ClassVar

from nfo.decorators import log_call

from promptbench.llm_provider import CompletionResult, LLMProvider
from promptbench.models import DataKind, Prompt, data_kind
from promptbench.prompt_registry import PromptRegistry, get_registry

logger = logging.getLogger("promptbench.runner")


def render_data(payload: Any) -> tuple[DataKind, str]:
    kind = data_kind(payload)
    if kind == DataKind.TEXT:
        return kind, str(payload.get("content", ""))
    return kind, json.dumps(payload, indent=2, ensure_ascii=False)


class TestRunner:
    """Builds the analysis messages for a prompt and runs them through an LLMProvider.

    Usage:
        runner = TestRunner(LLMProvider(config))
        completion = await runner.run(prompt, {"type": "text", "content": "hello"})
    """

    __test__: ClassVar[bool] = False

    def __init__(self, provider: LLMProvider, registry: PromptRegistry | None = None):
        self.provider = provider
        self.registry = registry or get_registry()

    def system_prompt(self) -> str:
        return self.registry.get("test_system")

    def build_user_message(self, prompt: Prompt, payload: Any) -> str:
        kind, content = render_data(payload)
        return self.registry.get(
            "test_user",
            generated_prompt=prompt.generated_prompt,
            label="text" if kind == DataKind.TEXT else "JSON",
            fence=kind.value,
            content=content,
        )

    @log_call
    async def run(self, prompt: Prompt, payload: Any) -> CompletionResult:
        """Run one test. Upstream errors propagate with ``elapsed_ms`` set."""
        result = await self.provider.complete(
            user_message=self.build_user_message(prompt, payload),
            system_prompt=self.system_prompt(),
        )
        logger.info(
            f"Tested prompt '{prompt.name}' v{prompt.version} in {result.elapsed_ms}ms "
            f"({result.attempts} attempt(s), {result.tokens_used} tokens)"
        )
        return result
