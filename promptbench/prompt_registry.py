"""PromptRegistry — the fixed texts of promptbench, kept in YAML and rendered with Jinja2.

Entries in configs/prompts.yaml:
    compile      layout of a compiled questionnaire prompt
    test_system  system instruction sent with every test
    test_user    user message wrapping a prompt and the uploaded data

An entry is either a plain string or a mapping with a ``system`` template;
any other keys of the mapping become default values for its variables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jinja2 import BaseLoader, ChainableUndefined, Environment, TemplateSyntaxError, UndefinedError

logger = logging.getLogger("promptbench.prompt_registry")

_DEFAULT_PROMPTS_PATH = Path(__file__).parent / "configs" / "prompts.yaml"

REQUIRED_PROMPTS = frozenset({"compile", "test_system", "test_user"})


class PromptNotFoundError(KeyError):
    """Raised when a prompt name is not found in the registry."""


class PromptRenderError(ValueError):
    """Raised when a prompt template fails to render."""


@dataclass
class PromptEntry:
    """One named template plus the default values of its variables."""
    name: str
    template: str
    variables: dict[str, Any] = field(default_factory=dict)


def _entry_from_yaml(name: str, data: Any) -> PromptEntry | None:
    if isinstance(data, str):
        return PromptEntry(name=name, template=data)
    if isinstance(data, dict):
        defaults = {k: v for k, v in data.items() if k != "system"}
        return PromptEntry(name=name, template=data.get("system", ""), variables=defaults)
    logger.warning(f"Ignoring prompt '{name}': expected a string or mapping, got {type(data).__name__}")
    return None


class PromptRegistry:
    """Lazily loaded, renderable set of named templates.

    Usage:
        registry = PromptRegistry()
        text = registry.get("compile", name="ICP v1", lines=[{"text": "Industry", "answer": "Retail"}])
    """

    def __init__(self, prompts_path: Path | str | None = None):
        self._path = Path(prompts_path) if prompts_path else _DEFAULT_PROMPTS_PATH
        self._entries: dict[str, PromptEntry] | None = None
        self._jinja_env = Environment(
            loader=BaseLoader(),
            undefined=ChainableUndefined,
            keep_trailing_newline=True,
        )

    @property
    def entries(self) -> dict[str, PromptEntry]:
        if self._entries is None:
            self._entries = self._load()
        return self._entries

    def _load(self) -> dict[str, PromptEntry]:
        if not self._path.exists():
            logger.warning(f"Prompts file not found: {self._path}, using empty registry")
            return {}

        raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        entries = {}
        for name, data in (raw.get("prompts") or {}).items():
            entry = _entry_from_yaml(name, data)
            if entry is not None:
                entries[name] = entry
        logger.debug(f"Loaded {len(entries)} prompts from {self._path}")
        return entries

    def get(self, prompt_name: str, **variables: Any) -> str:
        """Render a prompt by name. Explicit variables override the entry's defaults.

        Raises:
            PromptNotFoundError: If the prompt name doesn't exist.
            PromptRenderError: If Jinja2 rendering fails.
        """
        entry = self.get_entry(prompt_name)
        return self._render(entry.template, {**entry.variables, **variables})

    def get_entry(self, name: str) -> PromptEntry:
        entry = self.entries.get(name)
        if entry is None:
            raise PromptNotFoundError(f"Prompt '{name}' not found in registry. Available: {self.list_prompts()}")
        return entry

    def list_prompts(self) -> list[str]:
        return sorted(self.entries)

    def validate(self) -> list[str]:
        """Problems with the loaded templates; empty when all required ones exist and parse."""
        errors: list[str] = []

        missing = REQUIRED_PROMPTS - set(self.entries)
        if missing:
            errors.append(f"Missing required prompts: {sorted(missing)}")

        for name, entry in self.entries.items():
            if not entry.template.strip():
                errors.append(f"Prompt '{name}' has an empty template")
                continue
            try:
                self._jinja_env.parse(entry.template)
            except TemplateSyntaxError as e:
                errors.append(f"Prompt '{name}' has invalid Jinja2 syntax: {e}")

        return errors

    def register(self, name: str, template: str, **variables: Any) -> None:
        """Add or replace a template at runtime (the YAML file is not touched)."""
        self.entries[name] = PromptEntry(name=name, template=template, variables=variables)

    def _render(self, template_str: str, variables: dict[str, Any]) -> str:
        try:
            return self._jinja_env.from_string(template_str).render(**variables)
        except UndefinedError as e:
            raise PromptRenderError(f"Missing template variable: {e}") from e
        except TemplateSyntaxError as e:
            raise PromptRenderError(f"Invalid template syntax: {e}") from e


_default_registry: PromptRegistry | None = None


def get_registry() -> PromptRegistry:
    """Shared registry backed by the packaged prompts.yaml."""
    global _default_registry
    if _default_registry is None:
        _default_registry = PromptRegistry()
    return _default_registry
