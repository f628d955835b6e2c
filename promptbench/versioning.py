"""Version resolution for prompts that share a name.

Every prompt saved under a name becomes the next version of that name and
points at the previous latest version through ``base_prompt_id``. Stores
call :func:`resolve_version` inside their atomic insert section, so the
read of the current latest version and the write of the new row cannot
interleave with another insert.
"""

from __future__ import annotations

from dataclasses import dataclass

from promptbench.models import Prompt


@dataclass(frozen=True)
class VersionSlot:
    version: int
    base_prompt_id: str | None


def resolve_version(latest: Prompt | None) -> VersionSlot:
    """Slot for a new prompt given the highest existing version of its name."""
    if latest is None:
        return VersionSlot(version=1, base_prompt_id=None)
    return VersionSlot(version=latest.version + 1, base_prompt_id=latest.id)


def assign_version(draft: Prompt, latest: Prompt | None) -> Prompt:
    slot = resolve_version(latest)
    return draft.model_copy(update={"version": slot.version, "base_prompt_id": slot.base_prompt_id})
