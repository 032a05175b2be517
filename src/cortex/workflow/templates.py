"""``{{outputs.<task>}}`` placeholder expansion for task prompts."""

from __future__ import annotations

import re
from collections.abc import Mapping

TEMPLATE_VAR_PATTERN = re.compile(r"\{\{outputs\.([a-zA-Z0-9_-]+)\}\}")


def expand_prompt(prompt: str, outputs: Mapping[str, str]) -> str:
    """Replace placeholders with captured task outputs.

    Single pass over the original prompt: substituted text is never scanned
    again, so an output containing ``{{outputs.x}}`` stays literal. Placeholders
    without a matching output are left unchanged.
    """

    def _substitute(match: re.Match[str]) -> str:
        task_name = match.group(1)
        if task_name in outputs:
            return outputs[task_name]
        return match.group(0)

    return TEMPLATE_VAR_PATTERN.sub(_substitute, prompt)


def extract_template_vars(prompt: str) -> list[str]:
    """Return referenced task names, de-duplicated in order of first appearance."""

    seen: set[str] = set()
    names: list[str] = []
    for match in TEMPLATE_VAR_PATTERN.finditer(prompt):
        task_name = match.group(1)
        if task_name in seen:
            continue
        seen.add(task_name)
        names.append(task_name)
    return names


def missing_template_outputs(prompt: str, outputs: Mapping[str, str]) -> list[str]:
    return [name for name in extract_template_vars(prompt) if name not in outputs]
