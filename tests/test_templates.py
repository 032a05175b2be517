from __future__ import annotations

import allure

from cortex.workflow.templates import (
    expand_prompt,
    extract_template_vars,
    missing_template_outputs,
)

pytestmark = [
    allure.epic("Execution"),
    allure.feature("Prompt Templates"),
]


def test_expand_replaces_known_outputs() -> None:
    assert expand_prompt("Analyze: {{outputs.x}}", {"x": "data"}) == "Analyze: data"


def test_expand_leaves_unknown_placeholders() -> None:
    assert expand_prompt("{{outputs.missing}}", {}) == "{{outputs.missing}}"


def test_expand_does_not_reexpand_substituted_text() -> None:
    outputs = {"a": "{{outputs.b}}", "b": "secret"}

    assert expand_prompt("A={{outputs.a}}", outputs) == "A={{outputs.b}}"


def test_expand_replaces_every_occurrence_verbatim() -> None:
    outputs = {"build-1": "line1\nline2 $HOME \\n"}

    expanded = expand_prompt("{{outputs.build-1}} / {{outputs.build-1}}", outputs)

    assert expanded == "line1\nline2 $HOME \\n / line1\nline2 $HOME \\n"


def test_expand_ignores_malformed_placeholders() -> None:
    prompt = "{{ outputs.a }} {{outputs.a.b}} {{outputs.}} {{output.a}}"

    assert expand_prompt(prompt, {"a": "X"}) == prompt


def test_extract_deduplicates_in_first_appearance_order() -> None:
    prompt = "{{outputs.b}} then {{outputs.a}} and {{outputs.b}} and {{outputs.c_2}}"

    assert extract_template_vars(prompt) == ["b", "a", "c_2"]


def test_extract_returns_empty_for_plain_prompt() -> None:
    assert extract_template_vars("no placeholders here") == []


def test_missing_template_outputs() -> None:
    prompt = "{{outputs.a}} {{outputs.b}}"

    assert missing_template_outputs(prompt, {"a": ""}) == ["b"]
