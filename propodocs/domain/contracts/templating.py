"""
Placeholder substitution for contract templates.

Templates contain ``{{key}}`` tokens. ``render`` replaces each one with the
matching value, or with an empty string when the key is missing. Surrounding
whitespace inside the braces is ignored, so ``{{ client_name }}`` and
``{{client_name}}`` are the same key; inner whitespace is part of the key,
so ``{{client name}}`` looks up ``"client name"``. The pass is single-shot:
a value that itself contains ``{{...}}`` is inserted verbatim and never
expanded. Anything that does not form a complete token (a lone ``{{``,
``}}``, or ``{{ }}``) stays in the output as literal text.
"""

import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}\s](?:[^{}]*[^{}\s])?)\s*\}\}")


def render(template: str, values: Mapping[str, Any]) -> str:
    if not template:
        return ""

    def _substitute(match: re.Match) -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_RE.sub(_substitute, template)


def placeholders(template: str) -> list[str]:
    """Keys referenced by a template, in order of first appearance"""
    seen: list[str] = []
    for match in PLACEHOLDER_RE.finditer(template or ""):
        key = match.group(1)
        if key not in seen:
            seen.append(key)
    return seen
