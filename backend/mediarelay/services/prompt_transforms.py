"""Pure prompt rewrites used by the fallback escalator."""

from __future__ import annotations

import re

_ADJECTIVE_RUN = re.compile(r"(\w+,\s*){2,}(\w+)\s+(\w+)", re.IGNORECASE)
_STYLE_REFERENCE = re.compile(r"\b(in the style of|like)\s+.+?(,|\.|$)", re.IGNORECASE)
_BACKGROUND = re.compile(r"\b(with (a |an )?background)\s+.+?(,|\.|$)", re.IGNORECASE)
_LIGHTING = re.compile(r"\b(lighting|atmosphere):?\s+.+?(,|\.|$)", re.IGNORECASE)

_NAMED_SOURCE = re.compile(r"\b(by|from)\s+[A-Z][a-z]+\b")
_YEAR = re.compile(r"\b(from|in)\s+(19|20)\d{2}\b", re.IGNORECASE)
_TECHNICAL = re.compile(r"\b(resolution|quality):\s*\d+[a-z]*", re.IGNORECASE)
_HEX_COLOR = re.compile(r"#[0-9A-Fa-f]{6}\b")
_INTENSIFIER = re.compile(r"\b(very|extremely|super|incredibly)\s+", re.IGNORECASE)

_WHITESPACE = re.compile(r"\s+")
_TRAILING_PUNCTUATION = re.compile(r"[\s,;.]+$")

# Shorter than this after simplification means too much was stripped
MIN_SIMPLIFIED_LENGTH = 10


def _squash(text: str) -> str:
    """Collapse whitespace and drop punctuation left dangling by a removed clause."""
    return _TRAILING_PUNCTUATION.sub("", _WHITESPACE.sub(" ", text.strip()))


def simplify_prompt(prompt: str) -> str:
    """Drop adjective runs, style references, background and lighting clauses.

    Returns ``prompt`` unchanged when the result would be too short to be useful.
    """
    if not prompt:
        return prompt

    simplified = _ADJECTIVE_RUN.sub(r"\3", prompt)
    simplified = _STYLE_REFERENCE.sub("", simplified)
    simplified = _BACKGROUND.sub("", simplified)
    simplified = _LIGHTING.sub("", simplified)
    if simplified == prompt:
        return prompt
    simplified = _squash(simplified)

    if len(simplified) < MIN_SIMPLIFIED_LENGTH:
        return prompt
    return simplified


def generalize_prompt(prompt: str) -> str:
    """Drop named sources, years, technical specs and intensifiers; replace hex colors."""
    if not prompt:
        return prompt

    generic = _NAMED_SOURCE.sub("", prompt)
    generic = _YEAR.sub("", generic)
    generic = _TECHNICAL.sub("", generic)
    generic = _HEX_COLOR.sub("color", generic)
    generic = _INTENSIFIER.sub("", generic)
    if generic == prompt:
        return prompt
    return _squash(generic)
