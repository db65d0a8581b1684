"""Prompt rewriting after a content-policy refusal.

The exact rewrite rule is policy, so the retry controller takes any callable
``(original_prompt, attempt) -> new_prompt``. ``attempt`` starts at 1 for the
first rewrite, and the original prompt is always passed (rewrites are not
stacked by the controller).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Protocol

FALLBACK_PROMPT = "a beautiful peaceful landscape"
FIRST_FRAMING = "a safe and family-friendly "
LATER_FRAMING = "a safe and peaceful artistic representation of "

DEFAULT_BANNED_TERMS: tuple[str, ...] = (
    "violence", "violent", "blood", "poison", "death", "kill", "murder",
    "nude", "naked", "sexual", "explicit", "adult", "porn", "nsfw",
    "weapon", "gun", "knife", "bomb", "explosive", "terrorist",
    "hate", "racism", "discrimination", "offensive",
)  # fmt: skip

_SPACES = re.compile(r"\s{2,}")


class PromptTransform(Protocol):
    def __call__(self, prompt: str, attempt: int) -> str: ...


class SafetyFramingTransform:
    """Strip banned terms, then prepend a neutral safety framing.

    First rewrite:  "a safe and family-friendly <stripped prompt>"
    Later rewrites: "a safe and peaceful artistic representation of <first rewrite>"
    """

    def __init__(self, banned_terms: Iterable[str] = DEFAULT_BANNED_TERMS):
        terms = sorted({t.strip().lower() for t in banned_terms if t.strip()}, key=len, reverse=True)
        self.banned_terms = terms
        self._pattern = (
            re.compile(r"\b(?:" + "|".join(re.escape(t) for t in terms) + r")\b", re.IGNORECASE) if terms else None
        )

    def strip(self, prompt: str) -> str:
        """Remove banned terms as whole words and tidy whitespace."""
        cleaned = self._pattern.sub("", prompt) if self._pattern else prompt
        cleaned = _SPACES.sub(" ", cleaned).strip(" ,;")
        return cleaned.strip()

    def __call__(self, prompt: str, attempt: int) -> str:
        stripped = self.strip(prompt)
        first = FIRST_FRAMING + stripped if stripped else FALLBACK_PROMPT
        if attempt <= 1:
            return first
        return LATER_FRAMING + first
