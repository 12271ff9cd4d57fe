"""Placeholder masking of personal data in model-bound text.

Email addresses, phone numbers, staff identifiers and names following a job
title are replaced with numbered placeholders such as ``[EMAIL_1]`` before a
prompt leaves the process; :meth:`MaskingSession.unmask` restores them in
the model's answer.  A session is scoped to one request so the same value
always maps to the same placeholder within it.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

from query_router.config.models import MaskingConfig

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
# Separators required so years, dates and record ids are left alone
PHONE_PATTERN = re.compile(
    r"(?<![\w+])(?:\+\d{1,3}[\s.-]?)?(?:\(\d{3}\)\s?|\d{3}[\s.-])\d{3}[\s.-]\d{4}\b"
)
STAFF_ID_PATTERN = re.compile(r"\b[A-Z]{2,}\d{6,}\b")
PLACEHOLDER_PATTERN = re.compile(r"\[(?:EMAIL|PHONE|ID|NAME)_\d+\]")


def name_pattern(roles: Iterable[str]) -> re.Pattern[str] | None:
    """Capitalised words after one of *roles*; group 1 is the name."""
    alternatives = "|".join(re.escape(r) for r in sorted(roles, key=len, reverse=True))
    if not alternatives:
        return None
    return re.compile(
        rf"\b(?i:{alternatives})\b\s+([A-Z][a-z]+(?:\s[A-Z][a-z]+)*)"
    )


class MaskingSession:
    """Masks and unmasks text for a single request."""

    def __init__(self, patterns: list[tuple[str, re.Pattern[str]]]) -> None:
        self._patterns = patterns
        self._by_value: dict[str, str] = {}
        self._by_placeholder: dict[str, str] = {}
        self._counts: Counter[str] = Counter()

    @property
    def masked_count(self) -> int:
        return len(self._by_value)

    def mask(self, text: str) -> str:
        for kind, pattern in self._patterns:
            text = pattern.sub(lambda m, kind=kind: self._substitute(kind, m), text)
        return text

    def unmask(self, text: str) -> str:
        if not self._by_placeholder:
            return text
        return PLACEHOLDER_PATTERN.sub(
            lambda m: self._by_placeholder.get(m.group(0), m.group(0)), text
        )

    def unmask_value(self, value: object) -> object:
        """Unmask a string or a list of strings; other values pass through."""
        if isinstance(value, str):
            return self.unmask(value)
        if isinstance(value, list):
            return [self.unmask(v) if isinstance(v, str) else v for v in value]
        return value

    def _substitute(self, kind: str, match: re.Match[str]) -> str:
        if not match.re.groups:
            return self._placeholder(kind, match.group(0))
        # Only the captured span is personal data; keep the surrounding words
        whole = match.group(0)
        start, end = match.start(1) - match.start(0), match.end(1) - match.start(0)
        return whole[:start] + self._placeholder(kind, match.group(1)) + whole[end:]

    def _placeholder(self, kind: str, value: str) -> str:
        if value not in self._by_value:
            self._counts[kind] += 1
            placeholder = f"[{kind}_{self._counts[kind]}]"
            self._by_value[value] = placeholder
            self._by_placeholder[placeholder] = value
        return self._by_value[value]


class DataMasker:
    """Builds request-scoped :class:`MaskingSession` objects from config."""

    def __init__(self, config: MaskingConfig | None = None) -> None:
        self.config = config or MaskingConfig()
        self._patterns: list[tuple[str, re.Pattern[str]]] = []
        if self.config.enabled:
            self._patterns = [
                ("EMAIL", EMAIL_PATTERN),
                ("PHONE", PHONE_PATTERN),
                ("ID", STAFF_ID_PATTERN),
            ]
            names = name_pattern(self.config.roles)
            if names is not None:
                self._patterns.append(("NAME", names))

    def session(self) -> MaskingSession:
        return MaskingSession(self._patterns)
