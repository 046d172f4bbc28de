"""
Field extraction rules for heterogeneous upstream records.

Upstream schemas drift, so every Article field is read through an
ordered list of candidate paths. Lookups return a tagged result so a
legitimately zero value is never confused with a missing one: only
None, absent keys and blank strings count as missing.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional


@dataclass(frozen=True)
class Extracted:
    """Result of a field lookup."""
    found: bool
    value: Any = None

    def or_default(self, default: Any) -> Any:
        return self.value if self.found else default


MISSING = Extracted(found=False)


def to_float(value: Any) -> float:
    """Coerce numbers and numeric strings; bool and non-finite values are rejected."""
    if isinstance(value, bool):
        raise TypeError("bool is not a sentiment value")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite value {value!r}")
    return number


def to_text(value: Any) -> str:
    return str(value).strip()


@dataclass(frozen=True)
class FieldRule:
    """One candidate location for a field, as a dotted path."""
    path: str
    coerce: Optional[Callable[[Any], Any]] = None

    def apply(self, record: dict[str, Any]) -> Extracted:
        current: Any = record
        for part in self.path.split("."):
            if not isinstance(current, dict) or part not in current:
                return MISSING
            current = current[part]

        if current is None:
            return MISSING
        if isinstance(current, str) and not current.strip():
            return MISSING

        if self.coerce is not None:
            try:
                current = self.coerce(current)
            except (TypeError, ValueError):
                return MISSING
        return Extracted(found=True, value=current)


def first_present(record: dict[str, Any], rules: Iterable[FieldRule]) -> Extracted:
    """Return the first rule that finds a value, else MISSING."""
    for rule in rules:
        result = rule.apply(record)
        if result.found:
            return result
    return MISSING


def text_rules(*paths: str) -> tuple[FieldRule, ...]:
    return tuple(FieldRule(path, to_text) for path in paths)


def number_rules(*paths: str) -> tuple[FieldRule, ...]:
    return tuple(FieldRule(path, to_float) for path in paths)


# Native sentiment, in priority order
SENTIMENT_RULES = number_rules("sentiment", "tone", "avgtone")
