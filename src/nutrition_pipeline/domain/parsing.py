"""Intermediate results of parsing model output."""

from dataclasses import dataclass, field
from enum import StrEnum


class ParseTier(StrEnum):
    """Which recovery stage produced a result."""

    STRICT = "strict"
    REPAIRED = "repaired"
    PARTIAL = "partial"
    SYNTHETIC = "synthetic"


@dataclass(frozen=True)
class ParsedMeal:
    """Loosely typed meal fields recovered from model text."""

    fields: dict[str, object]
    tier: ParseTier
    notes: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ParseFailure:
    """Model output that must not be repaired (for example a refusal)."""

    reason: str
