"""Compliance findings returned (never raised) by the engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FindingSeverity(str, Enum):
    """How serious a compliance finding is."""

    ERROR = "error"  # Return cannot be filed as-is
    WARNING = "warning"  # Statutory exposure (interest, penalty, lost credit)
    INFO = "info"


@dataclass(frozen=True)
class ComplianceFinding:
    """
    A statutory problem detected in otherwise valid input.

    Attributes:
        code: Stable machine-readable code (e.g. ``LATE_SELF_INVOICE``).
        severity: ERROR, WARNING or INFO.
        message: Human-readable description.
        reference: Statutory provision, where one applies.
        details: Structured values backing the finding.
    """

    code: str
    severity: FindingSeverity
    message: str
    reference: str | None = None
    details: tuple[tuple[str, Any], ...] = field(default=())

    @property
    def is_blocking(self) -> bool:
        return self.severity is FindingSeverity.ERROR

    def detail(self, key: str) -> Any:
        for k, v in self.details:
            if k == key:
                return v
        return None
