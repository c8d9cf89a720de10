"""
tax_config -- statutory rule tables for the tax engines.

Responsibility:
    Provides the immutable rule tables (reverse-charge service rates and
    notified services, Section 17(5) wording, TDS sections, reconciliation
    weights, return late fees) as frozen dataclasses. Engines take an
    ``EngineRules`` (or one of its parts) in ``__init__``; when none is
    given they use ``get_default_rules()``.

Architecture position:
    Configuration -- sits above ``tax_kernel`` and below ``tax_engines``.
    The kernel never imports from this package.

Failure modes:
    - ``ConfigurationError`` when a rule file is malformed.
    - ``FileNotFoundError`` when an explicit rule path does not exist.
"""

from __future__ import annotations

from pathlib import Path

from tax_config.loader import compute_checksum, load_default_rules, load_rules
from tax_config.schema import (
    BlockedCreditRule,
    EngineRules,
    ITCRules,
    NotifiedService,
    ReconciliationRules,
    ReturnRules,
    ReverseChargeRules,
    ServiceRate,
    SurchargeSlab,
    TDSRules,
    TDSSectionRule,
)


def get_default_rules(path: Path | str | None = None) -> EngineRules:
    """Rules from ``path``, or the packaged defaults when ``path`` is None."""
    if path is None:
        return load_default_rules()
    return load_rules(path)


__all__ = [
    "BlockedCreditRule",
    "EngineRules",
    "ITCRules",
    "NotifiedService",
    "ReconciliationRules",
    "ReturnRules",
    "ReverseChargeRules",
    "ServiceRate",
    "SurchargeSlab",
    "TDSRules",
    "TDSSectionRule",
    "compute_checksum",
    "get_default_rules",
    "load_default_rules",
    "load_rules",
]
