"""
Rule loader (``tax_config.loader``).

Responsibility
--------------
Loads a YAML rule file and parses it into the frozen dataclasses of
``tax_config.schema``. The packaged default rules are loaded once and the
same immutable ``EngineRules`` instance is shared by every engine that is
not given an explicit rule set.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass holding tuples, never a
  mutable dict or list.
* Rates and money amounts are parsed as exact ``Decimal``; floats in the
  YAML are read through ``str`` so no binary rounding leaks in.
* Rates lie in [0, 100].
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed document; it is stamped on ``EngineRules.checksum``.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML, missing keys, bad numbers or dates  ->
  ``ConfigurationError`` naming the file and the cause.

Audit relevance
---------------
Every successful load emits a ``TAX_CONFIG_TRACE`` log entry with the
version and checksum, which ties each computation to the rule set that
governed it.
"""

from __future__ import annotations

import functools
import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

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
from tax_kernel.exceptions import ConfigurationError
from tax_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_RULES_PATH = Path(__file__).parent / "data" / "default_rules.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialisation of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{name} is not a number: {value!r}") from e


def parse_optional_decimal(value: Any, name: str) -> Decimal | None:
    return None if value is None else parse_decimal(value, name)


def parse_rate(value: Any, name: str) -> Decimal:
    rate = parse_decimal(value, name)
    if rate < 0 or rate > 100:
        raise ValueError(f"{name} must be between 0 and 100, got {rate}")
    return rate


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _upper_tuple(values: Any) -> tuple[str, ...]:
    return tuple(str(v).strip().upper() for v in (values or ()))


def parse_notified_service(data: dict[str, Any]) -> NotifiedService:
    """Parse one notified-service entry."""
    return NotifiedService(
        code=str(data["code"]).upper(),
        description=data["description"],
        gst_rate=parse_rate(data["gst_rate"], f"{data['code']}.gst_rate"),
        notification=data["notification"],
        service_types=_upper_tuple(data.get("service_types")),
        sac_prefixes=tuple(str(p) for p in data.get("sac_prefixes", ())),
        effective_from=parse_date(data.get("effective_from", "2017-07-01")),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        priority=int(data.get("priority", 0)),
    )


def parse_reverse_charge(data: dict[str, Any]) -> ReverseChargeRules:
    """Parse the ``reverse_charge`` block."""
    service_rates = tuple(
        ServiceRate(
            service_type=str(s["service_type"]).upper(),
            gst_rate=parse_rate(s["gst_rate"], f"{s['service_type']}.gst_rate"),
            sac_code=str(s["sac_code"]) if s.get("sac_code") else None,
        )
        for s in data.get("service_rates", [])
    )
    return ReverseChargeRules(
        default_gst_rate=parse_rate(data.get("default_gst_rate", "18"), "default_gst_rate"),
        service_rates=service_rates,
        notified_services=tuple(
            parse_notified_service(s) for s in data.get("notified_services", [])
        ),
        self_invoice_window_days=int(data.get("self_invoice_window_days", 30)),
        interest_rate_annual=parse_rate(
            data.get("interest_rate_annual", "18"), "interest_rate_annual"
        ),
    )


def parse_itc(data: dict[str, Any]) -> ITCRules:
    """Parse the ``itc`` block."""
    defaults = ITCRules()
    return ITCRules(
        blocked_credit_rules=tuple(
            BlockedCreditRule(
                reason=str(r["reason"]).upper(),
                section=r["section"],
                description=r["description"],
            )
            for r in data.get("blocked_credit_rules", [])
        ),
        composition_reason=data.get("composition_reason", defaults.composition_reason),
        invalid_invoice_reason=data.get(
            "invalid_invoice_reason", defaults.invalid_invoice_reason
        ),
        goods_not_received_reason=data.get(
            "goods_not_received_reason", defaults.goods_not_received_reason
        ),
        motor_vehicle_max_blocked_seating=int(
            data.get(
                "motor_vehicle_max_blocked_seating",
                defaults.motor_vehicle_max_blocked_seating,
            )
        ),
        non_payment_days=int(data.get("non_payment_days", defaults.non_payment_days)),
        reversal_interest_rate_annual=parse_rate(
            data.get("reversal_interest_rate_annual", "18"),
            "reversal_interest_rate_annual",
        ),
    )


def parse_tds_section(data: dict[str, Any]) -> TDSSectionRule:
    """Parse one TDS section entry."""
    code = str(data["code"]).upper()
    return TDSSectionRule(
        code=code,
        description=data["description"],
        individual_rate=parse_rate(data["individual_rate"], f"{code}.individual_rate"),
        other_rate=parse_rate(data["other_rate"], f"{code}.other_rate"),
        aggregate_threshold=parse_optional_decimal(
            data.get("aggregate_threshold"), f"{code}.aggregate_threshold"
        ),
        single_payment_threshold=parse_optional_decimal(
            data.get("single_payment_threshold"), f"{code}.single_payment_threshold"
        ),
    )


def parse_surcharge_slabs(data: list[dict[str, Any]], name: str) -> tuple[SurchargeSlab, ...]:
    """Parse a slab list, sorted by ``above``."""
    slabs = [
        SurchargeSlab(
            above=parse_decimal(s["above"], f"{name}.above"),
            rate=parse_rate(s["rate"], f"{name}.rate"),
        )
        for s in data
    ]
    return tuple(sorted(slabs, key=lambda s: s.above))


def parse_tds(data: dict[str, Any]) -> TDSRules:
    """Parse the ``tds`` block."""
    surcharge = data.get("surcharge_slabs") or {}
    return TDSRules(
        cess_rate=parse_rate(data.get("cess_rate", "4"), "cess_rate"),
        individual_surcharge_slabs=parse_surcharge_slabs(
            surcharge.get("individual", []), "surcharge_slabs.individual"
        ),
        other_surcharge_slabs=parse_surcharge_slabs(
            surcharge.get("other", []), "surcharge_slabs.other"
        ),
        sections=tuple(parse_tds_section(s) for s in data.get("sections", [])),
        no_pan_rate=parse_rate(data.get("no_pan_rate", "20"), "no_pan_rate"),
        late_deposit_interest_rate_annual=parse_rate(
            data.get("late_deposit_interest_rate_annual", "18"),
            "late_deposit_interest_rate_annual",
        ),
        late_filing_fee_per_day=parse_decimal(
            data.get("late_filing_fee_per_day", "200"), "late_filing_fee_per_day"
        ),
        late_filing_fee_cap=parse_optional_decimal(
            data.get("late_filing_fee_cap"), "late_filing_fee_cap"
        ),
    )


def parse_reconciliation(data: dict[str, Any]) -> ReconciliationRules:
    """Parse the ``reconciliation`` block; missing weights keep their defaults."""
    defaults = ReconciliationRules()
    weights = {
        name: int(data.get(name, getattr(defaults, name)))
        for name in (
            "gstin_weight",
            "document_number_weight",
            "document_date_weight",
            "taxable_value_weight",
            "cgst_weight",
            "sgst_weight",
            "igst_weight",
        )
    }
    return ReconciliationRules(
        **weights,
        amount_tolerance=parse_decimal(
            data.get("amount_tolerance", defaults.amount_tolerance), "amount_tolerance"
        ),
        suggestion_date_window_days=int(
            data.get("suggestion_date_window_days", defaults.suggestion_date_window_days)
        ),
        suggestion_amount_tolerance_percent=parse_rate(
            data.get(
                "suggestion_amount_tolerance_percent",
                defaults.suggestion_amount_tolerance_percent,
            ),
            "suggestion_amount_tolerance_percent",
        ),
        max_suggestions=int(data.get("max_suggestions", defaults.max_suggestions)),
    )


def parse_returns(data: dict[str, Any]) -> ReturnRules:
    """Parse the ``returns`` block."""
    defaults = ReturnRules()
    return ReturnRules(
        due_day=int(data.get("due_day", defaults.due_day)),
        late_fee_per_day=parse_decimal(
            data.get("late_fee_per_day", defaults.late_fee_per_day), "late_fee_per_day"
        ),
        nil_return_late_fee_per_day=parse_decimal(
            data.get("nil_return_late_fee_per_day", defaults.nil_return_late_fee_per_day),
            "nil_return_late_fee_per_day",
        ),
        late_fee_cap=parse_decimal(
            data.get("late_fee_cap", defaults.late_fee_cap), "late_fee_cap"
        ),
    )


def parse_rules(data: dict[str, Any], checksum: str = "") -> EngineRules:
    """
    Parse a full rule document.

    Raises:
        KeyError: if required keys are missing.
        ValueError: if numbers, rates or dates are malformed.
    """
    return EngineRules(
        version=str(data["version"]),
        effective_from=parse_date(data["effective_from"]),
        reverse_charge=parse_reverse_charge(data.get("reverse_charge") or {}),
        itc=parse_itc(data.get("itc") or {}),
        tds=parse_tds(data.get("tds") or {}),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        returns=parse_returns(data.get("returns") or {}),
        checksum=checksum,
    )


def load_rules(path: Path | str) -> EngineRules:
    """
    Load and parse a rule file.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or does not
            describe a complete rule set.
    """
    path = Path(path)
    try:
        data = load_yaml_file(path)
    except yaml.YAMLError as e:
        raise ConfigurationError(str(path), f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")

    checksum = compute_checksum(data)
    try:
        rules = parse_rules(data, checksum=checksum)
    except KeyError as e:
        raise ConfigurationError(str(path), f"missing key {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(str(path), str(e)) from e

    logger.info(
        "TAX_CONFIG_TRACE",
        extra={
            "trace_type": "TAX_CONFIG_TRACE",
            "source": str(path),
            "version": rules.version,
            "checksum": checksum,
            "notified_service_count": len(rules.reverse_charge.notified_services),
            "tds_section_count": len(rules.tds.sections),
        },
    )
    return rules


@functools.lru_cache(maxsize=1)
def load_default_rules() -> EngineRules:
    """The packaged rule set, loaded once."""
    return load_rules(DEFAULT_RULES_PATH)
