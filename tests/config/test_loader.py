"""
Tests for the statutory rule loader.

Covers:
- The packaged default rules parse into frozen, Decimal-valued tables
- Rule lookups (service rates, notified services, TDS sections)
- Malformed files raise ConfigurationError naming the file
- The checksum is deterministic and changes with the content
"""

import dataclasses
from datetime import date
from decimal import Decimal

import pytest

from tax_config import (
    EngineRules,
    compute_checksum,
    get_default_rules,
    load_rules,
)
from tax_config.loader import DEFAULT_RULES_PATH
from tax_kernel.exceptions import ConfigurationError, UnknownSectionError

MINIMAL_RULES = """\
version: "test-1"
effective_from: "2017-07-01"
"""


class TestDefaultRules:
    """The packaged rule file."""

    def test_loads(self, rules):
        assert isinstance(rules, EngineRules)
        assert rules.version == "2024.1"
        assert rules.effective_from == date(2017, 7, 1)

    def test_cached(self):
        assert get_default_rules() is get_default_rules()

    def test_checksum_stamped(self, rules):
        assert len(rules.checksum) == 64

    def test_frozen(self, rules):
        with pytest.raises(dataclasses.FrozenInstanceError):
            rules.version = "tampered"

    def test_rates_are_decimal(self, rules):
        assert rules.reverse_charge.default_gst_rate == Decimal("18")
        assert isinstance(rules.tds.no_pan_rate, Decimal)
        assert rules.tds.section("194Q").other_rate == Decimal("0.1")

    def test_tds_cess_and_surcharge_slabs(self, rules):
        tds = rules.tds
        assert tds.cess_rate == Decimal("4")
        assert tds.surcharge_rate(True, Decimal("5000000")) == Decimal("0")
        assert tds.surcharge_rate(True, Decimal("6000000")) == Decimal("10")
        assert tds.surcharge_rate(True, Decimal("60000000")) == Decimal("37")
        assert tds.surcharge_rate(False, Decimal("50000000")) == Decimal("2")
        assert tds.surcharge_rate(False, Decimal("150000000")) == Decimal("5")

    def test_reconciliation_weights(self, rules):
        weights = rules.reconciliation
        assert (
            weights.gstin_weight,
            weights.document_number_weight,
            weights.document_date_weight,
            weights.taxable_value_weight,
            weights.cgst_weight,
            weights.sgst_weight,
            weights.igst_weight,
        ) == (30, 20, 10, 15, 10, 10, 5)
        assert weights.amount_tolerance == Decimal("0.01")


class TestReverseChargeRules:
    """Service-rate and notified-service lookups."""

    def test_rate_for_known_service(self, rules):
        assert rules.reverse_charge.rate_for_service("software") == Decimal("18")

    def test_rate_for_unknown_service_falls_back(self, rules):
        assert rules.reverse_charge.rate_for_service("UNLISTED") == Decimal("18")
        assert rules.reverse_charge.rate_for_service(None) == Decimal("18")

    def test_notified_by_service_type(self, rules):
        gta = rules.reverse_charge.find_notified_service("GTA")
        assert gta.code == "GTA_ROAD"
        assert gta.gst_rate == Decimal("5")

    def test_notified_by_sac_prefix(self, rules):
        legal = rules.reverse_charge.find_notified_service(None, "998212")
        assert legal.code == "LEGAL"

    def test_not_effective_before_notification(self, rules):
        security = rules.reverse_charge.find_notified_service(
            "SECURITY", as_of=date(2018, 6, 1)
        )
        assert security is None

    def test_effective_after_notification(self, rules):
        security = rules.reverse_charge.find_notified_service(
            "SECURITY", as_of=date(2019, 6, 1)
        )
        assert security.code == "SECURITY"

    def test_unknown_service(self, rules):
        assert rules.reverse_charge.find_notified_service("SOFTWARE") is None


class TestTDSRules:
    def test_section_lookup_case_insensitive(self, rules):
        section = rules.tds.section("194j")
        assert section.code == "194J"
        assert section.aggregate_threshold == Decimal("30000")

    def test_rate_by_deductee(self, rules):
        section = rules.tds.section("194C")
        assert section.rate_for(individual_or_huf=True) == Decimal("1")
        assert section.rate_for(individual_or_huf=False) == Decimal("2")

    def test_unknown_section(self, rules):
        with pytest.raises(UnknownSectionError):
            rules.tds.section("194Z")


class TestITCRules:
    def test_blocked_reason_text(self, rules):
        text = rules.itc.blocked_reason_text("motor_vehicle")
        assert text.startswith("Section 17(5)(a)")

    def test_free_text_reason(self, rules):
        assert rules.itc.blocked_reason_text("Gifts") == "Section 17(5) - Gifts"

    def test_no_reason(self, rules):
        assert rules.itc.blocked_reason_text(None) == "Section 17(5) - Blocked category"


class TestLoadRules:
    """Loading caller-supplied rule files."""

    def test_minimal_file_uses_defaults(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(MINIMAL_RULES)
        rules = load_rules(path)
        assert rules.version == "test-1"
        assert rules.reverse_charge.self_invoice_window_days == 30
        assert rules.returns.late_fee_cap == Decimal("5000")
        assert rules.tds.sections == ()

    def test_get_default_rules_with_path(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(MINIMAL_RULES)
        assert get_default_rules(path).version == "test-1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("version: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_rules(path)
        assert str(path) in str(exc_info.value)

    def test_top_level_not_mapping(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_rules(path)

    def test_missing_version(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text('effective_from: "2017-07-01"\n')
        with pytest.raises(ConfigurationError) as exc_info:
            load_rules(path)
        assert "version" in exc_info.value.reason

    def test_rate_out_of_range(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(MINIMAL_RULES + 'reverse_charge:\n  default_gst_rate: "140"\n')
        with pytest.raises(ConfigurationError):
            load_rules(path)

    def test_bad_date(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text('version: "x"\neffective_from: "not-a-date"\n')
        with pytest.raises(ConfigurationError):
            load_rules(path)

    def test_float_rates_read_exactly(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            MINIMAL_RULES
            + "tds:\n  sections:\n"
            + "    - {code: '194Q', description: Goods, individual_rate: 0.1, other_rate: 0.1}\n"
        )
        assert load_rules(path).tds.section("194Q").other_rate == Decimal("0.1")

    def test_config_trace_logged(self, tmp_path, captured_logs):
        path = tmp_path / "rules.yaml"
        path.write_text(MINIMAL_RULES)
        rules = load_rules(path)
        traces = [r for r in captured_logs() if r["message"] == "TAX_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == rules.checksum
        assert traces[0]["version"] == "test-1"


class TestChecksum:
    def test_deterministic(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_default_file_checksum_matches_reload(self, rules):
        assert load_rules(DEFAULT_RULES_PATH).checksum == rules.checksum
