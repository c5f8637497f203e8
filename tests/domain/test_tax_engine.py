"""
Tests for invoice_kernel.domain.tax -- GST determination and split.

Covers the rate slab threshold, intrastate/interstate classification, the
odd-paisa remainder rule, accumulated validation errors and the audit
record attached to every calculation.
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from invoice_kernel.domain.clock import DeterministicClock
from invoice_kernel.domain.states import INDIAN_STATES
from invoice_kernel.domain.tax import (
    GSTRateConfig,
    GSTType,
    TaxEngine,
    TaxInput,
    shipping_tax,
    split_tax,
)
from invoice_kernel.exceptions import TaxValidationError, ValidationError

from tests.factories import FIXED_NOW


def _input(subtotal: str, customer: str | None, store: str | None, **kw) -> TaxInput:
    amount = Decimal(subtotal)
    return TaxInput(
        order_total=kw.pop("order_total", amount),
        subtotal=amount,
        customer_state=customer,
        store_state=store,
        **kw,
    )


@pytest.fixture
def engine():
    return TaxEngine(clock=DeterministicClock(FIXED_NOW), id_factory=lambda: "abcd1234")


class TestScenarios:
    """Worked examples a merchant would check by hand."""

    def test_intrastate_below_threshold(self, engine):
        result = engine.calculate(_input("800", "MH", "MH"))

        assert result.gst_type == GSTType.INTRASTATE
        assert result.rate == Decimal("0.05")
        assert result.total_tax == Decimal("40.00")
        assert result.cgst_amount == Decimal("20.00")
        assert result.sgst_amount == Decimal("20.00")
        assert result.igst_amount == Decimal("0.00")

    def test_interstate_above_threshold(self, engine):
        result = engine.calculate(_input("1500", "DL", "KA"))

        assert result.gst_type == GSTType.INTERSTATE
        assert result.rate == Decimal("0.12")
        assert result.total_tax == Decimal("180.00")
        assert result.igst_amount == Decimal("180.00")
        assert result.cgst_amount == Decimal("0.00")
        assert result.sgst_amount == Decimal("0.00")

    def test_threshold_itself_uses_high_rate(self, engine):
        result = engine.calculate(_input("1000", "MH", "MH"))

        assert result.rate == Decimal("0.12")
        assert result.total_tax == Decimal("120.00")

    def test_just_below_threshold_uses_low_rate(self, engine):
        result = engine.calculate(_input("999.99", "MH", "GJ"))

        assert result.rate == Decimal("0.05")
        assert result.total_tax == Decimal("50.00")

    def test_odd_paisa_goes_to_cgst(self, engine):
        # 800.10 * 5% = 40.005 -> 40.01 with half-up rounding
        result = engine.calculate(_input("800.10", "MH", "MH"))

        assert result.total_tax == Decimal("40.01")
        assert result.sgst_amount == Decimal("20.00")
        assert result.cgst_amount == Decimal("20.01")

    def test_state_codes_are_normalized(self, engine):
        result = engine.calculate(_input("500", " mh ", "Mh"))

        assert result.gst_type == GSTType.INTRASTATE
        assert result.customer_state == "MH"
        assert result.store_state == "MH"

    def test_taxable_amount_is_rounded_subtotal(self, engine):
        result = engine.calculate(_input("1234.565", "TN", "KA"))

        assert result.taxable_amount == Decimal("1234.57")


class TestValidation:
    def test_collects_every_violation(self, engine):
        bad = TaxInput(
            order_total=Decimal("0"),
            subtotal=None,
            customer_state="",
            store_state="XX",
        )

        with pytest.raises(TaxValidationError) as exc_info:
            engine.calculate(bad)

        assert exc_info.value.errors == (
            "Order total must be greater than 0",
            "Subtotal must be greater than 0",
            "Customer state is required",
            "Invalid store state code: XX",
        )
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_is_a_validation_error(self, engine):
        with pytest.raises(ValidationError):
            engine.calculate(_input("100", "MH", None))

    def test_negative_subtotal_rejected(self, engine):
        with pytest.raises(TaxValidationError) as exc_info:
            engine.calculate(_input("-5", "MH", "MH", order_total=Decimal("10")))

        assert exc_info.value.errors == ("Subtotal must be greater than 0",)

    def test_validation_failure_is_logged(self, engine, captured_logs):
        with pytest.raises(TaxValidationError):
            engine.calculate(_input("100", "ZZ", "MH", order_id="7001"))

        failures = [r for r in captured_logs() if r["message"] == "gst_validation_failed"]
        assert failures
        assert failures[0]["order_id"] == "7001"


class TestAudit:
    def test_audit_record_is_attached(self, engine):
        result = engine.calculate(_input("800", "MH", "MH", order_id="5001"))

        audit = result.audit
        assert audit is not None
        assert audit.calculation_id == f"gst_{int(FIXED_NOW.timestamp() * 1000)}_abcd1234"
        assert audit.order_id == "5001"
        assert audit.timestamp == FIXED_NOW
        assert audit.outputs["total_tax"] == "40.00"
        assert audit.version == TaxEngine.VERSION

    def test_hsn_resolved_from_product_type(self, engine):
        result = engine.calculate(_input("800", "MH", "MH", product_type="Poly-cotton blend"))

        assert result.hsn_code == "6109.90"

    def test_calculation_is_logged(self, engine, captured_logs):
        engine.calculate(_input("1500", "DL", "KA", order_id="5002"))

        records = [r for r in captured_logs() if r["message"] == "gst_calculated"]
        assert records[-1]["gst_type"] == "INTERSTATE"
        assert records[-1]["total_tax"] == "180.00"


class TestRateConfig:
    def test_custom_slab(self):
        engine = TaxEngine(GSTRateConfig(Decimal("500"), Decimal("0.05"), Decimal("0.18")))

        assert engine.calculate(_input("600", "MH", "MH")).total_tax == Decimal("108.00")

    @pytest.mark.parametrize("threshold,low,high", [
        ("0", "0.05", "0.12"),
        ("1000", "-0.01", "0.12"),
        ("1000", "0.05", "1.5"),
    ])
    def test_invalid_slab_rejected(self, threshold, low, high):
        with pytest.raises(ValueError):
            GSTRateConfig(Decimal(threshold), Decimal(low), Decimal(high))


class TestSplit:
    def test_allocation_reconciles_with_breakdown(self, engine):
        breakdown = engine.calculate(_input("666.66", "MH", "MH"))
        splits = breakdown.allocate([Decimal("333.33"), Decimal("333.33")])

        # 33.33 total: cgst 16.67, sgst 16.66; the odd paisa lands on line 1
        assert [(s.cgst, s.sgst) for s in splits] == [
            (Decimal("8.34"), Decimal("8.33")),
            (Decimal("8.33"), Decimal("8.33")),
        ]
        assert sum(s.total for s in splits) == breakdown.total_tax

    def test_allocation_interstate(self, engine):
        breakdown = engine.calculate(_input("1500", "KA", "MH"))
        splits = breakdown.allocate([Decimal("1000"), Decimal("500")])

        assert [s.igst for s in splits] == [Decimal("120.00"), Decimal("60.00")]
        assert all(s.cgst == s.sgst == Decimal("0") for s in splits)

    @pytest.mark.parametrize("gst_type,expected", [
        (GSTType.INTRASTATE, (Decimal("84.75"), Decimal("7.63"), Decimal("7.62"), Decimal("0"))),
        (GSTType.INTERSTATE, (Decimal("84.75"), Decimal("0"), Decimal("0"), Decimal("15.25"))),
    ])
    def test_shipping_tax_is_carved_out_of_the_charge(self, gst_type, expected):
        taxable, split = shipping_tax(Decimal("100"), gst_type)

        assert (taxable, split.cgst, split.sgst, split.igst) == expected
        assert taxable + split.total == Decimal("100.00")

    def test_interstate_split_is_all_igst(self):
        split = split_tax(Decimal("18.5"), GSTType.INTERSTATE)

        assert (split.cgst, split.sgst, split.igst) == (
            Decimal("0.00"), Decimal("0.00"), Decimal("18.50"),
        )


_subtotals = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("10000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
_states = st.sampled_from(sorted(INDIAN_STATES))


class TestProperties:
    @settings(
        max_examples=200,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(subtotal=_subtotals, customer=_states, store=_states)
    def test_components_reconcile(self, subtotal, customer, store):
        result = TaxEngine().calculate(
            TaxInput(subtotal, subtotal, customer, store),
        )

        assert result.cgst_amount + result.sgst_amount + result.igst_amount == result.total_tax
        if customer == store:
            assert result.gst_type == GSTType.INTRASTATE
            assert result.igst_amount == 0
            assert Decimal("0") <= result.cgst_amount - result.sgst_amount <= Decimal("0.01")
        else:
            assert result.gst_type == GSTType.INTERSTATE
            assert result.cgst_amount == result.sgst_amount == 0

    @settings(
        max_examples=200,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(subtotal=_subtotals)
    def test_rate_follows_threshold(self, subtotal):
        result = TaxEngine().calculate(TaxInput(subtotal, subtotal, "MH", "KA"))

        expected = Decimal("0.05") if subtotal < 1000 else Decimal("0.12")
        assert result.rate == expected
