"""
Tests for the invoice calculator (silver_kernel/domain/invoice.py).

Covers:
- The per-item silver weight, labor and amount formulas
- Rounding per item before totals
- GST on the subtotal
- Input validation (no partial invoices)
- Determinism (property test)
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from silver_kernel.domain.invoice import (
    ItemMeasurement,
    TaxConfig,
    calculate_invoice,
    to_decimal,
)
from silver_kernel.exceptions import CalculationError

SCENARIO_ITEM = {
    "grossWeight": 100,
    "netWeight": 95,
    "wastage": 2,
    "touch": 80,
    "laborRatePerKg": 500,
}


class TestItemFormulas:

    def test_scenario_item(self):
        invoice = calculate_invoice([SCENARIO_ITEM], 75)

        line = invoice.lines[0]
        assert line.line_no == 1
        assert line.silver_weight == Decimal("77.900")
        assert line.labor_charges == Decimal("50.00")
        assert line.item_amount == Decimal("5892.50")

        assert invoice.total_silver_weight == Decimal("77.900")
        assert invoice.total_net_weight == Decimal("95.000")
        assert invoice.total_labor_charges == Decimal("50.00")
        assert invoice.subtotal == Decimal("5892.50")
        assert invoice.total_amount == Decimal("5892.50")
        assert invoice.silver_rate == Decimal("75.0000")

    def test_accepts_snake_case_measurements(self):
        item = ItemMeasurement(
            gross_weight=Decimal("100"),
            net_weight=Decimal("95"),
            wastage=Decimal("2"),
            touch=Decimal("80"),
            labor_rate_per_kg=Decimal("500"),
        )
        assert calculate_invoice([item], "75").total_amount == Decimal("5892.50")

    def test_missing_optional_measurements_default_to_zero(self):
        invoice = calculate_invoice([{"grossWeight": 10, "netWeight": 10}], 80)
        line = invoice.lines[0]
        assert line.silver_weight == Decimal("0.000")
        assert line.labor_charges == Decimal("0.00")
        assert line.item_amount == Decimal("0.00")
        assert line.measurement.pieces == 1

    def test_weights_round_half_up_to_three_places(self):
        # (91.5 + 0) * 1.111 / 100 = 1.016565 -> 1.017
        invoice = calculate_invoice(
            [{"grossWeight": "1.111", "netWeight": "1.111", "touch": "91.5"}], 100
        )
        assert invoice.lines[0].silver_weight == Decimal("1.017")
        assert invoice.lines[0].item_amount == Decimal("101.70")

    def test_totals_are_sums_of_rounded_lines(self):
        items = [
            {"grossWeight": "10.005", "netWeight": "10.005", "touch": "92.5", "laborRatePerKg": "333"},
            {"grossWeight": "20.015", "netWeight": "19.5", "touch": "60", "wastage": "8", "laborRatePerKg": "777"},
        ]
        invoice = calculate_invoice(items, "81.25")
        assert invoice.subtotal == sum(line.item_amount for line in invoice.lines)
        assert invoice.total_silver_weight == sum(line.silver_weight for line in invoice.lines)
        assert invoice.total_labor_charges == sum(line.labor_charges for line in invoice.lines)
        assert [line.line_no for line in invoice.lines] == [1, 2]

    def test_total_wastage_is_sum_of_item_wastage(self):
        items = [dict(SCENARIO_ITEM), dict(SCENARIO_ITEM, wastage="3.5")]
        assert calculate_invoice(items, 75).total_wastage == Decimal("5.5000")

    def test_float_input_goes_through_repr(self):
        invoice = calculate_invoice([{"grossWeight": 0.1, "netWeight": 0.1, "touch": 100}], 1000)
        assert invoice.lines[0].silver_weight == Decimal("0.100")


class TestTax:

    def test_no_tax_by_default(self):
        invoice = calculate_invoice([SCENARIO_ITEM], 75)
        assert invoice.tax_applicable is False
        assert invoice.cgst == Decimal("0.00")
        assert invoice.sgst == Decimal("0.00")

    def test_gst_split_on_subtotal(self):
        invoice = calculate_invoice([SCENARIO_ITEM], 75, TaxConfig(applicable=True))
        # 5892.50 * 1.5% = 88.3875
        assert invoice.cgst == Decimal("88.39")
        assert invoice.sgst == Decimal("88.39")
        assert invoice.total_amount == Decimal("6069.28")

    def test_percentages_recorded_even_without_tax(self):
        invoice = calculate_invoice(
            [SCENARIO_ITEM], 75, TaxConfig(applicable=False, cgst_percent=Decimal("2.5"))
        )
        assert invoice.cgst_percent == Decimal("2.5000")
        assert invoice.cgst == Decimal("0.00")

    def test_negative_percentage_rejected(self):
        with pytest.raises(CalculationError):
            calculate_invoice(
                [SCENARIO_ITEM], 75, TaxConfig(applicable=True, cgst_percent=Decimal("-1"))
            )


class TestValidation:

    def test_empty_items_rejected(self):
        with pytest.raises(CalculationError, match="at least one item"):
            calculate_invoice([], 75)

    @pytest.mark.parametrize("rate", [0, -1, "abc", None])
    def test_bad_rate_rejected(self, rate):
        with pytest.raises(CalculationError):
            calculate_invoice([SCENARIO_ITEM], rate)

    def test_missing_net_weight_names_the_item(self):
        with pytest.raises(CalculationError) as exc_info:
            calculate_invoice([SCENARIO_ITEM, {"grossWeight": 5}], 75)
        assert exc_info.value.item_index == 1
        assert exc_info.value.field == "net_weight"

    def test_zero_net_weight_rejected(self):
        with pytest.raises(CalculationError):
            calculate_invoice([dict(SCENARIO_ITEM, netWeight=0)], 75)

    def test_negative_measurement_rejected(self):
        with pytest.raises(CalculationError) as exc_info:
            calculate_invoice([dict(SCENARIO_ITEM, wastage=-1)], 75)
        assert exc_info.value.field == "wastage"

    def test_non_numeric_measurement_rejected(self):
        with pytest.raises(CalculationError) as exc_info:
            calculate_invoice([dict(SCENARIO_ITEM, touch="eighty")], 75)
        assert exc_info.value.field == "touch"

    def test_fractional_pieces_rejected(self):
        with pytest.raises(CalculationError):
            calculate_invoice([dict(SCENARIO_ITEM, pieces="1.5")], 75)

    def test_boolean_is_not_a_number(self):
        with pytest.raises(CalculationError):
            to_decimal(True, "touch")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", float("inf")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(CalculationError):
            to_decimal(value, "touch")

    def test_unsupported_item_type(self):
        with pytest.raises(CalculationError):
            calculate_invoice([("100", "95")], 75)


_weights = st.decimals(min_value="0.001", max_value="5000", places=3)
_percent = st.decimals(min_value="0", max_value="100", places=2)
_labor = st.decimals(min_value="0", max_value="5000", places=2)
_rate = st.decimals(min_value="0.01", max_value="500", places=2)

_items = st.lists(
    st.fixed_dictionaries(
        {
            "grossWeight": _weights,
            "netWeight": _weights,
            "touch": _percent,
            "wastage": _percent,
            "laborRatePerKg": _labor,
        }
    ),
    min_size=1,
    max_size=6,
)


class TestProperties:

    @settings(max_examples=100, deadline=None)
    @given(items=_items, rate=_rate, taxed=st.booleans())
    def test_same_input_same_invoice(self, items, rate, taxed):
        tax = TaxConfig(applicable=taxed)
        assert calculate_invoice(items, rate, tax) == calculate_invoice(items, rate, tax)

    @settings(max_examples=100, deadline=None)
    @given(items=_items, rate=_rate, taxed=st.booleans())
    def test_total_is_subtotal_plus_tax(self, items, rate, taxed):
        invoice = calculate_invoice(items, rate, TaxConfig(applicable=taxed))
        assert invoice.total_amount == invoice.subtotal + invoice.cgst + invoice.sgst
        assert invoice.subtotal == sum(line.item_amount for line in invoice.lines)
        assert all(line.item_amount >= 0 for line in invoice.lines)
        assert invoice.total_amount.as_tuple().exponent == -2
