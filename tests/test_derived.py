"""
Unit Tests for Derived Clinical Values

BMI + category, LH:FSH ratio, HOMA-IR and display rounding.
"""
import pytest

from pcos_portal.derived import (
    bmi_category,
    calculate_bmi,
    calculate_bmi_with_category,
    calculate_homa_ir,
    calculate_lh_fsh_ratio,
    format_derived,
)


class TestBMI:
    """Tests for BMI calculation and bucketing."""

    @pytest.mark.parametrize("height_cm, weight_kg", [
        (150.0, 45.0),
        (165.5, 70.2),
        (180.0, 110.0),
        (172.3, 58.9),
    ])
    def test_bmi_rounded_to_two_decimals(self, height_cm, weight_kg):
        """BMI is weight over height in metres squared, rounded to 2 places."""
        assert calculate_bmi(height_cm, weight_kg) == round(weight_kg / (height_cm / 100) ** 2, 2)

    def test_bmi_example(self):
        assert calculate_bmi(165.0, 60.0) == 22.04

    @pytest.mark.parametrize("height_cm, weight_kg", [(None, 60.0), (165.0, None), (None, None), (0, 60.0)])
    def test_bmi_absent_without_inputs(self, height_cm, weight_kg):
        assert calculate_bmi(height_cm, weight_kg) is None

    @pytest.mark.parametrize("bmi, expected", [
        (16.0, "Underweight"),
        (18.49, "Underweight"),
        (18.5, "Normal"),
        (24.99, "Normal"),
        (25.0, "Overweight"),
        (29.99, "Overweight"),
        (30.0, "Obese"),
        (41.7, "Obese"),
    ])
    def test_category_thresholds(self, bmi, expected):
        """Buckets: <18.5, [18.5, 25), [25, 30), >=30."""
        assert bmi_category(bmi) == expected

    def test_category_absent_without_bmi(self):
        assert bmi_category(None) is None

    @pytest.mark.parametrize("weight_kg, stored, expected", [
        (18.497, 18.5, "Underweight"),
        (24.996, 25.0, "Normal"),
        (29.995, None, "Overweight"),
    ])
    def test_category_uses_unrounded_bmi(self, weight_kg, stored, expected):
        """Values just under a threshold keep the lower bucket even when they round up."""
        bmi, category = calculate_bmi_with_category(100.0, weight_kg)
        assert category == expected
        if stored is not None:
            assert bmi == stored

    def test_bmi_with_category_absent_without_inputs(self):
        assert calculate_bmi_with_category(None, 60.0) == (None, None)


class TestLhFshRatio:
    """Tests for the LH:FSH ratio."""

    def test_ratio_example(self):
        ratio = calculate_lh_fsh_ratio(5.2, 4.1)
        assert ratio == pytest.approx(5.2 / 4.1)
        assert format_derived(ratio) == "1.27"

    def test_ratio_absent_when_fsh_zero(self):
        assert calculate_lh_fsh_ratio(5.2, 0) is None

    @pytest.mark.parametrize("lh, fsh", [(None, 4.1), (5.2, None), (None, None)])
    def test_ratio_absent_when_input_missing(self, lh, fsh):
        assert calculate_lh_fsh_ratio(lh, fsh) is None

    def test_zero_lh_is_a_value(self):
        """LH of zero is present, not missing."""
        assert calculate_lh_fsh_ratio(0.0, 4.0) == 0.0


class TestHomaIR:
    """Tests for HOMA-IR."""

    def test_homa_ir_example(self):
        assert calculate_homa_ir(95.5, 8.2) == pytest.approx(1.9336, abs=1e-4)

    def test_homa_ir_formula(self):
        assert calculate_homa_ir(100.0, 10.0) == pytest.approx(1000.0 / 405)

    @pytest.mark.parametrize("glucose, insulin", [(95.5, None), (None, 8.2), (None, None)])
    def test_homa_ir_absent_when_input_missing(self, glucose, insulin):
        assert calculate_homa_ir(glucose, insulin) is None

    def test_zero_inputs_still_compute(self):
        assert calculate_homa_ir(0.0, 8.2) == 0.0


class TestFormatting:
    """Display rounding for derived values."""

    def test_two_decimals(self):
        assert format_derived(1.93358) == "1.93"

    def test_missing_value_placeholder(self):
        assert format_derived(None) == "—"
        assert format_derived(None, placeholder="n/a") == "n/a"
