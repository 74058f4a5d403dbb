"""
Amount Normalizer Tests.
"""

import pytest

from bridge_explorer.amounts import format_units


class TestFormatUnits:
    """Tests for format_units."""

    @pytest.mark.parametrize("raw,decimals,expected", [
        ("1000000000", 9, "1"),
        ("0", 18, "0"),
        ("123456789", 6, "123.456789"),
        (1_500_000, 6, "1.5"),
        (10 ** 18, 18, "1"),
        (123_456_789, 9, "0.123456"),
        (1_234_567, 6, "1.234567"),
        (12_345_678, 7, "1.234567"),
        (0, 9, "0"),
        (1000, 0, "1000"),
        (100_000_000, 8, "1"),
    ])
    def test_formatting(self, raw, decimals, expected):
        assert format_units(raw, decimals) == expected

    def test_at_most_six_fraction_digits(self):
        assert format_units("123456789", 8) == "1.234567"

    def test_truncates_instead_of_rounding(self):
        assert format_units(1_999_999_999, 9) == "1.999999"

    def test_trailing_zeros_stripped_before_truncation(self):
        assert format_units("1000001", 7) == "0.100000"
        assert format_units(1, 18) == "0.000000"

    def test_accepts_digit_strings(self):
        assert format_units("2500000000", 9) == "2.5"
        assert format_units("000150", 2) == "1.5"

    @pytest.mark.parametrize("raw,decimals,expected", [
        ("-1500000", 6, "-1.5"),
        (-1_500_000, 6, "-1.5"),
        ("+1500000", 6, "1.5"),
        ("-5", 0, "-5"),
        ("-1", 3, "-0.001"),
    ])
    def test_sign_reattached(self, raw, decimals, expected):
        assert format_units(raw, decimals) == expected

    def test_custom_fraction_digits(self):
        assert format_units(1_239, 3, max_fraction_digits=2) == "1.23"
        assert format_units(1_239, 3, max_fraction_digits=0) == "1"

    def test_large_values_stay_exact(self):
        raw = 123_456_789_012_345_678_901_234_567_890
        assert format_units(raw, 18) == "123456789012.345678"
        assert format_units(str(2 ** 256 - 1), 0) == str(2 ** 256 - 1)

    @pytest.mark.parametrize("raw", ["1.5", "abc", "", "-", "--5", "1e9", True])
    def test_invalid_amount(self, raw):
        with pytest.raises(ValueError):
            format_units(raw, 6)

    def test_negative_decimals(self):
        with pytest.raises(ValueError):
            format_units(1, -1)
