"""
Amount Normalizer - Render integer base-unit amounts for display.

Amounts stay integers (or their decimal string) everywhere else; only the
display string produced here is lossy. Works on the digit string alone,
so amounts of any size stay exact:

    sign | strip leading zeros | left-pad past decimals | split
         | strip trailing fraction zeros | truncate fraction | re-attach sign

Extra fraction digits are truncated, never rounded.
"""

from typing import Union


DEFAULT_MAX_FRACTION_DIGITS = 6


def format_units(
    raw: Union[int, str],
    decimals: int,
    max_fraction_digits: int = DEFAULT_MAX_FRACTION_DIGITS,
) -> str:
    """
    Format a base-unit amount as a decimal string.

    Args:
        raw: Integer amount (int or digit string, optionally signed)
        decimals: Number of decimal places of the asset
        max_fraction_digits: Fraction digits kept after trailing zeros are stripped

    Returns:
        Decimal string; a fraction that is all zeros is dropped with its "."

    Raises:
        ValueError: If raw is not an integer or decimals < 0

    Examples:
        format_units(1500000, 6)             -> "1.5"
        format_units("-1500000", 6)          -> "-1.5"
        format_units("1000001", 7)           -> "0.100000"
        format_units("123456789", 9)         -> "0.123456"
        format_units(1000, 0)                -> "1000"
    """
    if isinstance(raw, bool):
        raise ValueError("amount must be an integer")
    if decimals < 0:
        raise ValueError("decimals must be non-negative")

    text = str(raw).strip()
    negative = text.startswith("-")
    digits = text[1:] if text[:1] in ("-", "+") else text
    if not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"amount must be an integer string, got {raw!r}")

    sign = "-" if negative else ""
    trimmed = digits.lstrip("0") or "0"
    if decimals == 0:
        return sign + trimmed

    padded = trimmed.rjust(decimals + 1, "0")
    whole = padded[:-decimals]
    fraction = padded[-decimals:].rstrip("0")[:max(0, max_fraction_digits)]

    if not fraction:
        return sign + whole
    return f"{sign}{whole}.{fraction}"
