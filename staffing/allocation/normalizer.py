"""Occupancy value normalization.

Converts the encodings occupancy arrives in (typed text with a comma or dot
separator, stored numbers, legacy percentages) into a single canonical
OccupancyValue. Every function here is total: bad input degrades to zero or
to the nearest bound and is reported as degraded, never raised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from loguru import logger

from staffing.allocation.types import ONE, ZERO, OccupancyValue

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+([.,]\d*)?|[.,]\d+)$")
_TWO_PLACES = Decimal("0.01")
LEGACY_PERCENT_SCALE = Decimal(100)


@dataclass(frozen=True)
class NormalizedValue:
    """Outcome of normalizing a raw input.

    Attributes:
        value: Canonical occupancy
        degraded: True when the input was unparsable, non-finite or out of range
    """

    value: OccupancyValue
    degraded: bool = False


def _to_decimal(raw: object) -> Decimal | None:
    """Read a raw value as a finite Decimal, or None when it is not a number."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        number = raw
    elif isinstance(raw, int):
        number = Decimal(raw)
    elif isinstance(raw, float):
        number = Decimal(repr(raw))
    elif isinstance(raw, str):
        text = raw.strip()
        if not _NUMBER_PATTERN.match(text):
            return None
        try:
            number = Decimal(text.replace(",", "."))
        except InvalidOperation:
            return None
    else:
        return None

    if not number.is_finite():
        return None
    return number


def _clamp(number: Decimal) -> tuple[Decimal, bool]:
    if number < ZERO:
        return ZERO, True
    if number > ONE:
        return ONE, True
    # Adding zero folds "-0" into "0".
    return number + ZERO, False


def normalize(raw: str | None) -> NormalizedValue:
    """Normalize directly typed input into an occupancy fraction.

    Accepts ``"0,5"`` and ``"0.5"`` alike. Empty input is a plain zero;
    anything unparsable is a degraded zero. No percentage heuristic is applied
    to typed input: ``"50"`` clamps to 1.

    Args:
        raw: Text as typed by the user

    Returns:
        NormalizedValue with the clamped fraction and the degraded flag
    """
    if raw is None or not raw.strip():
        return NormalizedValue(OccupancyValue.zero())

    number = _to_decimal(raw)
    if number is None:
        logger.debug(f"[NORMALIZER] Unparsable occupancy input {raw!r}, using 0")
        return NormalizedValue(OccupancyValue.zero(), degraded=True)

    clamped, degraded = _clamp(number)
    if degraded:
        logger.debug(f"[NORMALIZER] Occupancy input {raw!r} clamped to {clamped}")
    return NormalizedValue(OccupancyValue(clamped), degraded=degraded)


def parse(raw: str | None) -> OccupancyValue:
    """Parse typed input into an OccupancyValue, discarding the degraded flag."""
    return normalize(raw).value


def normalize_stored(value: object) -> NormalizedValue:
    """Normalize an externally stored occupancy value.

    Stored values may be text, int, float or Decimal, and older records hold
    percentages (0-100) instead of fractions. Anything above 1 is therefore
    read as a percentage and divided by 100 before clamping.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return NormalizedValue(OccupancyValue.zero())

    number = _to_decimal(value)
    if number is None:
        logger.warning(f"[NORMALIZER] Unreadable stored occupancy {value!r}, using 0")
        return NormalizedValue(OccupancyValue.zero(), degraded=True)

    if number > ONE:
        number = number / LEGACY_PERCENT_SCALE

    clamped, degraded = _clamp(number)
    return NormalizedValue(OccupancyValue(clamped), degraded=degraded)


def coerce_stored(value: object) -> OccupancyValue:
    """Coerce an externally stored occupancy value, discarding the degraded flag."""
    return normalize_stored(value).value


def format_occupancy(value: OccupancyValue, separator: str = ",") -> str:
    """Render an occupancy with exactly two decimals, e.g. ``"0,50"``."""
    text = str(value.fraction.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))
    return text.replace(".", separator)


def format_percentage(amount: Decimal) -> str:
    """Render a fraction as a whole percentage, e.g. ``Decimal("1.1")`` -> ``"110%"``."""
    return f"{(amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)}%"
