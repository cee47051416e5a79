"""
Tolerance Comparator

Reliability Level: L6 Critical
Input Constraints: Numeric inputs convertible to Decimal
Side Effects: None (pure function)

Compares a recomputed figure with its persisted counterpart:
- difference = |calculated - stored|
- percentage_diff = difference / |stored| * 100
  (stored == 0: 0 when calculated == 0, otherwise 100)
- PASS when percentage_diff <= tolerance, WARNING when <= 2x tolerance,
  FAIL otherwise

Python 3.8 Compatible - No union type hints (X | None)
"""

from decimal import Decimal

from tradeaudit.exchange.decimal_gateway import DecimalGateway, Numeric
from tradeaudit.logic.models import ToleranceResult, Verdict

# Default tolerance used by every audit (percent)
DEFAULT_TOLERANCE_PERCENT = Decimal("1.0")

# Default assumed trading fee rate (fraction, 0.1%)
DEFAULT_FEE_RATE = Decimal("0.001")

WARNING_MULTIPLIER = Decimal("2")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

_gateway = DecimalGateway()


def classify(percentage_diff: Decimal, tolerance_percent: Decimal) -> Verdict:
    """Map a percentage deviation onto PASS / WARNING / FAIL."""
    if percentage_diff <= tolerance_percent:
        return Verdict.PASS
    if percentage_diff <= tolerance_percent * WARNING_MULTIPLIER:
        return Verdict.WARNING
    return Verdict.FAIL


def compare(
    calculated: Numeric,
    stored: Numeric,
    tolerance_percent: Numeric = DEFAULT_TOLERANCE_PERCENT,
    label: str = "",
) -> ToleranceResult:
    """
    Compare a calculated value against a stored value within a tolerance.

    Args:
        calculated: Value recomputed by the audit
        stored: Value persisted by the system under audit
        tolerance_percent: Allowed deviation in percent (1 = 1%)
        label: Human-readable name of the compared figure

    Returns:
        Fresh immutable ToleranceResult
    """
    calc = _gateway.to_decimal(calculated)
    stor = _gateway.to_decimal(stored)
    tolerance = _gateway.to_decimal(tolerance_percent)

    difference = abs(calc - stor)

    if stor == _ZERO:
        percentage_diff = _ZERO if calc == _ZERO else _HUNDRED
    else:
        percentage_diff = difference / abs(stor) * _HUNDRED

    return ToleranceResult(
        calculated=calc,
        stored=stor,
        difference=difference,
        percentage_diff=percentage_diff,
        tolerance_used=tolerance,
        verdict=classify(percentage_diff, tolerance),
        label=label,
    )


def placeholder_pass(label: str, tolerance_percent: Numeric = DEFAULT_TOLERANCE_PERCENT) -> ToleranceResult:
    """
    Trivially passing comparison used where no real check exists yet.

    The label is suffixed so reports show the check is unverified.
    """
    return compare(_ZERO, _ZERO, tolerance_percent, f"{label} (unverified placeholder)")
