# ============================================================================
# Trade Audit Engine v1.0.0
# Decimal Gateway - Numeric Normalisation for Audit Figures
# ============================================================================
#
# Reliability Level: L6 Critical
# Purpose: Every figure read from storage or a price feed becomes a
#          decimal.Decimal before it reaches an audit comparison
#
# MANDATE:
#   - Floats are converted via str() to avoid binary precision loss
#   - None and blank values are treated as zero (nullable storage columns)
#   - Comparisons run on unquantized values; quantization is for display
#
# Error Codes:
#   - AUD-DEC-001: Decimal conversion failed
#
# ============================================================================

from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Optional, Union, Any
import logging

logger = logging.getLogger(__name__)

Numeric = Union[Decimal, str, int, float, None]


class DecimalGateway:
    """
    Central conversion layer for audit figures.

    Reliability Level: L6 Critical
    Input Constraints: Any numeric value (Decimal, str, int, float, None)
    Side Effects: Logs AUD-DEC-001 on conversion failure

    Example Usage:
        gateway = DecimalGateway()

        price = gateway.to_decimal(1234.5678)            # Decimal('1234.5678')
        shown = gateway.to_decimal(price, gateway.PRICE_PRECISION)
        score = gateway.to_score("87.456")               # Decimal('87.46')
    """

    PRICE_PRECISION = Decimal('0.01')
    CRYPTO_PRECISION = Decimal('0.00000001')
    PERCENTAGE_PRECISION = Decimal('0.0001')
    SCORE_PRECISION = Decimal('0.01')

    SCORE_MIN = Decimal('0')
    SCORE_MAX = Decimal('100')

    def to_decimal(
        self,
        value: Numeric,
        precision: Optional[Decimal] = None,
        correlation_id: Optional[str] = None
    ) -> Decimal:
        """
        Convert any numeric value to Decimal.

        Args:
            value: Numeric value to convert
            precision: Optional quantum; None keeps full precision
            correlation_id: Audit trail identifier

        Returns:
            Decimal value (quantized with ROUND_HALF_EVEN when precision given)

        Raises:
            ValueError: If value cannot be converted (AUD-DEC-001)
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            result = Decimal('0')
        elif isinstance(value, Decimal):
            result = value
        else:
            try:
                # Always via string so 0.1 stays 0.1
                result = Decimal(str(value).strip())
            except (InvalidOperation, ValueError, TypeError) as e:
                logger.error(
                    f"[AUD-DEC-001] Decimal conversion failed | "
                    f"value={value!r} | type={type(value).__name__} | "
                    f"correlation_id={correlation_id} | error={e}"
                )
                raise ValueError(
                    f"AUD-DEC-001: Cannot convert '{value}' to Decimal"
                ) from e

        if not result.is_finite():
            logger.error(
                f"[AUD-DEC-001] Non-finite value rejected | value={value!r} | "
                f"correlation_id={correlation_id}"
            )
            raise ValueError(f"AUD-DEC-001: Non-finite value '{value}'")

        if precision is not None:
            result = result.quantize(precision, rounding=ROUND_HALF_EVEN)
        return result

    def to_score(self, value: Numeric) -> Decimal:
        """Convert to a 0-100 score with 2 decimal places, clamped."""
        score = self.to_decimal(value)
        score = max(self.SCORE_MIN, min(self.SCORE_MAX, score))
        return score.quantize(self.SCORE_PRECISION, rounding=ROUND_HALF_EVEN)

    def ratio_score(self, working: int, expected: int) -> Decimal:
        """
        Score a working / expected ratio on the 0-100 scale.

        Ratios above 1 are capped at 100. An expected count of zero scores 0.
        """
        if expected <= 0:
            return self.SCORE_MIN.quantize(self.SCORE_PRECISION)
        return self.to_score(Decimal(working) / Decimal(expected) * Decimal('100'))

    def format_percentage(self, value: Decimal, places: int = 2) -> str:
        """
        Render a signed percentage string, e.g. '+12.50%' or '-3.10%'.
        """
        quantum = Decimal(1).scaleb(-places)
        shown = value.quantize(quantum, rounding=ROUND_HALF_EVEN)
        sign = "+" if shown >= 0 else ""
        return f"{sign}{shown}%"


_GATEWAY = DecimalGateway()


def to_decimal(value: Any, precision: Optional[Decimal] = None) -> Decimal:
    """Module-level shortcut around a shared DecimalGateway."""
    return _GATEWAY.to_decimal(value, precision)
