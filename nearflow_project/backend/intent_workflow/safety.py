"""
Safety Guard - slippage ceilings and minimum-output floors
"""
import logging
from typing import Any, Optional

from .errors import SafetyError
from .normalizer import RAW_AMOUNT_PATTERN, parse_raw_amount

logger = logging.getLogger(__name__)

HARD_MAX_SLIPPAGE_BPS = 10000


class SafetyCheckResult:
    """Result of a safety check"""
    def __init__(self, passed: bool, reason: Optional[str] = None, value: Optional[int] = None):
        self.passed = passed
        self.reason = reason
        self.value = value

    def raise_for_failure(self) -> "SafetyCheckResult":
        if not self.passed:
            raise SafetyError(self.reason)
        return self


def floor_for_slippage(amount_out_raw: str, slippage_bps: int) -> str:
    """Smallest acceptable output for a quoted amount and slippage tolerance"""
    amount_out = int(amount_out_raw)
    return str(amount_out * (HARD_MAX_SLIPPAGE_BPS - slippage_bps) // HARD_MAX_SLIPPAGE_BPS)


class SafetyGuard:
    """
    Rejects any slippage or minimum-output value that is less protective than
    allowed. Values are never clamped.
    """

    def __init__(self, max_slippage_bps: int = 1000):
        self.max_slippage_bps = max_slippage_bps

    @property
    def slippage_ceiling(self) -> int:
        return min(HARD_MAX_SLIPPAGE_BPS, self.max_slippage_bps)

    def check_slippage(self, slippage_bps: int) -> SafetyCheckResult:
        ceiling = self.slippage_ceiling
        if slippage_bps > ceiling:
            return SafetyCheckResult(
                passed=False,
                reason=f"slippageBps {slippage_bps} exceeds the maximum allowed {ceiling}",
            )
        return SafetyCheckResult(passed=True, value=slippage_bps)

    def enforce_slippage(self, slippage_bps: int) -> int:
        return self.check_slippage(slippage_bps).raise_for_failure().value

    def check_quoted_amount_out(self, quoted_amount_out_raw: Any) -> SafetyCheckResult:
        """A usable quote carries a positive integer output amount"""
        text = "" if quoted_amount_out_raw is None else str(quoted_amount_out_raw).strip()
        if not RAW_AMOUNT_PATTERN.match(text) or int(text) == 0:
            return SafetyCheckResult(
                passed=False,
                reason=f"Malformed quote: expected a positive integer output amount, got '{text}'",
            )
        return SafetyCheckResult(passed=True, value=int(text))

    def require_quoted_amount_out(self, quoted_amount_out_raw: Any) -> str:
        result = self.check_quoted_amount_out(quoted_amount_out_raw)
        if not result.passed:
            logger.warning(f"Safety guard rejected quote: {result.reason}")
        return str(result.raise_for_failure().value)

    def check_min_amount_out(
        self,
        requested_raw: Optional[str],
        quoted_floor_raw: str,
        quoted_amount_out_raw: str,
    ) -> SafetyCheckResult:
        amount_check = self.check_quoted_amount_out(quoted_amount_out_raw)
        if not amount_check.passed:
            return amount_check
        quoted_amount_out = amount_check.value

        floor_text = "" if quoted_floor_raw is None else str(quoted_floor_raw).strip()
        if not RAW_AMOUNT_PATTERN.match(floor_text):
            return SafetyCheckResult(
                passed=False,
                reason=f"Malformed quote: expected an integer minimum output, got '{floor_text}'",
            )
        quoted_floor = int(floor_text)

        if quoted_floor > quoted_amount_out:
            return SafetyCheckResult(
                passed=False,
                reason=(
                    f"Malformed quote: minimum output {quoted_floor} exceeds "
                    f"quoted output {quoted_amount_out}"
                ),
            )
        if requested_raw is None:
            return SafetyCheckResult(passed=True, value=quoted_floor)

        requested = int(parse_raw_amount(requested_raw, "min_amount_out_raw", allow_zero=True))
        if requested < quoted_floor:
            return SafetyCheckResult(
                passed=False,
                reason=(
                    f"minAmountOutRaw {requested} is below the quoted safe minimum {quoted_floor}"
                ),
            )
        return SafetyCheckResult(passed=True, value=requested)

    def resolve_min_amount_out(
        self,
        requested_raw: Optional[str],
        quoted_floor_raw: str,
        quoted_amount_out_raw: str,
    ) -> str:
        """
        Settle the minimum output for a swap

        Args:
            requested_raw: Caller-supplied minimum, or None to use the floor
            quoted_floor_raw: Floor quoted for the requested slippage
            quoted_amount_out_raw: Quoted output amount

        Returns:
            The safe minimum output as a raw amount string
        """
        result = self.check_min_amount_out(requested_raw, quoted_floor_raw, quoted_amount_out_raw)
        if not result.passed:
            logger.warning(f"Safety guard rejected swap bounds: {result.reason}")
        return str(result.raise_for_failure().value)
