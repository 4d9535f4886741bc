"""Integer fixed-point arithmetic for settlement.

All monetary and prediction values are integers scaled by PRECISION
(1e6). No floats anywhere in settlement — payouts must be reproducible
bit-for-bit by any independent implementation.

Python integers are unbounded, so every intermediate is checked against
the fixed width it would occupy in the reference ledger (i64 for
predictions, u64 for stakes and payouts, i128/u128 for products).
Leaving a width raises ArithmeticOverflow.

Division in the scoring formula truncates toward zero (not Python's
floor division); see div_trunc.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from poworth.errors import ArithmeticOverflow


PRECISION = 1_000_000
PRECISION_SQUARED = PRECISION * PRECISION

# Percent deviations are capped at 100x (10000%) before multiplication.
MAX_PCT = 100 * PRECISION

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1
U64_MAX = 2 ** 64 - 1
I128_MIN = -(2 ** 127)
I128_MAX = 2 ** 127 - 1
U128_MAX = 2 ** 128 - 1

# ln(n + e) * PRECISION lookup for n = 0..63, as published. The values
# rise to a peak at n = 41 and then decline; consumers must use them
# verbatim.
LN_TABLE: tuple[int, ...] = (
    1_000_000, 1_313_262, 1_547_563, 1_734_601,
    1_890_066, 2_022_971, 2_138_990, 2_241_671,
    2_333_586, 2_416_540, 2_491_930, 2_560_867,
    2_624_230, 2_682_718, 2_736_892, 2_787_200,
    2_834_006, 2_877_612, 2_918_272, 2_956_202,
    2_991_583, 3_024_572, 3_055_305, 3_083_901,
    3_110_467, 3_135_098, 3_157_880, 3_178_889,
    3_198_196, 3_215_862, 3_231_943, 3_246_491,
    3_259_550, 3_271_162, 3_281_365, 3_290_193,
    3_297_677, 3_303_847, 3_308_728, 3_312_345,
    3_314_718, 3_315_869, 3_315_816, 3_314_576,
    3_312_165, 3_308_598, 3_303_889, 3_298_050,
    3_291_094, 3_283_031, 3_273_873, 3_263_628,
    3_252_306, 3_239_916, 3_226_465, 3_211_962,
    3_196_413, 3_179_826, 3_162_207, 3_143_562,
    3_123_897, 3_103_218, 3_081_530, 3_058_839,
)

# ln(64) * PRECISION, anchor for the extrapolation branch
LN_64 = 4_158_883
LN_EXTRAPOLATION_DAMPING = 10


def _bounded(value: int, low: int, high: int, what: str) -> int:
    if value < low or value > high:
        raise ArithmeticOverflow(f"{what} out of range: {value}")
    return value


def checked_i64(value: int) -> int:
    return _bounded(value, I64_MIN, I64_MAX, "i64")


def checked_u64(value: int) -> int:
    return _bounded(value, 0, U64_MAX, "u64")


def checked_i128(value: int) -> int:
    return _bounded(value, I128_MIN, I128_MAX, "i128")


def checked_u128(value: int) -> int:
    return _bounded(value, 0, U128_MAX, "u128")


def div_trunc(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    if denominator == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def clamp(value: int, bound: int) -> int:
    """Clamp value into [-bound, bound]."""
    return max(-bound, min(bound, value))


def ln_approx(n: int) -> int:
    """Return ln(n + e) * PRECISION from the table, extrapolating for n >= 64.

    The extrapolation is ln(64) + ((n - 64) / 64) / 10, a deliberately
    damped linear growth rather than a true logarithm.
    """
    if n < 0:
        raise ValueError(f"submit order must be non-negative, got {n}")
    if n < len(LN_TABLE):
        return LN_TABLE[n]
    extra = checked_u128((n - 64) * PRECISION) // 64
    return LN_64 + extra // LN_EXTRAPOLATION_DAMPING


def percent_deviation(value: int, reference: int) -> int:
    """((value - reference) * PRECISION) / max(|reference|, 1), clamped to ±MAX_PCT."""
    denominator = max(abs(reference), 1)
    scaled = checked_i128(checked_i128(value - reference) * PRECISION)
    return clamp(div_trunc(scaled, denominator), MAX_PCT)


def to_fixed_point(value: Decimal | str | int) -> int:
    """Convert a real-world value to fixed-point, e.g. 150.25 -> 150_250_000.

    Rounds half-up at the sixth decimal place. Floats are rejected so
    binary rounding never leaks into a prediction.
    """
    if isinstance(value, float):
        raise TypeError("pass a Decimal or string, not float")
    scaled = (Decimal(value) * PRECISION).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return checked_i64(int(scaled))


def from_fixed_point(value: int) -> Decimal:
    """Convert a fixed-point value back, e.g. 150_250_000 -> Decimal('150.25')."""
    return Decimal(value) / PRECISION
