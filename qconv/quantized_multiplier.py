import math

from .tensor_types import INT32, INT32_MAX, INT32_MIN, numeric_cast


def round_away_from_zero(x):
    if x >= 0:
        return int(math.floor(x + 0.5))
    return int(math.ceil(x - 0.5))


def _truncating_div(numerator, denominator):
    # C-style integer division (rounds toward zero)
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


def saturating_rounding_doubling_high_mul(a, b):
    """
    High 32 bits of 2*a*b, rounded to nearest, gemmlowp style.

    The only overflow case (a == b == INT32_MIN) saturates to INT32_MAX.
    """
    a = int(a)
    b = int(b)
    if a == b == INT32_MIN:
        return INT32_MAX
    ab = a * b
    nudge = (1 << 30) if ab >= 0 else 1 - (1 << 30)
    return _truncating_div(ab + nudge, 1 << 31)


def rounding_divide_by_pot(x, exponent):
    """x / 2**exponent, rounding half away from zero."""
    assert exponent >= 0, f"negative exponent {exponent}"
    if exponent == 0:
        return x
    mask = (1 << exponent) - 1
    remainder = x & mask
    threshold = (mask >> 1) + (1 if x < 0 else 0)
    return (x >> exponent) + (1 if remainder > threshold else 0)


def quantize_multiplier_smaller_than_one(real_multiplier):
    """
    Split a real multiplier in (0, 1) into a Q31 significand and a right shift.

    Arguments:
    real_multiplier -- float, strictly between 0 and 1

    Returns:
    (q_fixed, right_shift) -- real_multiplier ~= q_fixed / 2**31 * 2**-right_shift
    """
    if not math.isfinite(real_multiplier) or not 0.0 < real_multiplier < 1.0:
        raise ValueError(f"Expected a multiplier in (0, 1), got {real_multiplier}")
    significand, exp = math.frexp(real_multiplier)
    right_shift = -exp
    q_fixed = round_away_from_zero(significand * (1 << 31))
    if q_fixed == (1 << 31):
        q_fixed //= 2
        right_shift -= 1
    if right_shift < 0:
        # rounded up to exactly 1.0
        return INT32_MAX, 0
    return q_fixed, right_shift


class QuantizedMultiplierSmallerThanOne:
    """
    Multiplies an int32 by a real multiplier in (0, 1) using only integer
    arithmetic, bit-exact with the Android NN CPU executor
    (MultiplyByQuantizedMultiplierSmallerThanOne).

    Usage:
        rescale = QuantizedMultiplierSmallerThanOne(0.25)
        rescale * 6   # -> 2
    """

    __slots__ = ("_multiplier", "_right_shift")

    def __init__(self, multiplier):
        self._multiplier, self._right_shift = quantize_multiplier_smaller_than_one(float(multiplier))

    @property
    def multiplier(self):
        return self._multiplier

    @property
    def right_shift(self):
        return self._right_shift

    def __mul__(self, rhs):
        rhs = int(numeric_cast(rhs, INT32))
        x = saturating_rounding_doubling_high_mul(rhs, self._multiplier)
        return rounding_divide_by_pot(x, self._right_shift)

    __rmul__ = __mul__

    def __repr__(self):
        return f"QuantizedMultiplierSmallerThanOne(multiplier={self._multiplier}, right_shift={self._right_shift})"
