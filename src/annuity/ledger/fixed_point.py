# src/annuity/ledger/fixed_point.py
from __future__ import annotations

"""Unsigned 18-decimal fixed-point arithmetic.

A fixed-point value is a plain int scaled by UNIT (1e18). Every operation is
deterministic integer math and fails closed with FixedPointError when the
result leaves [0, MAX_UINT256], on division by zero, or outside a function's
domain (e.g. log2 of a value below 1.0).

Rounding:
  - mul/div/log2/exp2 truncate toward zero
  - ceiling() rounds up to the next whole unit; callers use it to round
    interest and payouts in the account's favor
"""

from dataclasses import dataclass
from math import isqrt
from typing import Any, Dict, List, Optional

from annuity.ledger.constants import HALF_UNIT, LOG2_E, MAX_UINT256, UNIT

Json = Dict[str, Any]

MAX_FIXED: int = MAX_UINT256

# Binary fraction precision used inside exp2.
_FRAC_BITS = 128
_Q_ONE = 1 << _FRAC_BITS


@dataclass
class FixedPointError(ArithmeticError):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


def _check(x: int, op: str) -> int:
    if x < 0:
        raise FixedPointError("underflow", f"{op}_underflow", {"value": int(x)})
    if x > MAX_UINT256:
        raise FixedPointError("overflow", f"{op}_overflow")
    return x


def _require_uint(x: Any, op: str) -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        raise FixedPointError("invalid_operand", f"{op}_expects_int", {"type": str(type(x))})
    return _check(int(x), op)


def _build_exp2_factors() -> List[int]:
    # factors[i] == 2 ** (2 ** -(i + 1)) in Q128
    out: List[int] = []
    f = 2 << _FRAC_BITS
    for _ in range(_FRAC_BITS):
        f = isqrt(f << _FRAC_BITS)
        out.append(f)
    return out


_EXP2_FACTORS: List[int] = _build_exp2_factors()


# ----------------------------
# Conversions
# ----------------------------


def from_int(n: int) -> int:
    return _check(_require_uint(n, "from_int") * UNIT, "from_int")


def to_int_floor(x: int) -> int:
    return _require_uint(x, "to_int_floor") // UNIT


def ceiling(x: int) -> int:
    """Round x up to the next whole unit (identity on whole units)."""
    x = _require_uint(x, "ceiling")
    rem = x % UNIT
    if rem == 0:
        return x
    return _check(x - rem + UNIT, "ceiling")


def to_int_ceil(x: int) -> int:
    return to_int_floor(ceiling(x))


# ----------------------------
# Arithmetic
# ----------------------------


def add(a: int, b: int) -> int:
    return _check(_require_uint(a, "add") + _require_uint(b, "add"), "add")


def sub(a: int, b: int) -> int:
    return _check(_require_uint(a, "sub") - _require_uint(b, "sub"), "sub")


def mul(a: int, b: int) -> int:
    return _check(_require_uint(a, "mul") * _require_uint(b, "mul") // UNIT, "mul")


def div(a: int, b: int) -> int:
    a = _require_uint(a, "div")
    b = _require_uint(b, "div")
    if b == 0:
        raise FixedPointError("division_by_zero", "div_by_zero")
    return _check(a * UNIT // b, "div")


# ----------------------------
# Logarithms / exponentials
# ----------------------------


def log2(x: int) -> int:
    """Binary logarithm for x >= 1.0.

    Integer part from the bit length, fractional bits by iterative squaring.
    Exact when x is an exact power of two.
    """
    x = _require_uint(x, "log2")
    if x < UNIT:
        raise FixedPointError("out_of_domain", "log2_below_one", {"x": x})

    n = (x // UNIT).bit_length() - 1
    result = n * UNIT
    y = x >> n
    if y == UNIT:
        return result

    delta = HALF_UNIT
    while delta > 0:
        y = y * y // UNIT
        if y >= 2 * UNIT:
            result += delta
            y >>= 1
        delta >>= 1
    return result


def ln(x: int) -> int:
    """Natural logarithm for x >= 1.0."""
    return log2(x) * UNIT // LOG2_E


def exp2(x: int) -> int:
    x = _require_uint(x, "exp2")
    ipart = x // UNIT
    if ipart >= 256:
        raise FixedPointError("overflow", "exp2_overflow", {"x": x})

    fbits = ((x % UNIT) << _FRAC_BITS) // UNIT
    acc = _Q_ONE
    if fbits:
        for i, factor in enumerate(_EXP2_FACTORS):
            if fbits & (1 << (_FRAC_BITS - 1 - i)):
                acc = (acc * factor) >> _FRAC_BITS

    return _check(((acc * UNIT) << ipart) >> _FRAC_BITS, "exp2")


def exp(x: int) -> int:
    return exp2(mul(_require_uint(x, "exp"), LOG2_E))


def pow(x: int, y: int) -> int:  # noqa: A001
    """x raised to the fixed-point exponent y."""
    x = _require_uint(x, "pow")
    y = _require_uint(y, "pow")
    if y == 0:
        return UNIT
    if x == 0:
        return 0
    if x >= UNIT:
        return exp2(mul(log2(x), y))
    # 0 < x < 1: x^y == 1 / (1/x)^y
    return div(UNIT, exp2(mul(log2(div(UNIT, x)), y)))


__all__ = [
    "FixedPointError",
    "MAX_FIXED",
    "add",
    "ceiling",
    "div",
    "exp",
    "exp2",
    "from_int",
    "ln",
    "log2",
    "mul",
    "pow",
    "sub",
    "to_int_ceil",
    "to_int_floor",
]
