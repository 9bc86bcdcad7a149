"""Fixed-point helpers for cash and share quantities.

Every quantity that reaches settlement arithmetic is a `Decimal`. Floats are
converted once, at the boundary, through their shortest round-tripping repr so
that `0.1` becomes `Decimal("0.1")` and not the binary expansion.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Context, Decimal, Inexact, InvalidOperation, Overflow

MONEY_QUANTUM = Decimal("0.01")
SHARE_QUANTUM = Decimal("0.00000001")
ZERO = Decimal("0")

# Wide enough for any bounded order; anything that would need rounding inside
# a product or sum raises instead of silently losing digits.
ARITHMETIC_PRECISION = 60


def _exact_context() -> Context:
    return Context(
        prec=ARITHMETIC_PRECISION,
        rounding=ROUND_HALF_EVEN,
        traps=[InvalidOperation, Inexact, Overflow],
    )


def _rounding_context() -> Context:
    return Context(prec=ARITHMETIC_PRECISION, rounding=ROUND_HALF_EVEN, traps=[InvalidOperation, Overflow])


def to_decimal(value: object) -> Decimal:
    """Convert a boundary value (str, int, float, Decimal) into a finite Decimal."""
    if isinstance(value, bool):
        raise TypeError("booleans are not quantities")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a decimal quantity: {value!r}") from exc
    else:
        raise TypeError(f"unsupported quantity type: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"quantity must be finite, got {value!r}")
    return result


def quantize_money(amount: Decimal, quantum: Decimal = MONEY_QUANTUM) -> Decimal:
    """Round a cash amount to the currency unit with round-half-even.

    Raises InvalidOperation when the result needs more than
    ARITHMETIC_PRECISION digits.
    """
    return amount.quantize(quantum, context=_rounding_context())


def exact_add(left: Decimal, right: Decimal) -> Decimal:
    """Sum with no rounding; raises Inexact if the result does not fit."""
    return _exact_context().add(left, right)


def order_total(shares: Decimal, price: Decimal, quantum: Decimal = MONEY_QUANTUM) -> Decimal:
    """
    Exact notional of an order under the single settlement rounding rule.

    The product is formed without rounding, so the money quantize is the only
    rounding step. Inputs too large for that raise an ArithmeticError
    (Inexact or InvalidOperation).
    """
    return quantize_money(_exact_context().multiply(shares, price), quantum)


def fits_quantum(value: Decimal, quantum: Decimal = SHARE_QUANTUM) -> bool:
    """True if `value` carries no more decimal places than `quantum`."""
    _, digits, exponent = value.as_tuple()
    extra = quantum.as_tuple().exponent - exponent
    if extra <= 0:
        return True
    return all(digit == 0 for digit in digits[-extra:])


def canonical(value: Decimal) -> str:
    """Stable text form used for storage and payloads (no exponent notation)."""
    text = format(value, "f")
    if text.startswith("-") and value == ZERO:
        text = text[1:]
    return text
