"""
Bounded Unsigned Amounts

Token amounts are plain Python integers constrained to the uint256 range.
Arithmetic is checked: results outside [0, MAX_UINT256] raise instead of
wrapping.
"""

from typing import Any, Optional, Type

from .errors import ArithmeticOverflow, InvalidAmount, LedgerError

UINT256_BITS = 256
MAX_UINT256 = 2 ** UINT256_BITS - 1


def is_amount(value: Any) -> bool:
    """Check if value is a representable amount"""
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value <= MAX_UINT256


def require_amount(value: Any) -> int:
    """
    Validate an amount and return it unchanged

    Raises:
        InvalidAmount: If value is not an int in [0, MAX_UINT256]
    """
    if not is_amount(value):
        raise InvalidAmount()
    return value


def checked_add(a: int, b: int) -> int:
    """Add two amounts, raising ArithmeticOverflow past MAX_UINT256"""
    result = a + b
    if result > MAX_UINT256:
        raise ArithmeticOverflow()
    return result


def checked_sub(
    a: int,
    b: int,
    error: Type[LedgerError] = ArithmeticOverflow,
    reason: Optional[str] = None
) -> int:
    """
    Subtract b from a, raising the given error on underflow

    Args:
        a: Minuend
        b: Subtrahend
        error: LedgerError subclass to raise when b > a
        reason: Optional reason overriding the error's default

    Returns:
        a - b
    """
    if b > a:
        raise error(reason)
    return a - b


def parse_amount(text: str) -> int:
    """
    Parse a decimal string into an amount

    Amounts travel as strings at the API boundary because uint256 values
    exceed the precision of JSON numbers.
    """
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        raise InvalidAmount()
    return require_amount(int(text))
