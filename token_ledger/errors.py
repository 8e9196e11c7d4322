"""
Ledger Error Taxonomy

Every failure carries a stable reason string so callers and tests can
assert on the exact message.
"""

from typing import Optional


class LedgerError(ValueError):
    """Base class for all ledger failures"""

    reason: str = "ledger operation failed"

    def __init__(self, reason: Optional[str] = None):
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)

    @property
    def kind(self) -> str:
        """Short error kind used by the API layer"""
        return type(self).__name__


class InsufficientBalance(LedgerError):
    reason = "ERC20: transfer amount exceeds balance"


class InsufficientAllowance(LedgerError):
    reason = "ERC20: transfer amount exceeds allowance"


class InvalidRecipient(LedgerError):
    reason = "ERC20: transfer to the zero address"


class InvalidSpender(LedgerError):
    reason = "ERC20: approve to the zero address"


class ArithmeticOverflow(LedgerError):
    reason = "SafeMath: addition overflow"


class InvalidAmount(LedgerError):
    reason = "amount must be an integer between 0 and 2**256 - 1"


class ConservationViolation(LedgerError):
    reason = "total supply does not equal sum of balances"


class LedgerNotInitialized(LedgerError):
    reason = "store holds no ledger"


class LedgerAlreadyInitialized(LedgerError):
    reason = "store already holds a ledger"


DECREASED_ALLOWANCE_BELOW_ZERO = "ERC20: decreased allowance below zero"
MINT_TO_ZERO_ADDRESS = "ERC20: mint to the zero address"
