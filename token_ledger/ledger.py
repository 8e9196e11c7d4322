"""
Token Ledger Engine

Fixed-supply fungible token ledger. Tracks balances and delegated
allowances, moves value between accounts and keeps the conservation law:
the sum of all balances equals the total supply after every operation.

Every mutation is all-or-nothing. Validation runs before the first write,
writes happen inside the store's atomic block, and events are emitted only
after the block commits.
"""

import logging
from typing import Optional

from .addresses import ZERO_ADDRESS, is_zero_address
from .amounts import MAX_UINT256, checked_add, checked_sub, require_amount
from .errors import (
    ArithmeticOverflow, ConservationViolation, InsufficientAllowance, InsufficientBalance,
    InvalidRecipient, InvalidSpender, LedgerAlreadyInitialized, LedgerNotInitialized,
    DECREASED_ALLOWANCE_BELOW_ZERO, MINT_TO_ZERO_ADDRESS
)
from .events import EventPayload, EventSink, NullSink, approval_event, transfer_event
from .storage import InMemoryStateStore, StateStore


logger = logging.getLogger("token_ledger.ledger")

META_TOTAL_SUPPLY = "total_supply"
META_NAME = "name"
META_SYMBOL = "symbol"
META_DECIMALS = "decimals"
META_OWNER = "owner"


class TokenLedger:
    """
    Fungible token ledger with direct and delegated transfers

    Infinite allowance convention: disabled by default, so transfer_from
    always consumes the allowance. With infinite_allowance=True an
    allowance of exactly MAX_UINT256 is left unchanged by transfer_from.
    """

    def __init__(
        self,
        initial_supply: int,
        owner: str,
        *,
        name: str = "Achilles",
        symbol: str = "ACH",
        decimals: int = 18,
        store: Optional[StateStore] = None,
        event_sink: Optional[EventSink] = None,
        infinite_allowance: bool = False
    ):
        """
        Create a ledger assigning the whole initial supply to owner

        Raises:
            InvalidAmount: If initial_supply is not a valid amount
            InvalidRecipient: If owner is the zero address
            LedgerAlreadyInitialized: If the store already holds a ledger,
                use TokenLedger.open to reattach
        """
        require_amount(initial_supply)
        if is_zero_address(owner):
            raise InvalidRecipient(MINT_TO_ZERO_ADDRESS)

        self.store = store if store is not None else InMemoryStateStore()
        self.event_sink = event_sink if event_sink is not None else NullSink()
        self.infinite_allowance = infinite_allowance

        with self.store.atomic():
            if self.store.get_meta(META_TOTAL_SUPPLY) is not None:
                raise LedgerAlreadyInitialized()
            self.store.set_meta(META_NAME, name)
            self.store.set_meta(META_SYMBOL, symbol)
            self.store.set_meta(META_DECIMALS, str(decimals))
            self.store.set_meta(META_OWNER, owner)
            self.store.set_meta(META_TOTAL_SUPPLY, str(initial_supply))
            self.store.set_balance(owner, initial_supply)
        self._load_metadata()

        logger.info(f"Created ledger {symbol} with supply {initial_supply} for {owner}")
        self._emit(transfer_event(ZERO_ADDRESS, owner, initial_supply))

    @classmethod
    def open(
        cls,
        store: StateStore,
        *,
        event_sink: Optional[EventSink] = None,
        infinite_allowance: bool = False
    ) -> 'TokenLedger':
        """
        Reattach to a store that already holds a ledger

        Raises:
            LedgerNotInitialized: If the store has no persisted total supply
        """
        if store.get_meta(META_TOTAL_SUPPLY) is None:
            raise LedgerNotInitialized()

        ledger = cls.__new__(cls)
        ledger.store = store
        ledger.event_sink = event_sink if event_sink is not None else NullSink()
        ledger.infinite_allowance = infinite_allowance
        ledger._load_metadata()
        return ledger

    def _load_metadata(self) -> None:
        self._total_supply = int(self.store.get_meta(META_TOTAL_SUPPLY))
        self._name = self.store.get_meta(META_NAME) or ""
        self._symbol = self.store.get_meta(META_SYMBOL) or ""
        self._decimals = int(self.store.get_meta(META_DECIMALS) or 18)
        self.owner = self.store.get_meta(META_OWNER)

    # Metadata

    def name(self) -> str:
        return self._name

    def symbol(self) -> str:
        return self._symbol

    def decimals(self) -> int:
        return self._decimals

    def total_supply(self) -> int:
        return self._total_supply

    # Queries

    def balance_of(self, account: str) -> int:
        """Balance of account, zero if never seen"""
        return self.store.get_balance(account)

    def allowance(self, owner: str, spender: str) -> int:
        """Amount spender may still move out of owner's balance"""
        return self.store.get_allowance(owner, spender)

    # Mutations

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        """
        Set the allowance of spender over caller's balance

        Overwrites any previous allowance; no balance check is made.

        Raises:
            InvalidSpender: If spender is the zero address
            InvalidAmount: If amount is not a valid amount
        """
        require_amount(amount)
        if is_zero_address(spender):
            self._reject("approve", caller, InvalidSpender())

        self._set_allowance(caller, spender, amount)
        logger.debug(f"Approved {spender} for {amount} from {caller}")
        return True

    def increase_allowance(self, caller: str, spender: str, added_value: int) -> bool:
        """
        Atomically raise spender's allowance by added_value

        Raises:
            InvalidSpender: If spender is the zero address
            ArithmeticOverflow: If the new allowance exceeds MAX_UINT256
        """
        require_amount(added_value)
        if is_zero_address(spender):
            self._reject("increase_allowance", caller, InvalidSpender())

        current = self.store.get_allowance(caller, spender)
        try:
            new_value = checked_add(current, added_value)
        except ArithmeticOverflow as e:
            self._reject("increase_allowance", caller, e)
        self._set_allowance(caller, spender, new_value)
        logger.debug(f"Increased allowance of {spender} over {caller} to {new_value}")
        return True

    def decrease_allowance(self, caller: str, spender: str, subtracted_value: int) -> bool:
        """
        Atomically lower spender's allowance by subtracted_value

        Raises:
            InvalidSpender: If spender is the zero address
            InsufficientAllowance: If the allowance would drop below zero
        """
        require_amount(subtracted_value)
        if is_zero_address(spender):
            self._reject("decrease_allowance", caller, InvalidSpender())

        current = self.store.get_allowance(caller, spender)
        if subtracted_value > current:
            self._reject("decrease_allowance", caller,
                         InsufficientAllowance(DECREASED_ALLOWANCE_BELOW_ZERO))
        self._set_allowance(caller, spender, current - subtracted_value)
        logger.debug(f"Decreased allowance of {spender} over {caller} to {current - subtracted_value}")
        return True

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        """
        Move amount from caller's balance to to's balance

        Raises:
            InvalidRecipient: If to is the zero address
            InsufficientBalance: If caller holds less than amount
            ArithmeticOverflow: If the recipient balance would overflow
        """
        require_amount(amount)
        if is_zero_address(to):
            self._reject("transfer", caller, InvalidRecipient())

        with self.store.atomic():
            self._move("transfer", caller, caller, to, amount)

        logger.debug(f"Transferred {amount} from {caller} to {to}")
        self._emit(transfer_event(caller, to, amount))
        return True

    def transfer_from(self, caller: str, from_: str, to: str, amount: int) -> bool:
        """
        Move amount from from_ to to using caller's allowance

        The allowance is the authorization gate and is checked before the
        balance, so when both are short InsufficientAllowance wins.

        Raises:
            InvalidRecipient: If to is the zero address
            InsufficientAllowance: If caller's allowance over from_ is below amount
            InsufficientBalance: If from_ holds less than amount
        """
        require_amount(amount)
        if is_zero_address(to):
            self._reject("transfer_from", caller, InvalidRecipient())

        current = self.store.get_allowance(from_, caller)
        if current < amount:
            self._reject("transfer_from", caller, InsufficientAllowance())

        with self.store.atomic():
            if not (self.infinite_allowance and current == MAX_UINT256):
                self.store.set_allowance(from_, caller, current - amount)
            self._move("transfer_from", caller, from_, to, amount)

        logger.debug(f"{caller} transferred {amount} from {from_} to {to}")
        self._emit(transfer_event(from_, to, amount))
        return True

    # Invariants

    def sum_of_balances(self) -> int:
        return sum(amount for _, amount in self.store.iter_balances())

    def verify_conservation(self) -> bool:
        """
        Check that the sum of balances equals the total supply

        Raises:
            ConservationViolation: If the invariant does not hold
        """
        total = self.sum_of_balances()
        if total != self._total_supply:
            logger.error(f"Conservation violated: balances sum to {total}, supply is {self._total_supply}")
            raise ConservationViolation()
        return True

    # Internals

    def _move(self, action: str, caller: str, from_: str, to: str, amount: int) -> None:
        """Debit from_ and credit to; must run inside an atomic block"""
        try:
            from_balance = checked_sub(self.store.get_balance(from_), amount, InsufficientBalance)
        except InsufficientBalance as e:
            self._reject(action, caller, e)
        self.store.set_balance(from_, from_balance)
        # Read after the debit so a self-transfer nets to zero
        self.store.set_balance(to, checked_add(self.store.get_balance(to), amount))

    def _set_allowance(self, owner: str, spender: str, amount: int) -> None:
        with self.store.atomic():
            self.store.set_allowance(owner, spender, amount)
        self._emit(approval_event(owner, spender, amount))

    def _emit(self, event: EventPayload) -> None:
        """Hand a committed event to the sink"""
        try:
            self.event_sink.emit(event)
        except Exception as e:
            # State is already committed
            logger.error(f"Error emitting {event.event_type.value} event {event.event_id}: {e}")

    def _reject(self, action: str, caller: str, error: Exception) -> None:
        logger.info(
            f"Rejected {action}: {error}",
            extra={"caller": caller, "action": action}
        )
        raise error
