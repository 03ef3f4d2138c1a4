"""In-memory value ledger standing in for the host chain's balance transfers."""

from contextlib import contextmanager
from typing import Dict, Iterator
import logging
import threading

from zkmix.exceptions import InsufficientFundsError, TransferRejectedError

logger = logging.getLogger(__name__)

# Amounts are unsigned 64-bit on the host ledger
MAX_AMOUNT = 2**64 - 1


class Ledger:
    """
    Account balances with all-or-nothing transfer batches.

    Transfers made inside `with ledger.transaction():` are undone if the
    block raises.
    """

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self._lock = threading.RLock()

    def balance_of(self, address: str) -> int:
        return self.balances.get(address, 0)

    def mint(self, address: str, amount: int) -> None:
        """Credit an account out of thin air (genesis / test funding)."""
        self._check_amount(amount)
        self._check_address(address)
        with self._lock:
            self.balances[address] = self.balance_of(address) + amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move amount from sender to recipient.

        Raises:
            TransferRejectedError: Malformed amount or addresses
            InsufficientFundsError: Sender balance below amount
        """
        self._check_amount(amount)
        self._check_address(sender)
        self._check_address(recipient)
        if sender == recipient:
            raise TransferRejectedError("Sender and recipient must differ")

        with self._lock:
            available = self.balance_of(sender)
            if available < amount:
                raise InsufficientFundsError(
                    f"{sender} holds {available}, needs {amount}"
                )
            self.balances[sender] = available - amount
            self.balances[recipient] = self.balance_of(recipient) + amount

        logger.debug("Transferred %d from %s to %s", amount, sender, recipient)

    @contextmanager
    def transaction(self) -> Iterator["Ledger"]:
        """Snapshot balances and restore them if the block raises."""
        with self._lock:
            snapshot = dict(self.balances)
            try:
                yield self
            except BaseException:
                self.balances = snapshot
                logger.debug("Ledger transaction rolled back")
                raise

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TransferRejectedError("Amount must be an int")
        if amount <= 0 or amount > MAX_AMOUNT:
            raise TransferRejectedError(f"Amount {amount} outside (0, 2^64)")

    @staticmethod
    def _check_address(address: str) -> None:
        if not isinstance(address, str) or not address:
            raise TransferRejectedError("Address must be a non-empty string")

    def __repr__(self) -> str:
        return f"Ledger(accounts={len(self.balances)})"
