"""
Funds Ledger — the monetary transfer primitive the vault relies on.

The host runtime owns account balances. A plain transfer (one that carries
no instruction) hands control to the recipient's receive hook, if one is
registered. That hook is arbitrary external code: it may call back into the
component that initiated the transfer, which is exactly the re-entrancy
hazard the vault guards against. If the hook raises, the transfer is undone
and TransferFailed propagates to the sender.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from treasury_dao.core.errors import InsufficientFunds, InvalidAmount, TransferFailed

logger = logging.getLogger(__name__)

ReceiveHook = Callable[[str, int], None]


class FundsLedger(Protocol):
    def balance_of(self, principal: str) -> int: ...

    def transfer(
        self, sender: str, recipient: str, amount: int, notify: bool = True
    ) -> None: ...

    def register_receiver(self, principal: str, hook: ReceiveHook) -> None: ...


class InMemoryFundsLedger:
    """
    Process-local account balances.

    Usage:
        funds = InMemoryFundsLedger()
        funds.mint("0xabc...", 10)
        funds.transfer("0xabc...", vault.address, 5)  # implicit deposit
    """

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self._receivers: dict[str, ReceiveHook] = {}

    def balance_of(self, principal: str) -> int:
        return self._balances.get(principal, 0)

    def mint(self, principal: str, amount: int) -> None:
        """Credit an account out of thin air (genesis funding, tests)."""
        if amount <= 0:
            raise InvalidAmount(f"Mint amount must be positive, got {amount}")
        self._balances[principal] = self.balance_of(principal) + amount

    def register_receiver(self, principal: str, hook: ReceiveHook) -> None:
        self._receivers[principal] = hook

    def unregister_receiver(self, principal: str) -> None:
        self._receivers.pop(principal, None)

    def transfer(
        self, sender: str, recipient: str, amount: int, notify: bool = True
    ) -> None:
        """
        Move `amount` from `sender` to `recipient`.

        Args:
            sender: Debited account.
            recipient: Credited account.
            amount: Positive amount in base units.
            notify: Run the recipient's receive hook. Instructed calls
                (e.g. an explicit deposit) pass False because the callee
                already does its own bookkeeping.

        Raises:
            InvalidAmount: If amount is not positive.
            InsufficientFunds: If the sender cannot cover the amount.
            TransferFailed: If the recipient's hook rejected the transfer.
        """
        if amount <= 0:
            raise InvalidAmount(f"Transfer amount must be positive, got {amount}")
        if self.balance_of(sender) < amount:
            raise InsufficientFunds(
                f"{sender} holds {self.balance_of(sender)}, cannot send {amount}"
            )

        snapshot = dict(self._balances)
        self._balances[sender] = self.balance_of(sender) - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

        hook = self._receivers.get(recipient) if notify else None
        if hook is None:
            return

        try:
            hook(sender, amount)
        except Exception as exc:
            # Undo this transfer and anything the hook moved in the meantime
            self._balances = snapshot
            logger.warning(
                "Transfer reverted by recipient: %s -> %s amount=%d (%s)",
                sender, recipient, amount, exc,
            )
            raise TransferFailed(
                f"Recipient {recipient} rejected transfer of {amount}: {exc}"
            ) from exc
