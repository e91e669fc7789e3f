"""
Treasury Vault — custody of contributed funds.

The vault holds funds contributed by external parties and moves them out
through exactly three paths:

1. disburse                   — governance-role only; the path by which
                                passed proposals spend funds
2. manager_withdraw           — manager-role only, to allowlisted recipients
3. execute_emergency_withdraw — admin only, after a mandatory delay, sweeps
                                the whole balance

All three run under a single re-entrancy guard, and each writes the state
that must not be replayed before handing control to the funds ledger.
Pause blocks deposits, disbursements and manager withdrawals; emergency
withdrawal stays available while paused.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from treasury_dao.core.clock import Clock, SystemClock
from treasury_dao.core.errors import (
    DelayNotElapsed,
    DisbursementNotFound,
    InsufficientFunds,
    InvalidAddress,
    InvalidParameter,
    MissingDetails,
    NotAuthorized,
    NotRequested,
    NotTreasuryRole,
    Paused,
    ZeroAmount,
)
from treasury_dao.core.funds import FundsLedger
from treasury_dao.core.schema import (
    DEFAULT_EMERGENCY_DELAY,
    MIN_EMERGENCY_DELAY,
    Disbursement,
    EmergencyRequest,
    NotificationType,
    Role,
    TreasuryStats,
    generate_address,
    is_null_address,
)
from treasury_dao.governance.roles import RoleRegistry
from treasury_dao.ledger.notifications import NotificationLog
from treasury_dao.treasury.guard import ReentrancyGuard

logger = logging.getLogger(__name__)


class TreasuryVault:
    """
    Fund-custody vault driven by the governance engine.

    Usage:
        vault = TreasuryVault(admin="0xadmin", funds=funds)
        vault.update_governance_role("0xadmin", engine.address)
        vault.deposit("0xdonor", 5)
    """

    def __init__(
        self,
        admin: str,
        funds: FundsLedger,
        governance: str | None = None,
        address: str | None = None,
        clock: Clock | None = None,
        notifications: NotificationLog | None = None,
        roles: RoleRegistry | None = None,
        emergency_delay: timedelta = DEFAULT_EMERGENCY_DELAY,
    ) -> None:
        """
        Initialize the vault.

        Args:
            admin: Principal granted the admin and manager roles.
            funds: Transfer primitive holding the actual balances.
            governance: Initial holder of the governance role. May be left
                empty and set later with update_governance_role.
            address: The vault's own account on the funds ledger.
            clock: Time source for the emergency delay and ledger timestamps.
            notifications: Shared notification log.
            roles: Role registry; a fresh one is created if omitted.
            emergency_delay: Minimum wait between request and execution
                of an emergency withdrawal.
        """
        if is_null_address(admin):
            raise InvalidAddress("Vault admin must be a non-null principal")
        if emergency_delay < MIN_EMERGENCY_DELAY:
            raise InvalidParameter(
                f"Emergency delay {emergency_delay} is below the "
                f"{MIN_EMERGENCY_DELAY} floor"
            )

        self.address = address or generate_address()
        self.funds = funds
        self.clock = clock if clock is not None else SystemClock()
        self.notifications = (
            notifications if notifications is not None else NotificationLog(self.clock)
        )
        self.roles = roles if roles is not None else RoleRegistry()
        self.emergency_delay = emergency_delay

        self.roles.grant(Role.ADMIN, admin)
        self.roles.grant(Role.MANAGER, admin)
        self._governance: str | None = None
        if not is_null_address(governance):
            self.roles.grant(Role.GOVERNANCE, governance)
            self._governance = governance

        self._paused = False
        self._guard = ReentrancyGuard()
        self._contributions: dict[str, int] = {}
        self._total_deposited = 0
        self._total_spent = 0
        self._disbursements: list[Disbursement] = []
        self._authorized_recipients: dict[str, bool] = {}
        self._emergency_requested = False
        self._emergency_request_time: datetime | None = None

        self.funds.register_receiver(self.address, self.receive)

    # ── Deposits ────────────────────────────────────────────────

    def deposit(self, caller: str, amount: int) -> None:
        """
        Deposit `amount` from the caller's account into the vault.

        Raises:
            Paused: While the vault is paused.
            ZeroAmount: If amount is not positive.
            InsufficientFunds: If the caller cannot cover the amount.
            ReentrantCall: While a fund-moving call is in progress.
        """
        self._guard.require_not_entered("deposit")
        self._require_not_paused()
        if amount <= 0:
            raise ZeroAmount("Deposit amount must be greater than zero")

        self.funds.transfer(caller, self.address, amount, notify=False)
        self._record_deposit(caller, amount)

    def receive(self, sender: str, amount: int) -> None:
        """
        Handle a plain transfer that arrived with no instruction.

        Invoked by the funds ledger after the amount has been credited; the
        transfer is treated as a deposit from `sender`. Raising here makes
        the ledger undo the transfer.
        """
        self._guard.require_not_entered("receive")
        self._require_not_paused()
        if amount <= 0:
            raise ZeroAmount("Deposit amount must be greater than zero")
        self._record_deposit(sender, amount)

    def _record_deposit(self, contributor: str, amount: int) -> None:
        self._contributions[contributor] = self._contributions.get(contributor, 0) + amount
        self._total_deposited += amount

        logger.info("Deposit received: contributor=%s amount=%d", contributor, amount)
        self.notifications.emit(
            NotificationType.DEPOSITED,
            source=self.address,
            contributor=contributor,
            amount=amount,
        )

    # ── Disbursement (governance path) ──────────────────────────

    def disburse(self, caller: str, amount: int, provider: str, details: str) -> int:
        """
        Pay `amount` to `provider` on behalf of governance.

        The ledger entry and spend total are written before the transfer.
        If the transfer fails they are removed again and the error
        propagates, so a failed disbursement leaves no trace.

        Returns:
            The id of the new disbursement-ledger entry.

        Raises:
            NotAuthorized: If the caller does not hold the governance role.
            ReentrantCall: If another fund-moving call is in progress.
            Paused, ZeroAmount, InvalidAddress, MissingDetails,
            InsufficientFunds, TransferFailed.
        """
        if not self.roles.has(Role.GOVERNANCE, caller):
            logger.warning("Disbursement rejected: %s lacks governance role", caller)
            raise NotAuthorized(f"{caller} is not the authorized governance principal")

        with self._guard.enter("disburse"):
            self._require_not_paused()
            if amount <= 0:
                raise ZeroAmount("Disbursement amount must be greater than zero")
            if is_null_address(provider) or provider == self.address:
                raise InvalidAddress(
                    "Disbursement provider must be a non-null principal other than the vault"
                )
            if not details:
                raise MissingDetails("Disbursement details must not be empty")
            self._require_balance(amount)

            entry = Disbursement(
                id=len(self._disbursements) + 1,
                amount=amount,
                provider=provider,
                details=details,
                timestamp=self.clock.now(),
                executed=True,
            )
            self._disbursements.append(entry)
            self._total_spent += amount

            try:
                self.funds.transfer(self.address, provider, amount)
            except Exception:
                self._disbursements.pop()
                self._total_spent -= amount
                raise

        logger.info(
            "Disbursement #%d executed: amount=%d provider=%s",
            entry.id, amount, provider,
        )
        self.notifications.emit(
            NotificationType.FUNDS_DISBURSED,
            source=self.address,
            disbursement_id=entry.id,
            amount=amount,
            provider=provider,
            details=details,
        )
        return entry.id

    # ── Manager withdrawal ──────────────────────────────────────

    def manager_withdraw(self, caller: str, amount: int, recipient: str) -> None:
        """
        Withdraw to an allowlisted recipient, independent of governance.

        Does not touch the disbursement ledger or the spend total.
        """
        if not self.roles.has(Role.MANAGER, caller):
            logger.warning("Manager withdrawal rejected: %s lacks manager role", caller)
            raise NotTreasuryRole(f"{caller} does not hold the treasury manager role")

        with self._guard.enter("manager_withdraw"):
            self._require_not_paused()
            if amount <= 0:
                raise ZeroAmount("Withdrawal amount must be greater than zero")
            if not self._authorized_recipients.get(recipient, False):
                raise NotAuthorized(f"{recipient} is not an authorized recipient")
            self._require_balance(amount)

            self.funds.transfer(self.address, recipient, amount)

        logger.info(
            "Manager withdrawal: manager=%s recipient=%s amount=%d",
            caller, recipient, amount,
        )
        self.notifications.emit(
            NotificationType.MANAGER_WITHDRAWAL,
            source=self.address,
            manager=caller,
            recipient=recipient,
            amount=amount,
        )

    def set_authorized_recipient(
        self, caller: str, recipient: str, authorized: bool
    ) -> None:
        """Add or remove `recipient` from the manager-withdrawal allowlist."""
        self._require_admin(caller)
        if is_null_address(recipient) or recipient == self.address:
            raise InvalidAddress("Recipient must be a non-null principal other than the vault")

        self._authorized_recipients[recipient] = authorized
        self.notifications.emit(
            NotificationType.RECIPIENT_AUTHORIZATION_CHANGED,
            source=self.address,
            recipient=recipient,
            authorized=authorized,
        )

    def is_authorized_recipient(self, recipient: str) -> bool:
        return self._authorized_recipients.get(recipient, False)

    # ── Emergency withdrawal (two-phase, time-delayed) ──────────

    def request_emergency_withdraw(self, caller: str) -> EmergencyRequest:
        """
        Start the emergency-withdrawal clock.

        Overwrites any earlier pending request, restarting the delay.
        """
        self._require_admin(caller)

        self._emergency_requested = True
        self._emergency_request_time = self.clock.now()
        status = self.emergency_status()

        logger.warning(
            "Emergency withdrawal requested by %s, executable at %s",
            caller, status.executable_at.isoformat(),
        )
        self.notifications.emit(
            NotificationType.EMERGENCY_WITHDRAW_REQUESTED,
            source=self.address,
            requested_by=caller,
            request_time=self._emergency_request_time.isoformat(),
            executable_at=status.executable_at.isoformat(),
        )
        return status

    def execute_emergency_withdraw(self, caller: str) -> int:
        """
        Sweep the entire held balance to the calling admin.

        The pending request is cleared before the transfer so a re-entrant
        caller cannot sweep twice.

        Returns:
            The amount swept.

        Raises:
            NotAuthorized: If the caller is not an admin.
            NotRequested: If no request is pending.
            DelayNotElapsed: If now < request_time + emergency_delay.
        """
        self._require_admin(caller)

        with self._guard.enter("execute_emergency_withdraw"):
            if not self._emergency_requested or self._emergency_request_time is None:
                raise NotRequested("Emergency withdraw not requested")

            request_time = self._emergency_request_time
            executable_at = request_time + self.emergency_delay
            if self.clock.now() < executable_at:
                raise DelayNotElapsed(
                    f"Emergency withdraw delay not passed; executable at "
                    f"{executable_at.isoformat()}"
                )

            self._emergency_requested = False
            self._emergency_request_time = None

            amount = self.available_balance()
            if amount > 0:
                try:
                    self.funds.transfer(self.address, caller, amount)
                except Exception:
                    self._emergency_requested = True
                    self._emergency_request_time = request_time
                    raise

        logger.critical(
            "EMERGENCY WITHDRAWAL EXECUTED: recipient=%s amount=%d", caller, amount
        )
        self.notifications.emit(
            NotificationType.EMERGENCY_WITHDRAW_EXECUTED,
            source=self.address,
            recipient=caller,
            amount=amount,
        )
        return amount

    def cancel_emergency_withdraw(self, caller: str) -> None:
        """Clear any pending request. A no-op if none is pending."""
        self._require_admin(caller)
        if not self._emergency_requested:
            return

        self._emergency_requested = False
        self._emergency_request_time = None

        logger.info("Emergency withdrawal cancelled by %s", caller)
        self.notifications.emit(
            NotificationType.EMERGENCY_WITHDRAW_CANCELLED,
            source=self.address,
            cancelled_by=caller,
        )

    def set_emergency_delay(self, caller: str, delay: timedelta) -> None:
        self._require_admin(caller)
        if delay < MIN_EMERGENCY_DELAY:
            raise InvalidParameter(
                f"Emergency delay {delay} is below the {MIN_EMERGENCY_DELAY} floor"
            )

        old = self.emergency_delay
        self.emergency_delay = delay
        logger.info("Emergency delay updated: %s -> %s", old, delay)
        self.notifications.emit(
            NotificationType.PARAMETER_UPDATED,
            source=self.address,
            parameter="emergency_withdraw_delay",
            old_value=int(old.total_seconds()),
            new_value=int(delay.total_seconds()),
        )

    # ── Administration ──────────────────────────────────────────

    def pause(self, caller: str) -> None:
        self._require_admin(caller)
        if self._paused:
            return
        self._paused = True
        logger.warning("Vault paused by %s", caller)
        self.notifications.emit(NotificationType.PAUSED, source=self.address, sender=caller)

    def unpause(self, caller: str) -> None:
        self._require_admin(caller)
        if not self._paused:
            return
        self._paused = False
        logger.info("Vault unpaused by %s", caller)
        self.notifications.emit(NotificationType.UNPAUSED, source=self.address, sender=caller)

    def update_governance_role(self, caller: str, new_governance: str) -> None:
        """Move the governance role from its current holder to `new_governance`."""
        self._require_admin(caller)
        if is_null_address(new_governance):
            raise InvalidAddress("Governance principal must be non-null")

        old = self._governance
        if old is not None:
            self.roles.revoke(Role.GOVERNANCE, old)
        self.roles.grant(Role.GOVERNANCE, new_governance)
        self._governance = new_governance

        logger.info("Governance role updated: %s -> %s", old, new_governance)
        self.notifications.emit(
            NotificationType.GOVERNANCE_ROLE_UPDATED,
            source=self.address,
            old_governance=old,
            new_governance=new_governance,
        )

    def grant_manager(self, caller: str, principal: str) -> None:
        self._require_admin(caller)
        if self.roles.grant(Role.MANAGER, principal):
            self.notifications.emit(
                NotificationType.ROLE_GRANTED,
                source=self.address,
                role=Role.MANAGER.value,
                account=principal,
                sender=caller,
            )

    def revoke_manager(self, caller: str, principal: str) -> None:
        self._require_admin(caller)
        if self.roles.revoke(Role.MANAGER, principal):
            self.notifications.emit(
                NotificationType.ROLE_REVOKED,
                source=self.address,
                role=Role.MANAGER.value,
                account=principal,
                sender=caller,
            )

    # ── Queries ─────────────────────────────────────────────────

    def available_balance(self) -> int:
        """Funds currently held by the vault."""
        return self.funds.balance_of(self.address)

    def contributor_balance(self, contributor: str) -> int:
        """Cumulative amount deposited by `contributor`."""
        return self._contributions.get(contributor, 0)

    def get_disbursement(self, disbursement_id: int) -> Disbursement:
        if not 1 <= disbursement_id <= len(self._disbursements):
            raise DisbursementNotFound(f"Disbursement {disbursement_id} not found")
        return self._disbursements[disbursement_id - 1].model_copy()

    def disbursements(self) -> list[Disbursement]:
        return [d.model_copy() for d in self._disbursements]

    def treasury_stats(self) -> TreasuryStats:
        return TreasuryStats(
            balance=self.available_balance(),
            total_deposited=self._total_deposited,
            total_spent=self._total_spent,
            disbursement_count=len(self._disbursements),
        )

    def emergency_status(self) -> EmergencyRequest:
        return EmergencyRequest(
            requested=self._emergency_requested,
            request_time=self._emergency_request_time,
            delay=self.emergency_delay,
        )

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def governance_principal(self) -> str | None:
        return self._governance

    @property
    def total_spent(self) -> int:
        return self._total_spent

    # ── Internal ────────────────────────────────────────────────

    def _require_admin(self, caller: str) -> None:
        if not self.roles.has(Role.ADMIN, caller):
            logger.warning("Admin action rejected for %s", caller)
            raise NotAuthorized(f"{caller} does not hold the admin role")

    def _require_not_paused(self) -> None:
        if self._paused:
            raise Paused("Treasury vault is paused")

    def _require_balance(self, amount: int) -> None:
        available = self.available_balance()
        if available < amount:
            raise InsufficientFunds(
                f"Vault holds {available}, cannot release {amount}"
            )
