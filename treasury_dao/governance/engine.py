"""
Governance Engine — validator-weighted proposals that authorize spending.

A proposal moves through four states and never goes back:

    OPEN            — now <= end_time, validators may vote
    CLOSED_PENDING  — window elapsed, waiting for someone to execute
    EXECUTED_PASSED — quorum and approval met, funds disbursed
    EXECUTED_FAILED — quorum met, approval not met, nothing moved

Tallying is integer-only:

    required_quorum     = ceil(validator_count * quorum / 100)
    approval_percentage = floor(votes_for * 100 / total_votes)

Governance parameters are read live when a proposal is executed, not
captured when it is created. Changing the quorum or approval threshold
therefore changes the outcome of proposals that are already open.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Protocol

from treasury_dao.core.clock import Clock, SystemClock
from treasury_dao.core.errors import (
    AlreadyExecuted,
    AlreadyValidator,
    AlreadyVoted,
    EmptyValidatorSet,
    InsufficientFunds,
    InvalidAddress,
    InvalidAmount,
    InvalidParameter,
    LastValidator,
    MissingField,
    NotAuthorized,
    NotValidator,
    ProposalNotFound,
    QuorumNotReached,
    SelfReferential,
    VotingClosed,
    VotingStillOpen,
)
from treasury_dao.core.schema import (
    MAX_VOTING_PERIOD,
    MIN_VOTING_PERIOD,
    FundingOption,
    GovernanceParameters,
    NotificationType,
    Proposal,
    ProposalState,
    Role,
    VoteRecord,
    VotingStats,
    generate_address,
    is_null_address,
)
from treasury_dao.governance.catalog import FundingOptionCatalog
from treasury_dao.governance.roles import RoleRegistry
from treasury_dao.ledger.notifications import NotificationLog

logger = logging.getLogger(__name__)


class TreasuryGateway(Protocol):
    """The two vault operations the engine is allowed to use."""

    address: str

    def available_balance(self) -> int: ...

    def disburse(self, caller: str, amount: int, provider: str, details: str) -> int: ...


# ════════════════════════════════════════════════════════════════
# Parameter validation
# ════════════════════════════════════════════════════════════════


def check_voting_period(period: timedelta) -> None:
    if not MIN_VOTING_PERIOD <= period <= MAX_VOTING_PERIOD:
        raise InvalidParameter(
            f"Voting period {period} outside [{MIN_VOTING_PERIOD}, {MAX_VOTING_PERIOD}]"
        )


def check_voting_quorum(quorum: int) -> None:
    if not 1 <= quorum <= 100:
        raise InvalidParameter(f"Quorum {quorum}% outside [1, 100]")


def check_approval_percentage(percentage: int) -> None:
    if not 50 < percentage <= 100:
        raise InvalidParameter(f"Approval {percentage}% must be > 50 and <= 100")


def required_quorum(validator_count: int, quorum: int) -> int:
    """Integer ceiling of validator_count * quorum / 100."""
    return (validator_count * quorum + 99) // 100


def approval_percentage(votes_for: int, total_votes: int) -> int:
    """Integer floor of votes_for * 100 / total_votes (0 when nobody voted)."""
    if total_votes == 0:
        return 0
    return votes_for * 100 // total_votes


# ════════════════════════════════════════════════════════════════
# Governance Engine
# ════════════════════════════════════════════════════════════════


class GovernanceEngine:
    """
    Validator DAO driving the treasury vault.

    The engine owns validator membership, proposals and votes, and the
    funding-option catalog. It reaches the vault only through
    `available_balance()` (when a proposal is created) and `disburse()`
    (when a passed proposal is executed).
    """

    def __init__(
        self,
        vault: TreasuryGateway,
        admin: str,
        validators: Iterable[str],
        address: str | None = None,
        clock: Clock | None = None,
        notifications: NotificationLog | None = None,
        roles: RoleRegistry | None = None,
        parameters: GovernanceParameters | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            vault: Treasury the engine disburses from.
            admin: Principal allowed to manage validators, the catalog
                and governance parameters.
            validators: Initial validator set; must not be empty.
            address: The engine's own principal, used when calling the vault.
            clock: Time source for voting windows.
            notifications: Shared notification log.
            roles: Role registry; a fresh one is created if omitted.
            parameters: Initial governance parameters.
        """
        if is_null_address(admin):
            raise InvalidAddress("Engine admin must be a non-null principal")

        self.vault = vault
        self.address = address or generate_address()
        self.clock = clock if clock is not None else SystemClock()
        self.notifications = (
            notifications if notifications is not None else NotificationLog(self.clock)
        )
        self.roles = roles if roles is not None else RoleRegistry()
        self.catalog = FundingOptionCatalog()

        self.parameters = (
            parameters if parameters is not None else GovernanceParameters()
        ).model_copy()
        check_voting_period(self.parameters.voting_period)
        check_voting_quorum(self.parameters.minimum_voting_quorum)
        check_approval_percentage(self.parameters.minimum_approval_percentage)

        self._proposals: list[Proposal] = []
        self._validator_count = 0

        initial = list(dict.fromkeys(validators))
        if not initial:
            raise EmptyValidatorSet("At least one validator is required")

        self.roles.grant(Role.ADMIN, admin)
        for principal in initial:
            self._add_validator(principal)

    # ── Validator management ────────────────────────────────────

    def add_validator(self, caller: str, principal: str) -> None:
        """
        Admit `principal` to the validator set.

        Raises:
            NotAuthorized: If the caller is not an admin.
            InvalidAddress: If the principal is null.
            AlreadyValidator: If the principal already validates.
            SelfReferential: If the principal is the engine itself.
        """
        self._require_admin(caller)
        self._add_validator(principal)

    def _add_validator(self, principal: str) -> None:
        if is_null_address(principal):
            raise InvalidAddress("Validator must be a non-null principal")
        if self.roles.has(Role.VALIDATOR, principal):
            raise AlreadyValidator(f"{principal} is already a validator")
        if principal == self.address:
            raise SelfReferential("The engine cannot be its own validator")

        self.roles.grant(Role.VALIDATOR, principal)
        self._validator_count += 1

        logger.info(
            "Validator added: %s (count=%d)", principal, self._validator_count
        )
        self.notifications.emit(
            NotificationType.VALIDATOR_ADDED,
            source=self.address,
            validator=principal,
        )

    def remove_validator(self, caller: str, principal: str) -> None:
        """
        Remove `principal` from the validator set.

        Votes it already cast stay counted.

        Raises:
            NotAuthorized: If the caller is not an admin.
            NotValidator: If the principal is not a validator.
            LastValidator: If it is the only remaining validator.
        """
        self._require_admin(caller)
        if not self.roles.has(Role.VALIDATOR, principal):
            raise NotValidator(f"{principal} is not a validator")
        if self._validator_count == 1:
            raise LastValidator("Cannot remove last validator")

        self.roles.revoke(Role.VALIDATOR, principal)
        self._validator_count -= 1

        logger.info(
            "Validator removed: %s (count=%d)", principal, self._validator_count
        )
        self.notifications.emit(
            NotificationType.VALIDATOR_REMOVED,
            source=self.address,
            validator=principal,
        )

    def is_validator(self, principal: str) -> bool:
        return self.roles.has(Role.VALIDATOR, principal)

    @property
    def validator_count(self) -> int:
        return self._validator_count

    def validators(self) -> list[str]:
        return self.roles.members(Role.VALIDATOR)

    # ── Proposal lifecycle ──────────────────────────────────────

    def create_proposal(
        self,
        caller: str,
        description: str,
        amount: int,
        payee: str,
        details: str,
        option_id: int | None = None,
    ) -> int:
        """
        Submit a funding proposal and open its voting window.

        The vault balance check is point-in-time: nothing is reserved, and
        the balance may have changed by the time the proposal executes.

        Returns:
            The new proposal id.

        Raises:
            NotValidator, InvalidAddress, MissingField, InvalidAmount,
            InvalidOption, InsufficientFunds.
        """
        if not self.roles.has(Role.VALIDATOR, caller):
            raise NotValidator(f"{caller} is not a validator")
        if is_null_address(payee) or payee == self.vault.address:
            raise InvalidAddress("Payee must be a non-null principal other than the vault")
        if not description:
            raise MissingField("Proposal description must not be empty")
        if not details:
            raise MissingField("Payee details must not be empty")
        if amount <= 0:
            raise InvalidAmount(f"Proposal amount must be positive, got {amount}")
        if option_id is not None:
            self.catalog.get(option_id)

        available = self.vault.available_balance()
        if amount > available:
            raise InsufficientFunds(
                f"Insufficient treasury funds: requested {amount}, available {available}"
            )

        now = self.clock.now()
        proposal = Proposal(
            id=len(self._proposals) + 1,
            proposer=caller,
            description=description,
            amount=amount,
            payee=payee,
            payee_details=details,
            option_id=option_id,
            start_time=now,
            end_time=now + self.parameters.voting_period,
        )
        self._proposals.append(proposal)

        logger.info(
            "Proposal #%d created by %s: amount=%d payee=%s ends=%s",
            proposal.id, caller, amount, payee, proposal.end_time.isoformat(),
        )
        self.notifications.emit(
            NotificationType.PROPOSAL_CREATED,
            source=self.address,
            proposal_id=proposal.id,
            proposer=caller,
            description=description,
            amount=amount,
            payee=payee,
        )
        return proposal.id

    def vote(self, caller: str, proposal_id: int, support: bool) -> None:
        """
        Cast the caller's single, immutable vote on a proposal.

        Raises:
            ProposalNotFound, NotValidator, VotingClosed, AlreadyVoted.
        """
        proposal = self._require_proposal(proposal_id)
        if not self.roles.has(Role.VALIDATOR, caller):
            raise NotValidator(f"{caller} is not a validator")
        now = self.clock.now()
        if now > proposal.end_time:
            raise VotingClosed(
                f"Voting on proposal {proposal_id} closed at "
                f"{proposal.end_time.isoformat()}"
            )
        existing = proposal.votes.get(caller)
        if existing is not None and existing.has_voted:
            raise AlreadyVoted(f"{caller} already voted on proposal {proposal_id}")

        proposal.votes[caller] = VoteRecord(has_voted=True, support=support, cast_at=now)
        if support:
            proposal.votes_for += 1
        else:
            proposal.votes_against += 1

        logger.info(
            "Vote cast: proposal=#%d voter=%s support=%s",
            proposal_id, caller, support,
        )
        self.notifications.emit(
            NotificationType.VOTE_CAST,
            source=self.address,
            proposal_id=proposal_id,
            voter=caller,
            support=support,
        )

    def execute_proposal(self, caller: str, proposal_id: int) -> bool:
        """
        Tally a closed proposal and, if it passed, disburse its funds.

        Anyone may call this. A quorum failure leaves the proposal
        unexecuted. Once quorum is met the execution latch is set before
        the vault is called; if the vault rejects the disbursement the
        latch is released again and the error propagates, so the proposal
        is never left executed with its funds unmoved.

        Returns:
            Whether the proposal passed.

        Raises:
            ProposalNotFound, VotingStillOpen, AlreadyExecuted,
            QuorumNotReached, and any error raised by the vault.
        """
        proposal = self._require_proposal(proposal_id)
        if self.clock.now() <= proposal.end_time:
            raise VotingStillOpen(f"Voting period not ended for proposal {proposal_id}")
        if proposal.executed:
            raise AlreadyExecuted(f"Proposal {proposal_id} already executed")

        stats = self._tally(proposal)
        if not stats.quorum_reached:
            raise QuorumNotReached(
                f"Quorum not reached: {stats.total_votes} of "
                f"{stats.required_quorum} required votes"
            )

        proposal.executed = True
        passed = stats.approval_percentage >= self.parameters.minimum_approval_percentage

        if passed:
            proposal.passed = True
            try:
                self.vault.disburse(
                    self.address,
                    proposal.amount,
                    proposal.payee,
                    proposal.payee_details,
                )
            except Exception as exc:
                proposal.executed = False
                proposal.passed = False
                logger.error(
                    "Proposal #%d execution rolled back: %s", proposal_id, exc
                )
                raise

        logger.info(
            "Proposal #%d executed by %s: passed=%s approval=%d%% quorum=%d/%d",
            proposal_id, caller, passed, stats.approval_percentage,
            stats.total_votes, stats.required_quorum,
        )
        self.notifications.emit(
            NotificationType.PROPOSAL_EXECUTED,
            source=self.address,
            proposal_id=proposal_id,
            passed=passed,
        )
        return passed

    # ── Catalog ─────────────────────────────────────────────────

    def add_option(
        self, caller: str, provider: str, name: str, details: str, price: int
    ) -> int:
        """Register a funding option (admin only). Returns its id."""
        self._require_admin(caller)
        option = self.catalog.add(provider, name, details, price)
        self.notifications.emit(
            NotificationType.OPTION_ADDED,
            source=self.address,
            option_id=option.id,
            provider=provider,
            name=name,
        )
        return option.id

    def deactivate_option(self, caller: str, option_id: int) -> None:
        """Hide an option from the active listing (admin only, one-way)."""
        self._require_admin(caller)
        self.catalog.deactivate(option_id)
        self.notifications.emit(
            NotificationType.OPTION_DEACTIVATED,
            source=self.address,
            option_id=option_id,
        )

    def list_active_options(self) -> list[int]:
        return self.catalog.list_active()

    def get_option(self, option_id: int) -> FundingOption:
        return self.catalog.get(option_id)

    @property
    def option_count(self) -> int:
        return len(self.catalog)

    # ── Governance parameters ───────────────────────────────────

    def set_voting_period(self, caller: str, period: timedelta) -> None:
        self._require_admin(caller)
        check_voting_period(period)
        old = self.parameters.voting_period
        self.parameters.voting_period = period
        self._parameter_updated(
            "voting_period", int(old.total_seconds()), int(period.total_seconds())
        )

    def set_minimum_voting_quorum(self, caller: str, quorum: int) -> None:
        self._require_admin(caller)
        check_voting_quorum(quorum)
        old = self.parameters.minimum_voting_quorum
        self.parameters.minimum_voting_quorum = quorum
        self._parameter_updated("minimum_voting_quorum", old, quorum)

    def set_minimum_approval_percentage(self, caller: str, percentage: int) -> None:
        self._require_admin(caller)
        check_approval_percentage(percentage)
        old = self.parameters.minimum_approval_percentage
        self.parameters.minimum_approval_percentage = percentage
        self._parameter_updated("minimum_approval_percentage", old, percentage)

    def _parameter_updated(self, parameter: str, old: int, new: int) -> None:
        logger.info("Governance parameter updated: %s %d -> %d", parameter, old, new)
        self.notifications.emit(
            NotificationType.PARAMETER_UPDATED,
            source=self.address,
            parameter=parameter,
            old_value=old,
            new_value=new,
        )

    # ── Queries ─────────────────────────────────────────────────

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self._require_proposal(proposal_id).model_copy(deep=True)

    def get_vote(self, proposal_id: int, principal: str) -> VoteRecord:
        proposal = self._require_proposal(proposal_id)
        record = proposal.votes.get(principal)
        return record.model_copy() if record is not None else VoteRecord()

    def get_voting_stats(self, proposal_id: int) -> VotingStats:
        return self._tally(self._require_proposal(proposal_id))

    def proposal_state(self, proposal_id: int) -> ProposalState:
        return self._require_proposal(proposal_id).state_at(self.clock.now())

    def list_proposals(self) -> list[Proposal]:
        return [p.model_copy(deep=True) for p in self._proposals]

    @property
    def proposal_count(self) -> int:
        return len(self._proposals)

    # ── Internal ────────────────────────────────────────────────

    def _require_admin(self, caller: str) -> None:
        if not self.roles.has(Role.ADMIN, caller):
            logger.warning("Admin action rejected for %s", caller)
            raise NotAuthorized(f"{caller} does not hold the admin role")

    def _require_proposal(self, proposal_id: int) -> Proposal:
        if not 1 <= proposal_id <= len(self._proposals):
            raise ProposalNotFound(f"Proposal {proposal_id} not found")
        return self._proposals[proposal_id - 1]

    def _tally(self, proposal: Proposal) -> VotingStats:
        total = proposal.votes_for + proposal.votes_against
        quorum = required_quorum(
            self._validator_count, self.parameters.minimum_voting_quorum
        )
        return VotingStats(
            proposal_id=proposal.id,
            total_votes=total,
            required_quorum=quorum,
            approval_percentage=approval_percentage(proposal.votes_for, total),
            quorum_reached=total >= quorum,
        )
