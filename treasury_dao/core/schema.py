"""
Treasury DAO Schema — Pydantic models for governance and custody records.

These models are the canonical data structures shared by the governance
engine, the treasury vault, the notification log and the query API.
Amounts are integer base units; percentages are whole numbers. Nothing here
uses floating point.
"""

from __future__ import annotations

import enum
import hashlib
import json
import secrets
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, computed_field


# ════════════════════════════════════════════════════════════════
# Constants
# ════════════════════════════════════════════════════════════════

ZERO_ADDRESS = "0x" + "0" * 40

MIN_VOTING_PERIOD = timedelta(hours=1)
MAX_VOTING_PERIOD = timedelta(days=30)
DEFAULT_VOTING_PERIOD = timedelta(days=7)

DEFAULT_VOTING_QUORUM = 51
DEFAULT_APPROVAL_PERCENTAGE = 51

MIN_EMERGENCY_DELAY = timedelta(days=1)
DEFAULT_EMERGENCY_DELAY = timedelta(days=2)

GENESIS_HASH = "0" * 64  # previous_hash of the first notification


def is_null_address(principal: str | None) -> bool:
    """True for a missing principal or the all-zero address."""
    return not principal or principal == ZERO_ADDRESS


def generate_address() -> str:
    """A fresh 20-byte hex address for a newly deployed component."""
    return "0x" + secrets.token_hex(20)


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Role(str, enum.Enum):
    """Role tags held in a RoleRegistry."""

    ADMIN = "admin"
    VALIDATOR = "validator"  # governance engine
    GOVERNANCE = "governance"  # treasury vault: may call disburse
    MANAGER = "manager"  # treasury vault: may call manager_withdraw


class ProposalState(str, enum.Enum):
    """Lifecycle of a proposal. Transitions only move forward."""

    OPEN = "open"
    CLOSED_PENDING = "closed_pending"
    EXECUTED_PASSED = "executed_passed"
    EXECUTED_FAILED = "executed_failed"


class NotificationType(str, enum.Enum):
    """Names of the notifications emitted by mutating operations."""

    # Governance engine
    VALIDATOR_ADDED = "ValidatorAdded"
    VALIDATOR_REMOVED = "ValidatorRemoved"
    PROPOSAL_CREATED = "ProposalCreated"
    VOTE_CAST = "VoteCast"
    PROPOSAL_EXECUTED = "ProposalExecuted"
    OPTION_ADDED = "OptionAdded"
    OPTION_DEACTIVATED = "OptionDeactivated"
    PARAMETER_UPDATED = "ParameterUpdated"

    # Treasury vault
    DEPOSITED = "Deposited"
    FUNDS_DISBURSED = "FundsDisbursed"
    MANAGER_WITHDRAWAL = "ManagerWithdrawal"
    RECIPIENT_AUTHORIZATION_CHANGED = "RecipientAuthorizationChanged"
    EMERGENCY_WITHDRAW_REQUESTED = "EmergencyWithdrawRequested"
    EMERGENCY_WITHDRAW_EXECUTED = "EmergencyWithdrawExecuted"
    EMERGENCY_WITHDRAW_CANCELLED = "EmergencyWithdrawCancelled"
    GOVERNANCE_ROLE_UPDATED = "GovernanceRoleUpdated"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"

    # Shared
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"


# ════════════════════════════════════════════════════════════════
# Governance Models
# ════════════════════════════════════════════════════════════════


class VoteRecord(BaseModel):
    """A validator's vote on one proposal. Immutable once cast."""

    has_voted: bool = False
    support: bool = False
    cast_at: datetime | None = None


class Proposal(BaseModel):
    """
    A funding proposal submitted by a validator.

    `executed` is a one-way latch; `passed` only carries meaning once the
    proposal has been executed.
    """

    id: int = Field(gt=0, description="Positive, densely assigned proposal id")
    proposer: str
    description: str
    amount: int = Field(gt=0, description="Requested amount in base units")
    payee: str
    payee_details: str
    option_id: int | None = Field(
        default=None, description="Catalog option this proposal draws on, if any"
    )
    votes_for: int = 0
    votes_against: int = 0
    start_time: datetime
    end_time: datetime
    executed: bool = False
    passed: bool = False
    votes: dict[str, VoteRecord] = Field(default_factory=dict)

    @computed_field
    @property
    def total_votes(self) -> int:
        return self.votes_for + self.votes_against

    def state_at(self, now: datetime) -> ProposalState:
        """Derive the lifecycle state at time `now`."""
        if self.executed:
            return (
                ProposalState.EXECUTED_PASSED
                if self.passed
                else ProposalState.EXECUTED_FAILED
            )
        if now <= self.end_time:
            return ProposalState.OPEN
        return ProposalState.CLOSED_PENDING


class FundingOption(BaseModel):
    """A registered funding provider (e.g. a carbon-credit offering)."""

    id: int = Field(gt=0)
    provider: str
    name: str
    details: str
    price: int = Field(gt=0, description="Unit price in base units")
    is_active: bool = True


class VotingStats(BaseModel):
    """Derived tallies for a proposal, computed with integer arithmetic."""

    proposal_id: int
    total_votes: int
    required_quorum: int
    approval_percentage: int
    quorum_reached: bool


class GovernanceParameters(BaseModel):
    """Process-wide governance parameters, read live at execution time."""

    voting_period: timedelta = DEFAULT_VOTING_PERIOD
    minimum_voting_quorum: int = DEFAULT_VOTING_QUORUM
    minimum_approval_percentage: int = DEFAULT_APPROVAL_PERCENTAGE

    @classmethod
    def from_settings(cls, settings: Any) -> GovernanceParameters:
        return cls(
            voting_period=timedelta(seconds=settings.voting_period_seconds),
            minimum_voting_quorum=settings.minimum_voting_quorum,
            minimum_approval_percentage=settings.minimum_approval_percentage,
        )


# ════════════════════════════════════════════════════════════════
# Treasury Models
# ════════════════════════════════════════════════════════════════


class Disbursement(BaseModel):
    """A disbursement-ledger entry. Only successful disbursements are recorded."""

    id: int = Field(gt=0)
    amount: int = Field(gt=0)
    provider: str
    details: str
    timestamp: datetime
    executed: bool = True


class EmergencyRequest(BaseModel):
    """Two-phase emergency withdrawal state."""

    requested: bool = False
    request_time: datetime | None = None
    delay: timedelta = DEFAULT_EMERGENCY_DELAY

    @computed_field
    @property
    def executable_at(self) -> datetime | None:
        if not self.requested or self.request_time is None:
            return None
        return self.request_time + self.delay


class TreasuryStats(BaseModel):
    balance: int
    total_deposited: int
    total_spent: int
    disbursement_count: int


# ════════════════════════════════════════════════════════════════
# Notifications
# ════════════════════════════════════════════════════════════════


class Notification(BaseModel):
    """
    A structured notification emitted by a mutating operation.

    Notifications are append-only and hash-chained: each one stores the
    hash of its predecessor, so any retroactive edit is detectable.
    """

    sequence_number: int = Field(description="Position in the log, from 1")
    name: NotificationType
    source: str = Field(description="Address of the emitting component")
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    previous_hash: str = GENESIS_HASH
    entry_hash: str = ""

    def compute_hash(self) -> str:
        """SHA-256(previous_hash || canonical_json(fields))."""
        hashable = {
            "sequence_number": self.sequence_number,
            "name": self.name.value,
            "source": self.source,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "previous_hash": self.previous_hash,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (self.previous_hash + canonical).encode("utf-8")
        ).hexdigest()
