"""
Error taxonomy — every rejected operation raises one of these.

Failures are synchronous and leave state untouched. Callers decide whether
to retry (e.g. vote again before the window closes) or give up. The
category base classes let callers handle a whole family at once:

- AuthorizationError    — caller lacks the required role
- ValidationError       — malformed input
- StateConflictError    — operation not applicable to the entity's state
- ResourceConflictError — valid request, shared-resource precondition unmet
- TemporalError         — attempted outside its time window
"""

from __future__ import annotations


class DaoError(Exception):
    """Base class for all governance and treasury failures."""

    pass


# ════════════════════════════════════════════════════════════════
# Categories
# ════════════════════════════════════════════════════════════════


class AuthorizationError(DaoError):
    pass


class ValidationError(DaoError):
    pass


class StateConflictError(DaoError):
    pass


class ResourceConflictError(DaoError):
    pass


class TemporalError(DaoError):
    pass


# ════════════════════════════════════════════════════════════════
# Authorization
# ════════════════════════════════════════════════════════════════


class NotValidator(AuthorizationError):
    """Principal does not hold the validator role."""


class NotAuthorized(AuthorizationError):
    """Caller lacks the administrative or governance capability."""


class NotTreasuryRole(AuthorizationError):
    """Caller lacks the treasury manager role."""


# ════════════════════════════════════════════════════════════════
# Validation
# ════════════════════════════════════════════════════════════════


class InvalidAddress(ValidationError):
    pass


class MissingField(ValidationError):
    pass


class MissingDetails(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class ZeroAmount(ValidationError):
    pass


class InvalidOption(ValidationError):
    pass


class InvalidParameter(ValidationError):
    pass


class EmptyValidatorSet(ValidationError):
    pass


class SelfReferential(ValidationError):
    """The engine cannot name itself as a validator."""


# ════════════════════════════════════════════════════════════════
# State conflicts
# ════════════════════════════════════════════════════════════════


class ProposalNotFound(StateConflictError):
    pass


class DisbursementNotFound(StateConflictError):
    pass


class AlreadyVoted(StateConflictError):
    pass


class AlreadyExecuted(StateConflictError):
    pass


class AlreadyInactive(StateConflictError):
    pass


class AlreadyValidator(StateConflictError):
    pass


class NotRequested(StateConflictError):
    pass


class Paused(StateConflictError):
    pass


class ReentrantCall(StateConflictError):
    """A guarded entry point was entered while another one was in progress."""


# ════════════════════════════════════════════════════════════════
# Resource conflicts
# ════════════════════════════════════════════════════════════════


class InsufficientFunds(ResourceConflictError):
    pass


class LastValidator(ResourceConflictError):
    pass


class QuorumNotReached(ResourceConflictError):
    pass


class TransferFailed(ResourceConflictError):
    pass


# ════════════════════════════════════════════════════════════════
# Temporal
# ════════════════════════════════════════════════════════════════


class VotingClosed(TemporalError):
    pass


class VotingStillOpen(TemporalError):
    pass


class DelayNotElapsed(TemporalError):
    pass
