"""
Tests for validator membership and governance parameters.

Validates:
- Construction with a non-empty validator set
- Admin-gated add/remove and the last-validator floor
- Role registry no-op semantics
- Parameter bounds and ParameterUpdated notifications
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from treasury_dao.core.clock import ManualClock
from treasury_dao.core.errors import (
    AlreadyValidator,
    AuthorizationError,
    EmptyValidatorSet,
    InvalidAddress,
    InvalidParameter,
    LastValidator,
    NotAuthorized,
    NotValidator,
    SelfReferential,
)
from treasury_dao.core.funds import InMemoryFundsLedger
from treasury_dao.core.schema import (
    ZERO_ADDRESS,
    GovernanceParameters,
    NotificationType,
    Role,
)
from treasury_dao.governance.engine import GovernanceEngine
from treasury_dao.governance.roles import RoleRegistry
from treasury_dao.orchestrator import deploy_system
from treasury_dao.treasury.vault import TreasuryVault

OWNER = "0x" + "01" * 20
V1 = "0x" + "11" * 20
V2 = "0x" + "22" * 20
V3 = "0x" + "33" * 20
NEWCOMER = "0x" + "66" * 20
OUTSIDER = "0x" + "77" * 20


class TestRoleRegistry:
    """Role tag → principal set."""

    def setup_method(self):
        self.roles = RoleRegistry()

    def test_grant_and_has(self):
        assert self.roles.grant(Role.VALIDATOR, V1) is True
        assert self.roles.has(Role.VALIDATOR, V1)
        assert not self.roles.has(Role.ADMIN, V1)

    def test_grant_existing_is_noop(self):
        self.roles.grant(Role.MANAGER, V1)
        assert self.roles.grant(Role.MANAGER, V1) is False
        assert self.roles.members(Role.MANAGER) == [V1]

    def test_revoke_missing_is_noop(self):
        assert self.roles.revoke(Role.MANAGER, V1) is False

    def test_revoke(self):
        self.roles.grant(Role.GOVERNANCE, V1)
        assert self.roles.revoke(Role.GOVERNANCE, V1) is True
        assert not self.roles.has(Role.GOVERNANCE, V1)

    def test_null_principal_rejected(self):
        with pytest.raises(InvalidAddress):
            self.roles.grant(Role.ADMIN, ZERO_ADDRESS)
        with pytest.raises(InvalidAddress):
            self.roles.grant(Role.ADMIN, "")
        assert not self.roles.has(Role.ADMIN, None)

    def test_initial_memberships(self):
        roles = RoleRegistry({Role.VALIDATOR: {V2, V1}})
        assert roles.members(Role.VALIDATOR) == sorted([V1, V2])


class TestValidatorMembership:
    """Admin-managed validator set on the governance engine."""

    def setup_method(self):
        self.clock = ManualClock()
        self.system = deploy_system(
            OWNER,
            [V1, V2, V3],
            clock=self.clock,
            parameters=GovernanceParameters(),
            emergency_delay=timedelta(days=2),
        )
        self.engine = self.system.engine

    def test_initial_validators(self):
        assert self.engine.validator_count == 3
        for validator in (V1, V2, V3):
            assert self.engine.is_validator(validator)
        assert not self.engine.is_validator(OWNER)
        added = self.system.notifications.entries(NotificationType.VALIDATOR_ADDED)
        assert [n.payload["validator"] for n in added] == [V1, V2, V3]

    def test_empty_validator_set_rejected(self):
        vault = TreasuryVault(admin=OWNER, funds=InMemoryFundsLedger())
        with pytest.raises(EmptyValidatorSet):
            GovernanceEngine(vault=vault, admin=OWNER, validators=[])

    def test_duplicate_initial_validators_collapse(self):
        vault = TreasuryVault(admin=OWNER, funds=InMemoryFundsLedger())
        engine = GovernanceEngine(vault=vault, admin=OWNER, validators=[V1, V1, V2])
        assert engine.validator_count == 2

    def test_add_validator(self):
        self.engine.add_validator(OWNER, NEWCOMER)
        assert self.engine.validator_count == 4
        assert self.engine.is_validator(NEWCOMER)
        last = self.system.notifications.last(NotificationType.VALIDATOR_ADDED)
        assert last.payload == {"validator": NEWCOMER}

    def test_add_validator_requires_admin(self):
        with pytest.raises(NotAuthorized):
            self.engine.add_validator(V1, NEWCOMER)
        with pytest.raises(AuthorizationError):
            self.engine.add_validator(OUTSIDER, NEWCOMER)
        assert self.engine.validator_count == 3

    def test_add_validator_rejects_bad_principals(self):
        with pytest.raises(InvalidAddress):
            self.engine.add_validator(OWNER, ZERO_ADDRESS)
        with pytest.raises(AlreadyValidator):
            self.engine.add_validator(OWNER, V1)
        with pytest.raises(SelfReferential):
            self.engine.add_validator(OWNER, self.engine.address)
        assert self.engine.validator_count == 3

    def test_remove_validator(self):
        self.engine.remove_validator(OWNER, V3)
        assert self.engine.validator_count == 2
        assert not self.engine.is_validator(V3)
        assert V3 not in self.engine.validators()

    def test_remove_non_validator(self):
        with pytest.raises(NotValidator):
            self.engine.remove_validator(OWNER, OUTSIDER)

    def test_cannot_remove_last_validator(self):
        self.engine.remove_validator(OWNER, V2)
        self.engine.remove_validator(OWNER, V3)
        with pytest.raises(LastValidator):
            self.engine.remove_validator(OWNER, V1)
        assert self.engine.validator_count == 1

    def test_readd_after_removal(self):
        self.engine.remove_validator(OWNER, V2)
        self.engine.add_validator(OWNER, V2)
        assert self.engine.validator_count == 3


class TestGovernanceParameters:
    """Admin-tunable voting period, quorum and approval threshold."""

    def setup_method(self):
        self.system = deploy_system(
            OWNER,
            [V1],
            clock=ManualClock(),
            parameters=GovernanceParameters(),
            emergency_delay=timedelta(days=2),
        )
        self.engine = self.system.engine

    def test_defaults(self):
        params = self.engine.parameters
        assert params.voting_period == timedelta(days=7)
        assert params.minimum_voting_quorum == 51
        assert params.minimum_approval_percentage == 51

    def test_set_voting_period(self):
        self.engine.set_voting_period(OWNER, timedelta(days=3))
        assert self.engine.parameters.voting_period == timedelta(days=3)

        updated = self.system.notifications.last(NotificationType.PARAMETER_UPDATED)
        assert updated.payload == {
            "parameter": "voting_period",
            "old_value": 7 * 24 * 3600,
            "new_value": 3 * 24 * 3600,
        }

    def test_voting_period_bounds(self):
        self.engine.set_voting_period(OWNER, timedelta(hours=1))
        self.engine.set_voting_period(OWNER, timedelta(days=30))
        with pytest.raises(InvalidParameter):
            self.engine.set_voting_period(OWNER, timedelta(minutes=59))
        with pytest.raises(InvalidParameter):
            self.engine.set_voting_period(OWNER, timedelta(days=30, seconds=1))
        assert self.engine.parameters.voting_period == timedelta(days=30)

    def test_quorum_bounds(self):
        self.engine.set_minimum_voting_quorum(OWNER, 1)
        self.engine.set_minimum_voting_quorum(OWNER, 100)
        with pytest.raises(InvalidParameter):
            self.engine.set_minimum_voting_quorum(OWNER, 0)
        with pytest.raises(InvalidParameter):
            self.engine.set_minimum_voting_quorum(OWNER, 101)
        assert self.engine.parameters.minimum_voting_quorum == 100

    def test_approval_bounds(self):
        self.engine.set_minimum_approval_percentage(OWNER, 100)
        with pytest.raises(InvalidParameter):
            self.engine.set_minimum_approval_percentage(OWNER, 50)
        with pytest.raises(InvalidParameter):
            self.engine.set_minimum_approval_percentage(OWNER, 101)
        assert self.engine.parameters.minimum_approval_percentage == 100

    def test_setters_require_admin(self):
        with pytest.raises(NotAuthorized):
            self.engine.set_voting_period(V1, timedelta(days=1))
        with pytest.raises(NotAuthorized):
            self.engine.set_minimum_voting_quorum(V1, 60)
        with pytest.raises(NotAuthorized):
            self.engine.set_minimum_approval_percentage(V1, 60)

    def test_invalid_initial_parameters(self):
        vault = TreasuryVault(admin=OWNER, funds=InMemoryFundsLedger())
        with pytest.raises(InvalidParameter):
            GovernanceEngine(
                vault=vault,
                admin=OWNER,
                validators=[V1],
                parameters=GovernanceParameters(minimum_approval_percentage=50),
            )

    def test_caller_parameters_not_mutated(self):
        params = GovernanceParameters()
        vault = TreasuryVault(admin=OWNER, funds=InMemoryFundsLedger())
        engine = GovernanceEngine(
            vault=vault, admin=OWNER, validators=[V1], parameters=params
        )
        engine.set_minimum_voting_quorum(OWNER, 90)
        assert params.minimum_voting_quorum == 51

    def test_new_period_applies_to_new_proposals_only(self):
        self.system.funds.mint(OUTSIDER, 10)
        self.system.vault.deposit(OUTSIDER, 10)
        first = self.engine.create_proposal(V1, "First", 1, NEWCOMER, "details")
        self.engine.set_voting_period(OWNER, timedelta(days=1))
        second = self.engine.create_proposal(V1, "Second", 1, NEWCOMER, "details")

        p1 = self.engine.get_proposal(first)
        p2 = self.engine.get_proposal(second)
        assert p1.end_time - p1.start_time == timedelta(days=7)
        assert p2.end_time - p2.start_time == timedelta(days=1)
