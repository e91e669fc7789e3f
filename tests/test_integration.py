"""
End-to-end tests: deposit → propose → vote → execute across engine and vault.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from treasury_dao.core.clock import ManualClock
from treasury_dao.core.errors import NotAuthorized
from treasury_dao.core.schema import GovernanceParameters, NotificationType
from treasury_dao.orchestrator import deploy_system

OWNER = "0x" + "01" * 20
V1 = "0x" + "11" * 20
V2 = "0x" + "22" * 20
V3 = "0x" + "33" * 20
PROVIDER = "0x" + "44" * 20
USER = "0x" + "55" * 20


class TestEndToEnd:

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
        self.vault = self.system.vault
        self.funds = self.system.funds
        self.funds.mint(USER, 100)
        self.vault.deposit(USER, 5)

    def _run(self, ballots: dict[str, bool]) -> bool:
        proposal_id = self.engine.create_proposal(
            V1,
            "Purchase carbon credits from Provider A",
            2,
            PROVIDER,
            "High quality carbon credits - 100 tons CO2",
        )
        for validator, support in ballots.items():
            self.engine.vote(validator, proposal_id, support)
        self.clock.advance(timedelta(days=7, seconds=1))
        return self.engine.execute_proposal(USER, proposal_id)

    def test_passing_proposal_pays_provider(self):
        assert self._run({V1: True, V2: True, V3: False}) is True

        assert self.engine.get_proposal(1).passed is True
        assert self.vault.available_balance() == 3
        assert self.funds.balance_of(PROVIDER) == 2

        ledger = self.vault.disbursements()
        assert len(ledger) == 1
        assert ledger[0].executed is True
        assert ledger[0].amount == 2
        assert ledger[0].provider == PROVIDER

        stats = self.vault.treasury_stats()
        assert stats.total_deposited == 5
        assert stats.total_spent == 2

    def test_failing_proposal_moves_nothing(self):
        assert self._run({V1: False, V2: False, V3: True}) is False

        proposal = self.engine.get_proposal(1)
        assert proposal.executed is True
        assert proposal.passed is False
        assert self.vault.available_balance() == 5
        assert self.funds.balance_of(PROVIDER) == 0
        assert self.vault.disbursements() == []

    def test_notification_order(self):
        self._run({V1: True, V2: True, V3: False})
        names = [n.name for n in self.system.notifications.entries()]
        assert names[-6:] == [
            NotificationType.PROPOSAL_CREATED,
            NotificationType.VOTE_CAST,
            NotificationType.VOTE_CAST,
            NotificationType.VOTE_CAST,
            NotificationType.FUNDS_DISBURSED,
            NotificationType.PROPOSAL_EXECUTED,
        ]
        assert self.system.notifications.verify_chain()[0] is True

    def test_only_engine_can_disburse(self):
        """The vault's governance role is held by the deployed engine."""
        assert self.vault.governance_principal == self.engine.address
        with pytest.raises(NotAuthorized):
            self.vault.disburse(OWNER, 1, PROVIDER, "details")

    def test_independent_proposals(self):
        self.vault.deposit(USER, 5)
        first = self.engine.create_proposal(V1, "First", 4, PROVIDER, "details")
        second = self.engine.create_proposal(V2, "Second", 4, PROVIDER, "details")
        for validator in (V1, V2, V3):
            self.engine.vote(validator, first, True)
            self.engine.vote(validator, second, validator != V1)
        self.clock.advance(timedelta(days=7, seconds=1))

        assert self.engine.execute_proposal(USER, second) is True
        assert self.engine.execute_proposal(USER, first) is True
        assert self.vault.available_balance() == 2
        assert [d.amount for d in self.vault.disbursements()] == [4, 4]
        assert self.engine.proposal_count == 2

    def test_emergency_sweep_after_governance(self):
        self._run({V1: True, V2: True})
        self.vault.request_emergency_withdraw(OWNER)
        self.clock.advance(timedelta(days=2))
        assert self.vault.execute_emergency_withdraw(OWNER) == 3
        assert self.vault.available_balance() == 0
        assert self.vault.total_spent == 2
