"""
Tests for the Treasury DAO Schema — verifies the Pydantic models.

Validates:
- Enum completeness
- Model instantiation and field constraints
- Computed fields and derived proposal state
- Settings-driven defaults
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from treasury_dao.config import DaoSettings
from treasury_dao.core.schema import (
    ZERO_ADDRESS,
    EmergencyRequest,
    GovernanceParameters,
    NotificationType,
    Proposal,
    ProposalState,
    Role,
    generate_address,
    is_null_address,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _proposal(**overrides) -> Proposal:
    fields = {
        "id": 1,
        "proposer": "0x" + "11" * 20,
        "description": "Purchase carbon credits",
        "amount": 2,
        "payee": "0x" + "44" * 20,
        "payee_details": "100 tons CO2",
        "start_time": START,
        "end_time": START + timedelta(days=7),
    }
    fields.update(overrides)
    return Proposal(**fields)


class TestEnums:
    """Verify enums are properly defined."""

    def test_role_values(self):
        assert {r.value for r in Role} == {"admin", "validator", "governance", "manager"}

    def test_proposal_states(self):
        assert len(ProposalState) == 4

    def test_notification_names_are_unique(self):
        values = [n.value for n in NotificationType]
        assert len(values) == len(set(values))
        assert NotificationType.PROPOSAL_EXECUTED.value == "ProposalExecuted"
        assert NotificationType.FUNDS_DISBURSED.value == "FundsDisbursed"


class TestAddresses:

    def test_null_address(self):
        assert is_null_address(ZERO_ADDRESS)
        assert is_null_address("")
        assert is_null_address(None)
        assert not is_null_address("0x" + "11" * 20)

    def test_generated_addresses(self):
        a, b = generate_address(), generate_address()
        assert a != b
        assert a.startswith("0x") and len(a) == 42


class TestProposalModel:

    def test_defaults(self):
        proposal = _proposal()
        assert proposal.votes_for == 0
        assert proposal.votes_against == 0
        assert proposal.executed is False
        assert proposal.passed is False
        assert proposal.votes == {}
        assert proposal.option_id is None

    def test_total_votes_computed(self):
        proposal = _proposal(votes_for=2, votes_against=1)
        assert proposal.total_votes == 3
        assert proposal.model_dump()["total_votes"] == 3

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            _proposal(amount=0)

    def test_id_must_be_positive(self):
        with pytest.raises(ValidationError):
            _proposal(id=0)

    def test_state_transitions(self):
        proposal = _proposal()
        assert proposal.state_at(START) == ProposalState.OPEN
        assert proposal.state_at(proposal.end_time) == ProposalState.OPEN
        later = proposal.end_time + timedelta(seconds=1)
        assert proposal.state_at(later) == ProposalState.CLOSED_PENDING

        proposal.executed = True
        assert proposal.state_at(later) == ProposalState.EXECUTED_FAILED
        proposal.passed = True
        assert proposal.state_at(later) == ProposalState.EXECUTED_PASSED


class TestEmergencyRequest:

    def test_not_requested(self):
        assert EmergencyRequest().executable_at is None

    def test_executable_at(self):
        request = EmergencyRequest(
            requested=True, request_time=START, delay=timedelta(days=2)
        )
        assert request.executable_at == START + timedelta(days=2)


class TestGovernanceParameters:

    def test_from_settings(self):
        settings = DaoSettings(
            voting_period_seconds=3600,
            minimum_voting_quorum=60,
            minimum_approval_percentage=75,
        )
        params = GovernanceParameters.from_settings(settings)
        assert params.voting_period == timedelta(hours=1)
        assert params.minimum_voting_quorum == 60
        assert params.minimum_approval_percentage == 75
