"""
Treasury DAO — Read-only query API.

FastAPI application exposing the side-effect-free query surface:
- Proposals, votes and voting statistics
- Active funding options
- Treasury balance, stats, disbursements and emergency status
- The notification log

Nothing here mutates state; state-changing operations require an
authenticated caller and are invoked on the engine and vault directly.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from treasury_dao.core.errors import (
    DaoError,
    DisbursementNotFound,
    InvalidOption,
    ProposalNotFound,
)
from treasury_dao.core.schema import (
    Disbursement,
    EmergencyRequest,
    FundingOption,
    Notification,
    NotificationType,
    Proposal,
    TreasuryStats,
    VoteRecord,
    VotingStats,
)

logger = logging.getLogger(__name__)


class ApiState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.engine: Any = None
        self.vault: Any = None
        self.notifications: Any = None
        self.startup_time: datetime = datetime.now(timezone.utc)

    def bind(self, system: Any) -> None:
        """Point the API at a deployed DaoSystem."""
        self.engine = system.engine
        self.vault = system.vault
        self.notifications = system.notifications


state = ApiState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: deploy the example system unless one was injected."""
    if state.engine is None:
        from treasury_dao.orchestrator import (
            DEMO_ADMIN,
            DEMO_OPTIONS,
            DEMO_VALIDATORS,
            deploy_system,
        )

        state.bind(deploy_system(DEMO_ADMIN, DEMO_VALIDATORS, options=DEMO_OPTIONS))
        logger.info("Query API started with the example deployment")

    yield

    logger.info("Query API shut down")


app = FastAPI(
    title="Treasury DAO — Query API",
    description="Read-only view of governance proposals and treasury custody",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(DaoError)
async def dao_error_handler(request: Request, exc: DaoError) -> JSONResponse:
    status = 404 if isinstance(
        exc, (ProposalNotFound, DisbursementNotFound, InvalidOption)
    ) else 400
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def _engine() -> Any:
    if state.engine is None:
        raise HTTPException(status_code=503, detail="Governance engine not initialized")
    return state.engine


def _vault() -> Any:
    if state.vault is None:
        raise HTTPException(status_code=503, detail="Treasury vault not initialized")
    return state.vault


# ── Routes: Governance ─────────────────────────────────────────


@app.get("/proposals")
async def list_proposals() -> list[Proposal]:
    return _engine().list_proposals()


@app.get("/proposals/{proposal_id}")
async def get_proposal(proposal_id: int) -> Proposal:
    return _engine().get_proposal(proposal_id)


@app.get("/proposals/{proposal_id}/stats")
async def get_voting_stats(proposal_id: int) -> VotingStats:
    return _engine().get_voting_stats(proposal_id)


@app.get("/proposals/{proposal_id}/votes/{principal}")
async def get_vote(proposal_id: int, principal: str) -> VoteRecord:
    return _engine().get_vote(proposal_id, principal)


@app.get("/validators")
async def list_validators():
    engine = _engine()
    return {"validators": engine.validators(), "count": engine.validator_count}


@app.get("/options/active")
async def list_active_options():
    return {"option_ids": _engine().list_active_options()}


@app.get("/options/{option_id}")
async def get_option(option_id: int) -> FundingOption:
    return _engine().get_option(option_id)


# ── Routes: Treasury ───────────────────────────────────────────


@app.get("/treasury/stats")
async def treasury_stats() -> TreasuryStats:
    return _vault().treasury_stats()


@app.get("/treasury/contributors/{principal}")
async def contributor_balance(principal: str):
    return {"contributor": principal, "deposited": _vault().contributor_balance(principal)}


@app.get("/treasury/disbursements/{disbursement_id}")
async def get_disbursement(disbursement_id: int) -> Disbursement:
    return _vault().get_disbursement(disbursement_id)


@app.get("/treasury/emergency")
async def emergency_status() -> EmergencyRequest:
    return _vault().emergency_status()


# ── Routes: Notifications ──────────────────────────────────────


@app.get("/notifications")
async def list_notifications(
    name: NotificationType | None = None, limit: int = 50
) -> list[Notification]:
    if state.notifications is None:
        raise HTTPException(status_code=503, detail="Notification log not initialized")
    entries = state.notifications.entries(name)
    return entries[-limit:] if limit > 0 else []


@app.get("/health")
async def health():
    uptime = datetime.now(timezone.utc) - state.startup_time
    return {
        "status": "ok" if state.engine is not None else "uninitialized",
        "uptime_seconds": int(uptime.total_seconds()),
        "paused": state.vault.is_paused if state.vault is not None else None,
    }
