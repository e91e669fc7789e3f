"""
Treasury DAO — Deployment orchestrator.

Wires the system together in dependency order:
1. Deploys the treasury vault (governance role left empty)
2. Deploys the governance engine pointing at the vault
3. Rotates the vault's governance role to the engine
4. Seeds validators and funding options
5. Optionally mirrors notifications into the SQLAlchemy archive

This is the entrypoint for `python -m treasury_dao.orchestrator`.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

import structlog
from rich.console import Console
from rich.table import Table

from treasury_dao.config import settings
from treasury_dao.core.clock import Clock, SystemClock
from treasury_dao.core.funds import InMemoryFundsLedger
from treasury_dao.core.schema import GovernanceParameters
from treasury_dao.governance.engine import GovernanceEngine
from treasury_dao.ledger.notifications import NotificationLog
from treasury_dao.treasury.vault import TreasuryVault

logger = logging.getLogger(__name__)


# Example deployment used by main() and the query API
DEMO_ADMIN = "0x9999999999999999999999999999999999999999"
DEMO_VALIDATORS = (
    "0x1234567890123456789012345678901234567890",
    "0x2345678901234567890123456789012345678901",
    "0x3456789012345678901234567890123456789012",
)
DEMO_OPTIONS = (
    {
        "provider": "0x4567890123456789012345678901234567890123",
        "name": "EcoCredits Premium",
        "details": "High quality verified carbon credits from renewable energy projects",
        "price": 50_000_000_000_000_000,
    },
    {
        "provider": "0x5678901234567890123456789012345678901234",
        "name": "ForestGuard Credits",
        "details": "Carbon credits from forest conservation and reforestation projects",
        "price": 80_000_000_000_000_000,
    },
)


def configure_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")


@dataclass
class DaoSystem:
    """A deployed vault + engine pair and the collaborators they share."""

    admin: str
    clock: Clock
    funds: InMemoryFundsLedger
    notifications: NotificationLog
    vault: TreasuryVault
    engine: GovernanceEngine
    option_ids: list[int] = field(default_factory=list)


def deploy_system(
    admin: str,
    validators: Iterable[str],
    funds: InMemoryFundsLedger | None = None,
    clock: Clock | None = None,
    parameters: GovernanceParameters | None = None,
    emergency_delay: timedelta | None = None,
    options: Iterable[dict] = (),
) -> DaoSystem:
    """
    Deploy and wire a complete governance + custody system.

    Args:
        admin: Principal administering both components.
        validators: Initial validator set (non-empty).
        funds: Funds ledger; a fresh in-memory one if omitted.
        clock: Shared time source; wall clock if omitted.
        parameters: Governance parameters; defaults from settings.
        emergency_delay: Vault emergency delay; defaults from settings.
        options: Funding options to register, as keyword dicts for
            GovernanceEngine.add_option.

    Returns:
        The wired DaoSystem.
    """
    clock = clock if clock is not None else SystemClock()
    funds = funds if funds is not None else InMemoryFundsLedger()
    notifications = NotificationLog(clock)
    if emergency_delay is None:
        emergency_delay = timedelta(seconds=settings.emergency_withdraw_delay_seconds)
    if parameters is None:
        parameters = GovernanceParameters.from_settings(settings)

    vault = TreasuryVault(
        admin=admin,
        funds=funds,
        clock=clock,
        notifications=notifications,
        emergency_delay=emergency_delay,
    )
    engine = GovernanceEngine(
        vault=vault,
        admin=admin,
        validators=validators,
        clock=clock,
        notifications=notifications,
        parameters=parameters,
    )
    vault.update_governance_role(admin, engine.address)

    option_ids = [engine.add_option(admin, **option) for option in options]

    logger.info(
        "System deployed: vault=%s engine=%s validators=%d options=%d",
        vault.address, engine.address, engine.validator_count, len(option_ids),
    )
    return DaoSystem(
        admin=admin,
        clock=clock,
        funds=funds,
        notifications=notifications,
        vault=vault,
        engine=engine,
        option_ids=option_ids,
    )


def print_summary(system: DaoSystem, console: Console | None = None) -> None:
    """Render a deployment summary table."""
    console = console or Console()
    table = Table(title="Deployment Summary", show_lines=True)
    table.add_column("Component", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("TreasuryVault", system.vault.address)
    table.add_row("GovernanceEngine", system.engine.address)
    table.add_row("Vault governance", system.vault.governance_principal or "—")
    table.add_row("Validators added", str(system.engine.validator_count))
    table.add_row("Funding options added", str(len(system.option_ids)))
    table.add_row("Voting period", str(system.engine.parameters.voting_period))
    table.add_row("Quorum", f"{system.engine.parameters.minimum_voting_quorum}%")
    table.add_row(
        "Approval threshold",
        f"{system.engine.parameters.minimum_approval_percentage}%",
    )
    table.add_row("Emergency delay", str(system.vault.emergency_delay))
    console.print(table)


def main() -> None:
    """Deploy the example system and print what was created."""
    parser = argparse.ArgumentParser(description="Deploy an example Treasury DAO")
    parser.add_argument(
        "--archive",
        action="store_true",
        help="Mirror notifications into the database at settings.database_url",
    )
    args = parser.parse_args()

    configure_logging()
    log = structlog.get_logger()
    log.info("treasury_dao.orchestrator.starting", admin=DEMO_ADMIN)

    system = deploy_system(DEMO_ADMIN, DEMO_VALIDATORS, options=DEMO_OPTIONS)

    if args.archive:
        from treasury_dao.ledger.service import LedgerService

        archive = LedgerService(settings.database_url)
        archive.initialize()
        archive.attach(system.notifications)
        log.info("treasury_dao.orchestrator.archive_attached", url=settings.database_url)

    log.info(
        "treasury_dao.orchestrator.deployed",
        vault=system.vault.address,
        engine=system.engine.address,
        notifications=len(system.notifications),
    )
    print_summary(system)


if __name__ == "__main__":
    main()
