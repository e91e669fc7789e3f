"""
Notification Archive Audit Tool — offline verification of the archived log.

Reads the archive database without touching the running system and checks:

1. Chain integrity: every stored hash is recomputed from its row.
2. Fund flows: per vault, deposits minus every outflow (disbursements,
   manager withdrawals, emergency sweeps) gives the balance the vault
   should hold according to its own notifications.

Usage:
    python -m treasury_dao.ledger.audit
    python -m treasury_dao.ledger.audit --database-url sqlite:///ledger.db
    python -m treasury_dao.ledger.audit --verbose --name FundsDisbursed
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass

from rich.console import Console
from rich.table import Table

from treasury_dao.config import settings
from treasury_dao.core.schema import NotificationType
from treasury_dao.ledger.service import LedgerService

console = Console()

_OUTFLOWS = (
    NotificationType.FUNDS_DISBURSED,
    NotificationType.MANAGER_WITHDRAWAL,
    NotificationType.EMERGENCY_WITHDRAW_EXECUTED,
)


@dataclass
class FundFlows:
    """Amounts moved through one vault, as reported by its notifications."""

    vault: str
    deposited: int = 0
    disbursed: int = 0
    withdrawn: int = 0
    swept: int = 0

    @property
    def expected_balance(self) -> int:
        return self.deposited - self.disbursed - self.withdrawn - self.swept


def reconcile(service: LedgerService) -> dict[str, FundFlows]:
    """Sum the archived fund movements per emitting vault."""
    limit = max(service.get_entry_count(), 1)
    flows: dict[str, FundFlows] = {}

    for name in (NotificationType.DEPOSITED, *_OUTFLOWS):
        for row in service.get_entries_by_name(name, limit=limit):
            entry = flows.setdefault(row.source, FundFlows(vault=row.source))
            amount = int(row.payload.get("amount", 0))
            if name == NotificationType.DEPOSITED:
                entry.deposited += amount
            elif name == NotificationType.FUNDS_DISBURSED:
                entry.disbursed += amount
            elif name == NotificationType.MANAGER_WITHDRAWAL:
                entry.withdrawn += amount
            else:
                entry.swept += amount

    return flows


def run_audit(
    database_url: str,
    verbose: bool = False,
    name: NotificationType | None = None,
) -> bool:
    """
    Audit the archive at `database_url`.

    Args:
        database_url: SQLAlchemy connection string.
        verbose: Also list archived notifications.
        name: Restrict the verbose listing to one notification name.

    Returns:
        True if the hash chain is intact. Fund flows are reported but do
        not affect the result; the vault's live balance is not visible here.
    """
    console.print("\n[bold blue]═══ Treasury DAO Archive Audit ═══[/bold blue]\n")

    service = LedgerService(database_url)
    service.initialize()

    count = service.get_entry_count()
    if count == 0:
        console.print("[yellow]Archive is empty, nothing to verify[/yellow]")
        return True

    is_valid, verified, message = service.verify_chain()
    if is_valid:
        console.print(f"  Hash chain: [bold green]intact[/bold green] ({verified} notifications)")
    else:
        console.print(f"  Hash chain: [bold red]BROKEN[/bold red] after {verified} notifications")
        console.print(f"  {message}")

    totals = Table(title="Notifications by name")
    totals.add_column("Name", style="cyan")
    totals.add_column("Count", justify="right")
    for notification_name, n in service.count_by_name().items():
        totals.add_row(notification_name, str(n))
    console.print(totals)

    flows = reconcile(service)
    if flows:
        table = Table(title="Fund flows per vault")
        table.add_column("Vault", style="yellow")
        for column in ("Deposited", "Disbursed", "Withdrawn", "Swept", "Expected balance"):
            table.add_column(column, justify="right")
        for flow in flows.values():
            table.add_row(
                flow.vault,
                str(flow.deposited),
                str(flow.disbursed),
                str(flow.withdrawn),
                str(flow.swept),
                str(flow.expected_balance),
            )
        console.print(table)

    if verbose:
        rows = (
            service.get_entries_by_name(name, limit=count)
            if name is not None
            else service.get_latest_entries(limit=count)
        )
        listing = Table(show_lines=True)
        listing.add_column("Seq", style="cyan", width=6)
        listing.add_column("Name", style="green")
        listing.add_column("Payload")
        listing.add_column("Hash", style="dim", width=18)
        for row in reversed(rows):
            listing.add_row(
                str(row.sequence_number),
                row.name,
                ", ".join(f"{k}={v}" for k, v in row.payload.items()),
                row.entry_hash[:16] + "...",
            )
        console.print(listing)

    return is_valid


def main() -> None:
    parser = argparse.ArgumentParser(description="Audit a Treasury DAO notification archive")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to settings.database_url)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="List notifications")
    parser.add_argument(
        "--name",
        type=NotificationType,
        choices=list(NotificationType),
        default=None,
        help="Only list notifications with this name",
    )
    args = parser.parse_args()

    is_valid = run_audit(
        args.database_url or settings.database_url,
        verbose=args.verbose,
        name=args.name,
    )
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
