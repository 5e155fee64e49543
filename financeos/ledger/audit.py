"""
Audit Ledger Viewer — operator tool for inspecting the governance trail.

Lists audit entries most-recent-first, optionally filtered by level or
module, and can perform the administrative full-ledger reset.

Usage:
    python -m financeos.ledger.audit
    python -m financeos.ledger.audit --storage-url sqlite:///financeos.db
    python -m financeos.ledger.audit --level warning --limit 20
    python -m financeos.ledger.audit --clear --yes
"""

from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.table import Table

from financeos.config import settings
from financeos.governance.schema import AuditLevel
from financeos.ledger.service import AuditLedger
from financeos.runtime import configure_logging
from financeos.storage.kv import SqlKeyValueStore

console = Console()

LEVEL_STYLES = {
    AuditLevel.INFO: "green",
    AuditLevel.WARNING: "yellow",
    AuditLevel.ERROR: "bold red",
}


def render_entries(
    ledger: AuditLedger,
    level: AuditLevel | None = None,
    module_id: str | None = None,
    limit: int = 50,
) -> int:
    """
    Print audit entries as a table.

    Returns:
        The number of entries shown.
    """
    console.print("\n[bold blue]═══ FinanceOS Audit Ledger ═══[/bold blue]")
    console.print(f"  Entries in ledger: [bold]{ledger.count()}[/bold]")

    entries = ledger.list(level=level, module_id=module_id, limit=limit)
    if not entries:
        console.print("[yellow]No audit entries yet.[/yellow]\n")
        return 0

    table = Table(show_lines=True)
    table.add_column("Time", width=20)
    table.add_column("Level", width=8)
    table.add_column("Title", style="bold")
    table.add_column("Actor", style="cyan")
    table.add_column("Module", style="dim")
    table.add_column("Description")

    for entry in entries:
        style = LEVEL_STYLES.get(entry.level, "")
        table.add_row(
            entry.ts.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{entry.level.value}[/{style}]" if style else entry.level.value,
            entry.title,
            entry.actor,
            entry.module_id or "—",
            entry.description or "",
        )
    console.print(table)
    console.print(f"  Showing {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}\n")
    return len(entries)


def clear_ledger(ledger: AuditLedger, confirmed: bool) -> bool:
    """Administrative reset. Requires explicit confirmation."""
    if not confirmed:
        console.print("[bold red]Refusing to clear the audit ledger without --yes[/bold red]")
        return False
    removed = ledger.count()
    ledger.clear()
    console.print(f"[bold yellow]Audit ledger cleared ({removed} entries removed)[/bold yellow]")
    return True


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="FinanceOS audit ledger viewer")
    parser.add_argument(
        "--storage-url",
        default=None,
        help="SQLAlchemy storage URL (defaults to .env settings)",
    )
    parser.add_argument(
        "--level",
        choices=[level.value for level in AuditLevel],
        default=None,
        help="Only show entries at this level",
    )
    parser.add_argument("--module", default=None, help="Only show entries for this module id")
    parser.add_argument("--limit", type=int, default=50, help="Maximum entries to show")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove every audit entry (administrative reset)",
    )
    parser.add_argument("--yes", action="store_true", help="Confirm --clear")
    args = parser.parse_args(argv)
    configure_logging()

    store = SqlKeyValueStore(args.storage_url or settings.storage_url)
    store.initialize()
    ledger = AuditLedger(store)

    if args.clear:
        sys.exit(0 if clear_ledger(ledger, args.yes) else 1)

    render_entries(
        ledger,
        level=AuditLevel(args.level) if args.level else None,
        module_id=args.module,
        limit=args.limit,
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
