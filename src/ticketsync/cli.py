"""Command-line utilities for inspecting persisted snapshots.

Usage:
    uv run ticketsync-snapshots inspect ticket-42 ticket-43
    uv run ticketsync-snapshots rewrite ticket-42 --dry-run

``rewrite`` re-stores snapshots that were found in a legacy encoding
(raw buffer or char-code string) in the canonical base64 form. It is
idempotent: snapshots already in a canonical encoding are skipped.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.console import Console

from ticketsync.snapshots.codec import CANONICAL_FORMATS
from ticketsync.snapshots.outcome import Failed, Found, NotFound

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ticketsync.snapshots.adapter import SnapshotAdapter

console = Console()


@dataclass
class RewriteSummary:
    """Counts reported at the end of a rewrite run."""

    rewritten: int = 0
    skipped: int = 0
    errors: int = 0


async def _cmd_inspect(
    adapter: SnapshotAdapter,
    document_ids: Sequence[str],
    *,
    output: Console | None = None,
) -> int:
    """Print one table row per document. Returns the number of failed fetches."""
    from rich.table import Table

    con = output if output is not None else console
    table = Table(title="Snapshots")
    table.add_column("Document", style="cyan")
    table.add_column("Outcome")
    table.add_column("Format")
    table.add_column("Bytes", justify="right")
    table.add_column("Detail")

    failures = 0
    for document_id in document_ids:
        outcome = await adapter.fetch(document_id)
        match outcome:
            case Found(data=data, format=fmt):
                table.add_row(document_id, "[green]found[/]", fmt, str(len(data)), "")
            case NotFound(reason=reason):
                table.add_row(document_id, "[yellow]not found[/]", "", "", reason.value)
            case Failed(cause=cause):
                failures += 1
                table.add_row(document_id, "[red]failed[/]", "", "", str(cause))

    con.print(table)
    return failures


async def _cmd_rewrite(
    adapter: SnapshotAdapter,
    document_ids: Sequence[str],
    *,
    dry_run: bool = False,
    output: Console | None = None,
) -> RewriteSummary:
    """Re-store legacy-encoded snapshots in the canonical encoding."""
    con = output if output is not None else console
    summary = RewriteSummary()

    for document_id in document_ids:
        outcome = await adapter.fetch(document_id)
        if isinstance(outcome, Failed):
            summary.errors += 1
            con.print(f"  [red]Error[/] fetching {document_id}: {outcome.cause}")
            continue
        if not isinstance(outcome, Found) or outcome.format in CANONICAL_FORMATS:
            summary.skipped += 1
            continue

        if dry_run:
            con.print(
                f"  [dim]Would rewrite[/] {document_id} "
                f"({outcome.format}, {len(outcome.data)} bytes)"
            )
            summary.rewritten += 1
            continue

        stored = await adapter.store(document_id, outcome.data)
        if isinstance(stored, Failed):
            summary.errors += 1
            con.print(f"  [red]Error[/] storing {document_id}: {stored.cause}")
        else:
            summary.rewritten += 1
            con.print(f"  Rewrote {document_id} (was {outcome.format})")

    mode = "[yellow]DRY RUN[/] " if dry_run else ""
    con.print()
    con.print(f"{mode}Rewrite complete:")
    con.print(f"  Rewritten: {summary.rewritten}")
    con.print(f"  Skipped:   {summary.skipped}")
    con.print(f"  Errors:    {summary.errors}")
    return summary


def _build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for ticketsync-snapshots subcommands."""
    parser = argparse.ArgumentParser(
        prog="ticketsync-snapshots",
        description="Inspect and migrate persisted document snapshots.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    inspect_p = sub.add_parser("inspect", help="Show how each snapshot decodes")
    inspect_p.add_argument("document_ids", nargs="+", help="Document identifiers")

    rewrite_p = sub.add_parser(
        "rewrite", help="Re-store legacy-encoded snapshots as base64"
    )
    rewrite_p.add_argument("document_ids", nargs="+", help="Document identifiers")
    rewrite_p.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be rewritten without modifying the database.",
    )
    return parser


def snapshots(argv: Sequence[str] | None = None) -> None:
    """CLI entry point for snapshot inspection and migration."""
    from ticketsync.config import get_settings
    from ticketsync.store.factory import build_snapshot_adapter

    args = _build_parser().parse_args(argv)
    settings = get_settings()

    if settings.store.backend == "postgres" and not settings.database.url:
        console.print("[red]Error:[/] DATABASE__URL not set")
        sys.exit(1)

    async def _run() -> int:
        from ticketsync.db.engine import close_db

        adapter = build_snapshot_adapter(settings)
        try:
            match args.command:
                case "inspect":
                    return await _cmd_inspect(adapter, args.document_ids)
                case "rewrite":
                    summary = await _cmd_rewrite(
                        adapter, args.document_ids, dry_run=args.dry_run
                    )
                    return summary.errors
            return 0
        finally:
            await close_db()

    if asyncio.run(_run()):
        sys.exit(1)
