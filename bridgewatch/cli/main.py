#!/usr/bin/env python3
"""
Bridgewatch CLI

Command-line access to the indexer read model: how far each pipeline has
progressed, where confirmations have holes, and what state withdrawals are in.

Usage:
    bridgewatch frontier
    bridgewatch gap [--first-block N]
    bridgewatch batch-of <rollup_block>
    bridgewatch unconfirmed <first_block> <last_block>
    bridgewatch withdrawal-status <hash> [--transaction]
    bridgewatch withdrawals [--limit N] [--before NONCE]
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import click

from ..config import AppConfig, load_config
from ..database_sqlite import DatabaseSQLite
from ..exceptions import BridgewatchException
from ..logger import configure_logging
from ..rollup import Lookup, MessageDirection, RollupReader
from ..withdrawals import WithdrawalReader


def format_lookup(lookup: Lookup, render=str) -> str:
    """Render a tri-state lookup for display."""
    if lookup.is_found:
        return render(lookup.value)
    if lookup.is_not_found:
        return click.style("not indexed yet", fg="yellow")
    return click.style(f"INCONSISTENT ({lookup.detail})", fg="red", bold=True)


def format_optional(value) -> str:
    if value is None:
        return click.style("none", fg="yellow")
    return str(value)


def run_with_store(cfg: AppConfig, operation):
    """Open the store, run ``operation(db)`` to completion and close the store."""
    async def runner():
        db = await DatabaseSQLite.create(cfg.database.path, wal_mode=cfg.database.wal_mode)
        try:
            return await operation(db)
        finally:
            await db.close()

    try:
        return asyncio.run(runner())
    except BridgewatchException as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version="0.1.0", prog_name="bridgewatch")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.toml")
@click.option("--db", "db_path", type=click.Path(), help="Database path (overrides config)")
@click.option("--log-level", help="Log level (overrides config)")
@click.pass_context
def cli(ctx, config_path: Optional[str], db_path: Optional[str], log_level: Optional[str]):
    """Bridgewatch Command Line Interface

    Inspect indexing progress and withdrawal status of a rollup bridge.
    """
    try:
        cfg = load_config(config_path)
        if db_path:
            cfg.database.path = db_path
        if log_level:
            cfg.logging.level = log_level
        cfg.validate()
    except BridgewatchException as e:
        raise click.ClickException(str(e))

    configure_logging(log_level=cfg.logging.level, file_output=cfg.logging.file_output)
    ctx.obj = cfg


@cli.command("frontier")
@click.pass_obj
def frontier_cmd(cfg: AppConfig):
    """Show how far each indexing pipeline has progressed."""
    async def collect(db):
        reader = RollupReader(db)
        return [
            ("Latest L1-to-L2 message, L1 block",
             format_optional(await reader.latest_discovered_l1_block_for_messages(MessageDirection.TO_L2))),
            ("Earliest L1-to-L2 message, L1 block",
             format_optional(await reader.earliest_discovered_l1_block_for_messages(MessageDirection.TO_L2))),
            ("Latest L2-to-L1 message, rollup block",
             format_optional(await reader.latest_discovered_l1_block_for_messages(MessageDirection.FROM_L2))),
            ("Earliest L2-to-L1 message, rollup block",
             format_optional(await reader.earliest_rollup_block_for_incoming_message())),
            ("Earliest completed L1-to-L2 message, rollup block",
             format_lookup(await reader.earliest_confirmed_rollup_block_for_completed_outgoing_message())),
            ("Latest committed batch, L1 block",
             format_lookup(await reader.l1_block_of_latest_committed_batch())),
            ("Earliest committed batch, L1 block",
             format_lookup(await reader.l1_block_of_earliest_committed_batch())),
            ("Highest committed rollup block",
             format_optional(await reader.highest_committed_rollup_block())),
            ("Highest confirmed rollup block",
             format_optional(await reader.highest_confirmed_rollup_block())),
            ("Latest confirmation, L1 block",
             format_lookup(await reader.l1_block_of_latest_confirmed_rollup_block())),
            ("Latest execution, L1 block",
             format_optional(await reader.l1_block_of_latest_execution())),
            ("Earliest execution, L1 block",
             format_optional(await reader.l1_block_of_earliest_execution())),
        ]

    rows = run_with_store(cfg, collect)

    click.echo()
    click.echo(click.style("Indexing frontier", fg="cyan", bold=True))
    click.echo()
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        click.echo(f"  {label:<{width}}  {value}")


@cli.command("gap")
@click.option("--first-block", type=click.IntRange(min=0),
              help="Rollup block confirmations must start from")
@click.pass_obj
def gap_cmd(cfg: AppConfig, first_block: Optional[int]):
    """Show the most recent hole in confirmed rollup blocks.

    Examples:

        bridgewatch gap

        bridgewatch gap --first-block 1
    """
    lookup = run_with_store(cfg, lambda db: RollupReader(db).find_first_confirmation_gap(first_block))

    if lookup.is_not_found:
        click.echo(click.style("✓ Confirmations are contiguous", fg="green"))
        return
    if lookup.is_inconsistent:
        raise click.ClickException(format_lookup(lookup))

    gap = lookup.value
    if gap.overlapping:
        click.echo(click.style("⚠ Overlapping confirmations, no rollup block is missing", fg="yellow"))
    else:
        click.echo(f"Missing rollup blocks: {gap.first_missing_block}..{gap.last_missing_block}")
    click.echo(f"Rescan L1 blocks:      {format_optional(gap.previous_l1_block)}..{gap.current_l1_block}")


@cli.command("batch-of")
@click.argument("rollup_block", type=click.IntRange(min=0))
@click.pass_obj
def batch_of_cmd(cfg: AppConfig, rollup_block: int):
    """Show the batch containing a rollup block."""
    lookup = run_with_store(cfg, lambda db: RollupReader(db).batch_containing_rollup_block(rollup_block))

    if not lookup.is_found:
        click.echo(f"Batch of rollup block {rollup_block}: {format_lookup(lookup)}")
        return

    batch = lookup.value
    click.echo(f"Batch:        {batch.number}")
    click.echo(f"Blocks:       {batch.start_block}..{batch.end_block}")
    click.echo(f"Transactions: {batch.tx_count}")
    click.echo(f"Commit:       {batch.commit_transaction.hash} (L1 block {batch.commit_transaction.block}, "
               f"{batch.commit_transaction.status.value})")


@cli.command("unconfirmed")
@click.argument("first_block", type=click.IntRange(min=0))
@click.argument("last_block", type=click.IntRange(min=0))
@click.pass_obj
def unconfirmed_cmd(cfg: AppConfig, first_block: int, last_block: int):
    """List unconfirmed rollup blocks in an inclusive range."""
    blocks = run_with_store(
        cfg, lambda db: RollupReader(db).unconfirmed_rollup_blocks_in_range(first_block, last_block)
    )

    if not blocks:
        click.echo(f"No unconfirmed rollup blocks in {first_block}..{last_block}")
        return
    for block in blocks:
        click.echo(f"  {block.block_number:>10}  batch {block.batch_number:<8}  {block.hash}")


@cli.command("withdrawal-status")
@click.argument("hash")
@click.option("--transaction", "-t", "by_transaction", is_flag=True,
              help="Treat HASH as an L2 transaction hash and list all its withdrawals")
@click.pass_obj
def withdrawal_status_cmd(cfg: AppConfig, hash: str, by_transaction: bool):
    """Show the status of a withdrawal.

    Examples:

        bridgewatch withdrawal-status 0x5c0f...

        bridgewatch withdrawal-status --transaction 0x9a1e...
    """
    policy = cfg.withdrawals.to_policy()
    now = datetime.now(timezone.utc)

    if by_transaction:
        statuses = run_with_store(
            cfg, lambda db: WithdrawalReader(db).transaction_statuses(hash, policy, now)
        )
        if not statuses:
            click.echo(f"No withdrawals initiated by {hash}")
            return
        for item in statuses:
            relay = f"  relayed in {item.relay_transaction_hash}" if item.relay_transaction_hash else ""
            click.echo(f"  nonce {item.nonce}: {item.status.value}{relay}")
        return

    result = run_with_store(cfg, lambda db: WithdrawalReader(db).status_by_hash(hash, policy, now))
    if result is None:
        raise click.ClickException(f"Withdrawal {hash} is not indexed")

    click.echo(f"Status: {result.status.value}")
    if result.ready_at is not None:
        click.echo(f"Ready for relay at: {result.ready_at.isoformat()}")


@cli.command("withdrawals")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=50, show_default=True,
              help="Page size")
@click.option("--before", type=click.IntRange(min=0),
              help="Raw nonce of the last withdrawal of the previous page")
@click.pass_obj
def withdrawals_cmd(cfg: AppConfig, limit: int, before: Optional[int]):
    """List withdrawals, newest nonce first."""
    summaries = run_with_store(
        cfg, lambda db: WithdrawalReader(db).list_withdrawals(page_size=limit, before_nonce=before)
    )

    if not summaries:
        click.echo("No withdrawals")
        return
    for item in summaries:
        when = item.l2_timestamp.isoformat() if item.l2_timestamp else "-"
        relayed = click.style("relayed", fg="green") if item.relay_transaction_hash else "pending"
        click.echo(f"  {item.nonce:>8}  {item.hash}  L2 block {item.l2_block_number}  {when}  {relayed}")
    if len(summaries) == limit:
        click.echo()
        click.echo(f"Next page: --before {summaries[-1].msg_nonce}")


if __name__ == "__main__":
    cli()
