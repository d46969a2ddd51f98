"""
btcsettle CLI - run a regtest settlement and inspect settlement reports.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError

from btcsettle.amounts import format_btc
from btcsettle.errors import SettlementError
from btcsettle.models import NetworkType
from btcsettle.reconcile.report import read_report

app = typer.Typer(
    name="btcsettle",
    help="Regtest settlement runner and reporter",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


@app.command()
def run(
    rpc_url: str | None = typer.Option(None, "--rpc-url", envvar="BITCOIN_RPC_URL"),
    rpc_user: str | None = typer.Option(None, "--rpc-user", envvar="BITCOIN_RPC_USER"),
    rpc_password: str | None = typer.Option(
        None, "--rpc-password", envvar="BITCOIN_RPC_PASSWORD"
    ),
    network: NetworkType | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    miner_wallet: str | None = typer.Option(None, "--miner-wallet", help="Funding wallet name"),
    trader_wallet: str | None = typer.Option(
        None, "--trader-wallet", help="Receiving wallet name"
    ),
    amount: str | None = typer.Option(None, "--amount", "-a", help="Amount to send in BTC"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Report output path"),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Default: INFO"),
) -> None:
    """Fund a wallet, transfer to another and write the settlement report."""
    from btcsettle.config import get_settings
    from btcsettle.pipeline import run_settlement

    try:
        settings = get_settings(
            rpc_url=rpc_url,
            rpc_user=rpc_user,
            rpc_password=rpc_password,
            network=network,
            miner_wallet=miner_wallet,
            trader_wallet=trader_wallet,
            transfer_amount=amount,
            output_path=output,
            log_level=log_level,
        )
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    setup_logging(settings.log_level)

    try:
        record = asyncio.run(run_settlement(settings))
    except SettlementError as e:
        logger.error(f"Settlement failed [{e.kind.value}]: {e}")
        raise typer.Exit(1)

    typer.echo(f"Settlement {record.txid} written to {settings.output_path}")


@app.command()
def show(
    report: Path = typer.Argument(Path("out.txt"), help="Settlement report to display"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
    log_level: str = typer.Option("WARNING", "--log-level", "-l"),
) -> None:
    """Display a settlement report with field names."""
    setup_logging(log_level)

    try:
        record = read_report(report)
    except SettlementError as e:
        logger.error(f"{e}")
        raise typer.Exit(1)

    if as_json:
        data = {
            "txid": record.txid,
            "sender_funding_address": record.sender_funding_address,
            "input_amount": format_btc(record.input_amount),
            "counterparty_address": record.counterparty_address,
            "payment_amount": format_btc(record.payment_amount),
            "change_address": record.change_address,
            "change_amount": format_btc(record.change_amount),
            "fee": format_btc(record.fee),
            "block_height": record.block_height,
            "block_hash": record.block_hash,
        }
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo("=" * 80)
    typer.echo(f"Settlement: {record.txid}")
    typer.echo("=" * 80)
    typer.echo(f"  From:     {record.sender_funding_address}")
    typer.echo(f"  Inputs:   {format_btc(record.input_amount)} BTC")
    typer.echo(f"  To:       {record.counterparty_address}")
    typer.echo(f"  Payment:  {format_btc(record.payment_amount)} BTC")
    typer.echo(f"  Change:   {format_btc(record.change_amount)} BTC -> {record.change_address}")
    typer.echo(f"  Fee:      {format_btc(record.fee)} BTC")
    typer.echo(f"  Block:    {record.block_height} ({record.block_hash})")
    typer.echo("=" * 80)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
