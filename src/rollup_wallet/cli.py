"""
Rollup wallet command line.

Read-only access to the operator: token list, account state and operation
status, plus an offline helper that shows how an amount gets packed.
"""

import asyncio
import logging
import sys
from typing import Optional

import click

from .config import ClientConfig
from .errors import WalletError
from .packing import AMOUNT_CODEC, FEE_CODEC
from .tokens import TokenRegistry, format_units, to_base_units
from .transport import HttpL2Transport
from .types import OperationHandle, OperationKind, TokenDescriptor

logger = logging.getLogger(__name__)


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except WalletError as e:
        logger.error(str(e))
        sys.exit(1)


@click.group()
@click.option("--endpoint", default=None, help="Operator JSON-RPC endpoint URL")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML config file (defaults to environment variables)",
)
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, endpoint: Optional[str], config_path: Optional[str], verbose: bool) -> None:
    """Interact with a rollup operator."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    # Load config from file or environment, then override with CLI args
    config = ClientConfig.from_yaml(config_path) if config_path else ClientConfig.from_env()
    config.override(endpoint=endpoint)
    if verbose:
        config.verbose = True
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.obj = config


@main.command()
@click.pass_obj
def tokens(config: ClientConfig) -> None:
    """List tokens known to the operator."""

    async def run() -> None:
        async with HttpL2Transport(config) as transport:
            registry = TokenRegistry()
            await registry.refresh(transport)
        for token in registry:
            click.echo(f"{token.id:>5}  {token.symbol:<8} decimals={token.decimals}  {token.address}")

    _run(run())


@main.command()
@click.argument("address")
@click.pass_obj
def account(config: ClientConfig, address: str) -> None:
    """Show committed and verified balances for ADDRESS."""

    async def run() -> None:
        async with HttpL2Transport(config) as transport:
            registry = TokenRegistry()
            await registry.refresh(transport)
            state = await transport.fetch_account_state(address)

        click.echo(f"Account {address} (id {state.account_id})")
        click.echo(f"  nonce: committed={state.committed.nonce} verified={state.verified.nonce}")
        symbols = sorted(set(state.committed.balances) | set(state.verified.balances))
        for symbol in symbols:
            committed = state.committed.get(symbol)
            verified = state.verified.get(symbol)
            if symbol in registry:
                token = registry.resolve(symbol)
                committed_text = format_units(token, committed)
                verified_text = format_units(token, verified)
            else:
                committed_text, verified_text = str(committed), str(verified)
            click.echo(f"  {symbol:<8} committed={committed_text}  verified={verified_text}")

    _run(run())


@main.command()
@click.argument("handle")
@click.option("--deposit", is_flag=True, help="HANDLE is a priority operation serial id")
@click.pass_obj
def status(config: ClientConfig, handle: str, deposit: bool) -> None:
    """Show the finality status of an operation HANDLE."""
    kind = OperationKind.DEPOSIT if deposit else OperationKind.TRANSFER

    async def run() -> None:
        async with HttpL2Transport(config) as transport:
            receipt = await transport.poll_status(OperationHandle(handle, kind))
        line = f"{handle}: {receipt.status.name}"
        if receipt.block_number is not None:
            line += f" (block {receipt.block_number})"
        if receipt.reason:
            line += f" - {receipt.reason}"
        click.echo(line)

    _run(run())


@main.command()
@click.argument("amount")
@click.option("--decimals", default=None, type=int, help="Treat AMOUNT as a decimal with this precision")
@click.option("--fee", "as_fee", is_flag=True, help="Use the fee layout instead of the amount layout")
def pack(amount: str, decimals: Optional[int], as_fee: bool) -> None:
    """Show the closest packable value for AMOUNT (offline)."""
    codec = FEE_CODEC if as_fee else AMOUNT_CODEC
    try:
        if decimals is not None:
            raw = to_base_units(TokenDescriptor(id=0, symbol="?", decimals=decimals), amount)
        else:
            raw = int(amount)
        packed = codec.encode(raw)
    except (WalletError, ValueError) as e:
        raise click.ClickException(str(e))

    click.echo(f"amount:   {raw}")
    click.echo(f"packable: {packed.value()}")
    click.echo(f"mantissa: {packed.mantissa} exponent: {packed.exponent}")
    click.echo(f"bytes:    {packed.to_bytes().hex()}")
    if packed.value() != raw:
        click.echo(f"lost:     {raw - packed.value()}")


if __name__ == "__main__":
    main()
