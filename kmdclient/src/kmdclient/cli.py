"""
kmd client CLI - inspect wallets, keys and multisig preimages held by a kmd daemon.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from loguru import logger

from kmdclient.address import decode_address, encode_address
from kmdclient.client import KMDClient
from kmdclient.constants import (
    DEFAULT_KMD_HOST,
    DEFAULT_KMD_PORT,
    DEFAULT_MULTISIG_VERSION,
    DEFAULT_WALLET_DRIVER,
)
from kmdclient.errors import KMDError
from kmdclient.models import MultisigPreimage
from kmdclient.multisig import MultisigSigner
from kmdclient.session import WalletSessionManager

app = typer.Typer(
    name="kmd-client",
    help="kmd key-management daemon client",
    add_completion=False,
)

T = TypeVar("T")

HostOption = typer.Option(DEFAULT_KMD_HOST, "--host", envvar="KMD_HOST", help="Daemon host")
PortOption = typer.Option(DEFAULT_KMD_PORT, "--port", envvar="KMD_PORT", help="Daemon port")
TokenOption = typer.Option("", "--api-token", envvar="KMD_API_TOKEN", help="kmd API token")
LogLevelOption = typer.Option("WARNING", "--log-level", "-l", envvar="KMD_LOG_LEVEL")
WalletIdOption = typer.Option(..., "--wallet-id", "-w", help="Wallet ID")
PasswordOption = typer.Option(
    ..., "--password", "-p", prompt=True, hide_input=True, envvar="KMD_WALLET_PASSWORD"
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _run(
    host: str, port: int, api_token: str, action: Callable[[KMDClient], Awaitable[T]]
) -> T:
    """Run an async action against a fresh client, mapping failures to exit code 1."""

    async def runner() -> T:
        async with KMDClient(api_token=api_token, host=host, port=port) as client:
            return await action(client)

    try:
        return asyncio.run(runner())
    except KMDError as e:
        logger.error(f"{type(e).__name__}: {e}")
        raise typer.Exit(1)


@app.command()
def versions(
    host: str = HostOption,
    port: int = PortOption,
    api_token: str = TokenOption,
    log_level: str = LogLevelOption,
) -> None:
    """Show API versions supported by the daemon."""
    setup_logging(log_level)
    result = _run(host, port, api_token, lambda client: client.versions())
    for version in result:
        typer.echo(version)


@app.command()
def wallets(
    host: str = HostOption,
    port: int = PortOption,
    api_token: str = TokenOption,
    log_level: str = LogLevelOption,
) -> None:
    """List wallets known to the daemon."""
    setup_logging(log_level)
    result = _run(host, port, api_token, lambda client: client.list_wallets())

    if not result:
        typer.echo("No wallets found.")
        return

    for wallet in result:
        typer.echo(f"{wallet.id}  {wallet.name}  ({wallet.driver_name})")


@app.command("create-wallet")
def create_wallet(
    name: str = typer.Argument(..., help="Wallet name"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True
    ),
    driver: str = typer.Option(DEFAULT_WALLET_DRIVER, "--driver", help="Wallet driver"),
    host: str = HostOption,
    port: int = PortOption,
    api_token: str = TokenOption,
    log_level: str = LogLevelOption,
) -> None:
    """Create a wallet with a daemon-generated master derivation key."""
    setup_logging(log_level)
    wallet = _run(
        host,
        port,
        api_token,
        lambda client: client.create_wallet(name, password, driver_name=driver),
    )
    typer.echo(f"Created wallet {wallet.name}: {wallet.id}")


@app.command("list-keys")
def list_keys(
    wallet_id: str = WalletIdOption,
    password: str = PasswordOption,
    host: str = HostOption,
    port: int = PortOption,
    api_token: str = TokenOption,
    log_level: str = LogLevelOption,
) -> None:
    """List addresses whose secret keys the wallet holds."""
    setup_logging(log_level)

    async def action(client: KMDClient) -> list[str]:
        async with WalletSessionManager(client).session(wallet_id, password) as handle:
            return await client.list_keys(handle.token)

    addresses = _run(host, port, api_token, action)
    for address in addresses:
        typer.echo(address)


@app.command("import-multisig")
def import_multisig(
    addresses: list[str] = typer.Argument(..., help="Signer addresses, in order"),
    threshold: int = typer.Option(..., "--threshold", "-t", help="Signatures required"),
    version: int = typer.Option(DEFAULT_MULTISIG_VERSION, "--version", help="Multisig version"),
    wallet_id: str = WalletIdOption,
    password: str = PasswordOption,
    host: str = HostOption,
    port: int = PortOption,
    api_token: str = TokenOption,
    log_level: str = LogLevelOption,
) -> None:
    """Import a multisig preimage and print its address."""
    setup_logging(log_level)

    try:
        public_keys = [decode_address(a) for a in addresses]
    except ValueError as e:
        logger.error(f"Invalid signer address: {e}")
        raise typer.Exit(1)

    async def action(client: KMDClient) -> str:
        async with WalletSessionManager(client).session(wallet_id, password) as handle:
            return await MultisigSigner(client).import_preimage(
                handle, version, threshold, public_keys
            )

    try:
        typer.echo(_run(host, port, api_token, action))
    except ValueError as e:
        logger.error(f"Invalid multisig preimage: {e}")
        raise typer.Exit(1)


@app.command("export-multisig")
def export_multisig(
    address: str = typer.Argument(..., help="Multisig address"),
    wallet_id: str = WalletIdOption,
    password: str = PasswordOption,
    host: str = HostOption,
    port: int = PortOption,
    api_token: str = TokenOption,
    log_level: str = LogLevelOption,
) -> None:
    """Show the preimage (version, threshold, signers) of a stored multisig address."""
    setup_logging(log_level)

    async def action(client: KMDClient) -> MultisigPreimage:
        async with WalletSessionManager(client).session(wallet_id, password) as handle:
            return await MultisigSigner(client).export_preimage(handle, address)

    preimage = _run(host, port, api_token, action)
    typer.echo(f"Version:   {preimage.version}")
    typer.echo(f"Threshold: {preimage.threshold}/{len(preimage.public_keys)}")
    for pk in preimage.public_keys:
        typer.echo(f"  {encode_address(pk)}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
