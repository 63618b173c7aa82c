"""Command-line interface for solkit."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Any

import typer
from rich.markup import escape
from rich.table import Table

from solkit.core.config import ConfigManager, ToolkitConfig, build_config
from solkit.core.errors import ToolkitError
from solkit.core.logs import ToolkitLogger
from solkit.solana.rpc import LAMPORTS_PER_SOL
from solkit.toolkit import SolanaToolkit

from .branding import themed_console

app = typer.Typer(help="Resilient Solana RPC toolkit", no_args_is_help=True)

CLI_CONSOLE = themed_console()


@dataclass(slots=True)
class CLIOptions:
    network: str | None = None
    rpc_url: str | None = None
    commitment: str | None = None
    verbose: bool = False
    config_dir: Path | None = None


def styled_echo(message: str = "") -> None:
    CLI_CONSOLE.print(message)


def _configure_logging(verbose: bool) -> None:
    root_logger = logging.getLogger()
    if verbose:
        if not root_logger.handlers:
            logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        root_logger.setLevel(logging.DEBUG)
    else:
        if root_logger.handlers:
            root_logger.setLevel(logging.WARNING)
        else:
            logging.basicConfig(level=logging.WARNING, format="%(message)s")


def _load_config(options: CLIOptions) -> ToolkitConfig:
    config = ConfigManager(config_dir=options.config_dir).load()
    overrides: dict[str, Any] = {}
    if options.network:
        overrides.update(network=options.network, rpc_url=None)
    if options.rpc_url:
        overrides["rpc_url"] = options.rpc_url
    if options.commitment:
        overrides["commitment"] = options.commitment
    if options.verbose:
        overrides["enable_logging"] = True
    return build_config({**config.model_dump(), **overrides})


def build_toolkit(options: CLIOptions) -> SolanaToolkit:
    config = _load_config(options)
    return SolanaToolkit(config=config, logger=ToolkitLogger(enabled=config.enable_logging))


def _render_error(exc: ToolkitError) -> None:
    styled_echo(f"[solkit.error]Error[/] [{exc.code.value}] {escape(exc.message)}")
    for key, value in exc.context.items():
        styled_echo(f"  [solkit.key]{key}[/]: {escape(str(value))}")


def _run(ctx: typer.Context, action: Any) -> None:
    options: CLIOptions = ctx.obj or CLIOptions()
    try:
        with build_toolkit(options) as toolkit:
            action(toolkit)
    except ToolkitError as exc:
        _render_error(exc)
        raise typer.Exit(code=1) from exc


def _print_mapping(title: str, rows: dict[str, Any]) -> None:
    table = Table(title=title, title_style="solkit.header", show_header=False)
    table.add_column("Field", style="solkit.key")
    table.add_column("Value", style="solkit.value")
    for key, value in rows.items():
        table.add_row(key, "-" if value is None else str(value))
    CLI_CONSOLE.print(table)


@app.callback()
def main_callback(
    ctx: typer.Context,
    network: str | None = typer.Option(None, "--network", "-n", help="Network name (mainnet, testnet, devnet, localnet)"),  # noqa: B008
    rpc_url: str | None = typer.Option(None, "--rpc-url", help="Explicit RPC endpoint URL"),  # noqa: B008
    commitment: str | None = typer.Option(None, "--commitment", help="processed | confirmed | finalized"),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),  # noqa: B008
    config_dir: Path | None = typer.Option(None, "--config-dir", help="Directory holding config.toml"),  # noqa: B008
) -> None:
    _configure_logging(verbose)
    ctx.obj = CLIOptions(
        network=network,
        rpc_url=rpc_url,
        commitment=commitment,
        verbose=verbose,
        config_dir=config_dir,
    )


@app.command()
def version() -> None:
    """Show CLI version."""
    try:
        pkg_version = metadata.version("solkit")
    except metadata.PackageNotFoundError:
        pkg_version = "0.0.0"
    styled_echo(f"solkit version {pkg_version}")


@app.command()
def networks(ctx: typer.Context) -> None:
    """List the configured networks."""
    options: CLIOptions = ctx.obj or CLIOptions()
    try:
        config = _load_config(options)
    except ToolkitError as exc:
        _render_error(exc)
        raise typer.Exit(code=1) from exc
    table = Table(title="Networks", title_style="solkit.header")
    table.add_column("Name", style="solkit.key")
    table.add_column("Endpoint", style="solkit.value")
    for name, url in sorted(config.networks.items()):
        marker = " [solkit.success](active)[/]" if name == config.network and not config.rpc_url else ""
        table.add_row(f"{name}{marker}", url)
    CLI_CONSOLE.print(table)


@app.command()
def health(ctx: typer.Context) -> None:
    """Check the endpoint once and report its health."""

    def action(toolkit: SolanaToolkit) -> None:
        toolkit.connection.monitor.tick()
        status = toolkit.health_status()
        _print_mapping("Endpoint health", status.as_dict())
        if not status.is_healthy:
            raise typer.Exit(code=1)

    _run(ctx, action)


@app.command()
def balance(ctx: typer.Context, address: str = typer.Argument(..., help="Account public key")) -> None:  # noqa: B008
    """Show the SOL balance of ADDRESS."""

    def action(toolkit: SolanaToolkit) -> None:
        result = toolkit.accounts.get_balance(address)
        styled_echo(f"[solkit.success]Balance[/]: {result.formatted} ({result.lamports} lamports)")

    _run(ctx, action)


@app.command()
def account(ctx: typer.Context, address: str = typer.Argument(..., help="Account public key")) -> None:  # noqa: B008
    """Show account details for ADDRESS."""

    def action(toolkit: SolanaToolkit) -> None:
        info = toolkit.accounts.get_account_info(address)
        _print_mapping(
            f"Account {info.public_key}",
            {
                "lamports": info.lamports,
                "owner": info.owner,
                "executable": info.executable,
                "rent_epoch": info.rent_epoch,
            },
        )

    _run(ctx, action)


@app.command()
def airdrop(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Recipient public key"),  # noqa: B008
    sol: float = typer.Option(1.0, "--sol", help="Amount of SOL to request (max 2)"),  # noqa: B008
) -> None:
    """Request a devnet/testnet airdrop to ADDRESS."""

    def action(toolkit: SolanaToolkit) -> None:
        result = toolkit.accounts.request_airdrop(address, int(round(sol * LAMPORTS_PER_SOL)))
        styled_echo(f"[solkit.success]Airdropped {result.sol:.9f} SOL[/] signature={result.signature}")

    _run(ctx, action)


@app.command()
def tx(ctx: typer.Context, signature: str = typer.Argument(..., help="Transaction signature")) -> None:  # noqa: B008
    """Show a confirmed transaction as JSON."""

    def action(toolkit: SolanaToolkit) -> None:
        details = toolkit.transfers.get_transaction_details(signature)
        CLI_CONSOLE.print_json(json.dumps(details, default=str))

    _run(ctx, action)


def main() -> None:
    """Console script entrypoint."""
    app()


__all__ = ["CLIOptions", "app", "build_toolkit", "main"]
