"""mint-ledger CLI - multi-mint Cashu registry and proof ledger."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Awaitable, Callable, Optional, TypeVar

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from . import __version__
from .mint import MINTS_ENV_VAR, get_mints_from_env
from .notify import ConsoleNotifier
from .registry import MintRegistry
from .store import JsonFileStore, get_store_path_from_env
from .types import MintError, UnrecognizedBackupError, WalletError

T = TypeVar("T")

app = typer.Typer(
    name="mint-ledger",
    help="mint-ledger - multi-mint Cashu registry and proof ledger",
    rich_markup_mode="markdown",
)
console = Console()


def configure_logging() -> None:
    """Log to stderr; MINT_DEBUG=true turns on debug output."""
    debug = os.environ.get("MINT_DEBUG", "false").lower() == "true"
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def open_registry() -> MintRegistry:
    registry = MintRegistry(
        JsonFileStore(get_store_path_from_env()),
        notifier=ConsoleNotifier(console),
    )
    registry.acknowledge_welcome()
    return registry


def handle_wallet_error(e: Exception) -> None:
    """Handle common wallet errors with user-friendly messages."""
    if isinstance(e, WalletError):
        console.print(f"[red]❌ {e}[/red]")
    elif isinstance(e, MintError):
        console.print(f"[red]🏦 {e}[/red]")
    else:
        console.print(f"[red]❌ Error: {e}[/red]")


def run(action: Callable[[MintRegistry], Awaitable[T]]) -> T:
    """Run ``action`` against the persisted registry, exiting 1 on failure."""

    async def _run() -> T:
        async with open_registry() as registry:
            return await action(registry)

    try:
        return asyncio.run(_run())
    except (WalletError, MintError) as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


def print_mints(registry: MintRegistry) -> None:
    if not registry.mints:
        console.print("[yellow]No mints added yet[/yellow]")
        return
    table = Table(title="Mints")
    table.add_column("", style="green")
    table.add_column("URL", style="cyan")
    table.add_column("Nickname")
    table.add_column("Balances", style="green")
    for mint in registry.mints:
        view = registry.mint_view(mint.url)
        balances = ", ".join(f"{b} {u}" for u, b in view.all_balances().items())
        marker = "●" if mint.url == registry.active_mint_url else ""
        table.add_row(marker, mint.url, mint.nickname or "", balances or "-")
    console.print(table)


def version_callback(value: bool) -> None:
    """Handle version flag."""
    if value:
        console.print(f"mint-ledger v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, help="Show version"),
    ] = None,
) -> None:
    """mint-ledger - multi-mint Cashu registry and proof ledger.

    📦 STORAGE:
    State lives in a JSON file, `./.mint_ledger.json` by default.
    Override with MINT_LEDGER_STORE="/path/to/store.json" (env or .env file).

    🏦 MINTS:
    `mint-ledger init` adds the mints listed in CASHU_MINTS="https://mint1,https://mint2".
    """
    load_dotenv()
    configure_logging()


@app.command()
def init() -> None:
    """Add every mint configured in CASHU_MINTS."""
    urls = get_mints_from_env()
    if not urls:
        console.print(f"[yellow]{MINTS_ENV_VAR} is not set[/yellow]")
        raise typer.Exit(1)

    async def _init(registry: MintRegistry) -> None:
        for url in urls:
            try:
                await registry.add_mint(url)
                console.print(f"[green]✅ Added: {url}[/green]")
            except (WalletError, MintError) as e:
                console.print(f"[red]⚠️  Skipped {url}: {e}[/red]")
        print_mints(registry)

    run(_init)


@app.command()
def mints() -> None:
    """List known mints and their balances."""

    async def _mints(registry: MintRegistry) -> None:
        print_mints(registry)

    run(_mints)


@app.command()
def add(
    url: Annotated[str, typer.Argument(help="Mint URL")],
    nickname: Annotated[
        Optional[str], typer.Option("--nickname", "-n", help="Display name")
    ] = None,
) -> None:
    """Add a mint and make it active."""

    async def _add(registry: MintRegistry) -> None:
        await registry.add_mint(url, nickname, verbose=True)

    run(_add)


@app.command()
def remove(url: Annotated[str, typer.Argument(help="Mint URL")]) -> None:
    """Remove a mint."""

    async def _remove(registry: MintRegistry) -> None:
        await registry.remove_mint(url)

    run(_remove)


@app.command()
def activate(
    url: Annotated[str, typer.Argument(help="Mint URL")],
    unit: Annotated[
        Optional[str], typer.Option("--unit", "-u", help="Unit to activate")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Re-sync even if already active")
    ] = False,
) -> None:
    """Make a known mint the active one."""

    async def _activate(registry: MintRegistry) -> None:
        await registry.activate_mint_url(url, verbose=True, force=force, unit=unit)
        console.print(f"[cyan]Active unit: {registry.active_unit_label()}[/cyan]")

    run(_activate)


@app.command()
def unit(unit: Annotated[str, typer.Argument(help="Unit (sat, usd, eur, ...)")]) -> None:
    """Activate a unit of the active mint."""

    async def _unit(registry: MintRegistry) -> None:
        registry.activate_unit(unit)
        console.print(f"[green]✅ Active unit: {registry.active_unit_label()}[/green]")

    run(_unit)


@app.command("toggle-unit")
def toggle_unit() -> None:
    """Switch to the next unit of the active mint."""

    async def _toggle(registry: MintRegistry) -> None:
        registry.toggle_unit()
        console.print(f"[green]✅ Active unit: {registry.active_unit_label()}[/green]")

    run(_toggle)


@app.command()
def balance() -> None:
    """Show the active mint's balances."""

    async def _balance(registry: MintRegistry) -> None:
        view = registry.active_mint()
        table = Table(title=view.mint.nickname or view.url)
        table.add_column("Unit", style="cyan")
        table.add_column("Balance", style="green")
        for unit_name, amount in view.all_balances().items():
            table.add_row(unit_name.upper(), str(amount))
        console.print(table)
        console.print(
            f"Total {registry.active_unit_label()} across mints: "
            f"{registry.active_balance()}"
        )
        orphaned = registry.orphaned_proofs()
        if orphaned:
            console.print(
                f"[yellow]⚠️  {len(orphaned)} proof(s) reference unknown keysets[/yellow]"
            )

    run(_balance)


@app.command()
def keys(keyset_id: Annotated[str, typer.Argument(help="Keyset ID")]) -> None:
    """Show cached public keys of a keyset on the active mint."""

    async def _keys(registry: MintRegistry) -> None:
        keyset = registry.get_keys_for_keyset(keyset_id)
        table = Table(title=f"Keyset {keyset['id']} ({keyset['unit']})")
        table.add_column("Amount", style="cyan", justify="right")
        table.add_column("Public key")
        for amount, pubkey in sorted(keyset["keys"].items(), key=lambda kv: int(kv[0])):
            table.add_row(amount, pubkey)
        console.print(table)

    run(_keys)


@app.command()
def backup(
    output: Annotated[
        Optional[Path], typer.Option("--output", "-o", help="Write to file")
    ] = None,
) -> None:
    """Export a backup snapshot of all stored slots."""

    async def _backup(registry: MintRegistry) -> dict[str, str]:
        return registry.backup()

    snapshot = json.dumps(run(_backup), indent=2)
    if output is None:
        console.print_json(snapshot)
    else:
        output.write_text(snapshot)
        console.print(f"[green]✅ Backup written to {output}[/green]")


@app.command()
def restore(path: Annotated[Path, typer.Argument(help="Backup file")]) -> None:
    """Restore a backup snapshot, overwriting stored state."""
    try:
        snapshot = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        handle_wallet_error(UnrecognizedBackupError(f"Unrecognized Backup Format! {e}"))
        raise typer.Exit(1)

    async def _restore(registry: MintRegistry) -> None:
        await registry.restore_from_backup(snapshot)
        print_mints(registry)

    run(_restore)


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
