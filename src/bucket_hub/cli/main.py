"""
Bucket Hub CLI - Main entry point

This module provides the command-line interface for managing buckets and
files on a storage provider network.
"""

import asyncio
import importlib
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..client.client import BucketHubClient
from ..config import Settings
from ..core.errors import AuthExpiredError, BucketHubError
from ..core.models import FileStatus

console = Console()

STATUS_STYLES = {
    FileStatus.PENDING: "yellow",
    FileStatus.READY: "green",
    FileStatus.REJECTED: "red",
    FileStatus.REVOKED: "red",
    FileStatus.EXPIRED: "red",
    FileStatus.DELETION_IN_PROGRESS: "magenta",
}


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=False)],
        force=True,
    )


def load_wallet(settings: Settings):
    """Build the wallet (ChainClient + Signer) named by settings.chain_plugin"""
    if not settings.chain_plugin:
        return None
    module_name, _, attr = settings.chain_plugin.partition(':')
    if not module_name or not attr:
        raise click.BadParameter(
            f"expected 'module:factory', got {settings.chain_plugin!r}",
            param_hint="--chain-plugin"
        )
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise click.BadParameter(f"cannot load {settings.chain_plugin!r}: {e}", param_hint="--chain-plugin") from e
    return factory(settings)


def run_operation(ctx, operation, needs_wallet: bool = False):
    """Run operation(client, wallet) on a fresh client and report failures"""
    settings: Settings = ctx.obj['settings']
    identity: Optional[str] = ctx.obj['identity']

    wallet = None
    if needs_wallet or identity is None:
        wallet = load_wallet(settings)
    if needs_wallet and wallet is None:
        raise click.UsageError("This command needs a wallet: set --chain-plugin or BUCKET_HUB_CHAIN_PLUGIN")
    if identity is None and wallet is not None:
        identity = wallet.identity

    async def runner():
        async with BucketHubClient.from_settings(wallet, settings, identity=identity) as client:
            return await operation(client, wallet)

    try:
        return asyncio.run(runner())
    except AuthExpiredError as e:
        console.print(f"[red]✗ {e}[/red]")
        console.print("Run [bold]bucket-hub login[/bold] to sign in again.")
        sys.exit(1)
    except BucketHubError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)
    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]❌ Unexpected error: {e}[/red]")
        sys.exit(1)


def print_progress(step, message: str) -> None:
    style = "red" if step.value == "error" else "dim"
    console.print(f"[{style}]→ {message}[/{style}]")


def format_status(status: Optional[FileStatus]) -> str:
    if status is None:
        return ""
    return f"[{STATUS_STYLES[status]}]{status.value}[/{STATUS_STYLES[status]}]"


@click.group()
@click.option('--backend-url', '-b', default=None, help='Storage provider backend URL')
@click.option('--identity', '-i', default=None, help='Wallet address to act as')
@click.option('--chain-plugin', '-p', default=None, help="Wallet factory as 'module:factory'")
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx, backend_url: Optional[str], identity: Optional[str], chain_plugin: Optional[str], verbose: bool):
    """Bucket Hub - buckets and files on a chain-backed storage network"""
    setup_logging(verbose)

    overrides = {}
    if backend_url:
        overrides['backend_url'] = backend_url
    if chain_plugin:
        overrides['chain_plugin'] = chain_plugin

    ctx.ensure_object(dict)
    ctx.obj['settings'] = Settings(**overrides)
    ctx.obj['identity'] = identity
    ctx.obj['verbose'] = verbose

    if verbose:
        console.print(f"[dim]Using backend: {ctx.obj['settings'].backend_url}[/dim]")


@cli.command()
@click.pass_context
def health(ctx):
    """Show backend health"""
    async def op(client, wallet):
        return await client.get_health()

    report = run_operation(ctx, op)
    for key, value in report.items():
        console.print(f"{key}: {value}")


@cli.command()
@click.pass_context
def info(ctx):
    """Show storage provider information"""
    async def op(client, wallet):
        return await client.get_msp_info()

    msp = run_operation(ctx, op)
    console.print(Panel.fit(f"MSP {msp.msp_id}", style="bold blue"))
    for addr in msp.multiaddresses:
        console.print(f"  {addr}")


@cli.command()
@click.pass_context
def login(ctx):
    """Sign in with the configured wallet"""
    async def op(client, wallet):
        return await client.login(wallet)

    session = run_operation(ctx, op, needs_wallet=True)
    console.print(f"✅ Signed in as [bold]{session.identity}[/bold]")


@cli.command()
@click.pass_context
def logout(ctx):
    """Forget the stored session"""
    async def op(client, wallet):
        if client.identity is None:
            raise click.UsageError("No identity given: use --identity or --chain-plugin")
        client.logout()

    run_operation(ctx, op)
    console.print("👋 Signed out")


@cli.command()
@click.pass_context
def whoami(ctx):
    """Show the current identity and session"""
    async def op(client, wallet):
        return client.get_user_info()

    user = run_operation(ctx, op)
    console.print(f"Identity: {user['identity'] or '-'}")
    console.print(f"Authenticated: {'yes' if user['authenticated'] else 'no'}")


@cli.command()
@click.pass_context
def buckets(ctx):
    """List your buckets"""
    async def op(client, wallet):
        return await client.list_buckets()

    items = run_operation(ctx, op)
    if not items:
        console.print("No buckets found.")
        return

    table = Table(title="Buckets")
    table.add_column("Name", style="bold")
    table.add_column("Bucket ID")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Visibility")
    for bucket in items:
        table.add_row(
            bucket.name,
            bucket.bucket_id,
            str(bucket.file_count),
            str(bucket.size_bytes),
            "private" if bucket.is_private else "public"
        )
    console.print(table)


@cli.command('create-bucket')
@click.argument('name')
@click.option('--private', 'is_private', is_flag=True, help='Create a private bucket')
@click.pass_context
def create_bucket(ctx, name: str, is_private: bool):
    """Create a bucket and wait until it is listed"""
    console.print(Panel.fit(f"🪣 Creating bucket: {name}", style="bold green"))

    async def op(client, wallet):
        return await client.create_bucket_and_wait(name, is_private, on_progress=print_progress)

    creation = run_operation(ctx, op, needs_wallet=True)
    console.print(f"✅ Bucket ready: {creation.bucket_id}")


@cli.command('delete-bucket')
@click.argument('bucket_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete_bucket(ctx, bucket_id: str, yes: bool):
    """Delete an empty bucket"""
    if not yes and not click.confirm(f"Delete bucket {bucket_id}?"):
        return

    async def op(client, wallet):
        return await client.delete_bucket(bucket_id)

    receipt = run_operation(ctx, op, needs_wallet=True)
    console.print(f"✅ Bucket deleted ({receipt.transaction_hash})")


@cli.command()
@click.argument('bucket_id')
@click.pass_context
def files(ctx, bucket_id: str):
    """List files in a bucket"""
    async def op(client, wallet):
        return await client.list_files(bucket_id)

    entries = run_operation(ctx, op)
    if not entries:
        console.print("No files in this bucket.")
        return

    table = Table(title=f"Files in {bucket_id[:18]}...")
    table.add_column("Name", style="bold")
    table.add_column("File key")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    for entry in entries:
        if entry.kind == 'folder':
            table.add_row(f"📁 {entry.name}", "", "", "")
        else:
            table.add_row(entry.name, entry.file_key, str(entry.size_bytes or 0), format_status(entry.status))
    console.print(table)


@cli.command('file-info')
@click.argument('bucket_id')
@click.argument('file_key')
@click.pass_context
def file_info(ctx, bucket_id: str, file_key: str):
    """Show a file's indexed metadata"""
    async def op(client, wallet):
        return await client.get_file_info(bucket_id, file_key)

    info = run_operation(ctx, op)
    console.print(Panel.fit(info.location, style="bold cyan"))
    console.print(f"File key:    {info.file_key}")
    console.print(f"Fingerprint: {info.fingerprint}")
    console.print(f"Size:        {info.size_bytes}")
    console.print(f"Status:      {format_status(info.status)}")


@cli.command()
@click.argument('bucket_id')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--name', '-n', default=None, help='Name to store the file under')
@click.pass_context
def upload(ctx, bucket_id: str, path: Path, name: Optional[str]):
    """Upload a file and wait until it is ready"""
    console.print(Panel.fit(f"📤 Uploading: {name or path.name}", style="bold magenta"))

    async def op(client, wallet):
        return await client.upload_path(bucket_id, path, name=name, on_progress=print_progress)

    result = run_operation(ctx, op, needs_wallet=True)
    console.print(f"✅ File key: {result.file_key}")


@cli.command('delete-file')
@click.argument('bucket_id')
@click.argument('file_key')
@click.option('--wait/--no-wait', default=True, help='Wait until the file is gone')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete_file(ctx, bucket_id: str, file_key: str, wait: bool, yes: bool):
    """Request deletion of a file"""
    if not yes and not click.confirm("Are you sure you want to delete this file?"):
        return

    async def op(client, wallet):
        receipt = await client.delete_file(bucket_id, file_key)
        console.print(f"[dim]→ Deletion requested ({receipt.transaction_hash})[/dim]")
        task = client.deletions.task(file_key)
        if wait and task is not None:
            console.print("[dim]→ Deletion in progress...[/dim]")
            await task
        return receipt

    run_operation(ctx, op, needs_wallet=True)
    console.print("✅ File removed" if wait else "✅ Deletion requested")


@cli.command()
@click.argument('file_key')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Destination path')
@click.pass_context
def download(ctx, file_key: str, output: Optional[Path]):
    """Download a ready file"""
    destination = output or Path(file_key)

    async def op(client, wallet):
        return await client.download_file_to(file_key, destination)

    written = run_operation(ctx, op)
    console.print(f"✅ Saved {written} bytes to {destination}")


@cli.command()
def version():
    """Show version information"""
    console.print(Panel.fit(f"Bucket Hub v{__version__}", style="bold blue"))
    console.print("Bucket and file lifecycle client")
    console.print("Licensed under AGPLv3")


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
        sys.exit(0)


if __name__ == '__main__':
    main()
