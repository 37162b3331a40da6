"""kubesync CLI — keep a Kubernetes cluster and a Git sync repo in step."""

from __future__ import annotations

import os

import click
from rich.console import Console
from rich.table import Table

from kubesync import __version__
from kubesync.config import ENV_PREFIX, SyncOptions, load_options
from kubesync.errors import ConfigurationError, KubesyncError, SyncError
from kubesync.utils.log import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, type=click.Path(dir_okay=False),
              help="YAML file with sync options")
@click.option("--context", default=None, help="Kubeconfig context to use")
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, context: str | None, verbose: bool):
    """kubesync — two-way sync between a Kubernetes cluster and a Git repo.

    Options not given in the config file are read from KUBESYNC_REPO,
    KUBESYNC_BRANCH, KUBESYNC_TOKEN, KUBESYNC_SECRET_KEY and
    KUBESYNC_INTERVAL.
    """
    setup_logging(verbose)
    ctx.obj = {"config_path": config_path, "context": context}


def _options(ctx: click.Context, local: bool = False) -> SyncOptions:
    """Load sync options; a local working copy does not need a remote repo."""
    try:
        return load_options(ctx.obj["config_path"])
    except ConfigurationError as e:
        if not local:
            raise click.ClickException(str(e))
    return SyncOptions(secret_key=os.environ.get(f"{ENV_PREFIX}SECRET_KEY", ""))


def _applier(ctx: click.Context):
    from kubesync.kubernetes.apply import ResourceApplier
    from kubesync.kubernetes.clients import make_dynamic_client

    try:
        return ResourceApplier(make_dynamic_client(ctx.obj["context"]))
    except ConfigurationError as e:
        raise click.ClickException(str(e))


def _print_errors(e: SyncError) -> None:
    console.print(f"[red]{e.summary} ({e.count} failed):[/]")
    for err in e.errors:
        console.print(f"  [red]x[/] {err}")


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--repo-path", "-p", default=None, type=click.Path(exists=True, file_okay=False),
              help="Use an existing local checkout instead of cloning the sync repo")
@click.pass_context
def sync(ctx: click.Context, repo_path: str | None):
    """Apply every spec in the sync repo to the cluster."""
    from kubesync.sync.forward import repo_sync, sync_repo
    from kubesync.utils.git_ops import open_working_copy

    options = _options(ctx, local=repo_path is not None)
    applier = _applier(ctx)
    try:
        if repo_path:
            with open_working_copy(repo_path) as wc:
                result = sync_repo(wc, applier, options)
        else:
            result = repo_sync(options, applier)
    except SyncError as e:
        _print_errors(e)
        raise click.ClickException("Repo sync failed")
    except KubesyncError as e:
        raise click.ClickException(str(e))

    if result is None:
        console.print("[yellow]Sync repo unavailable, nothing synced.[/]")
        return
    console.print(f"[green]{result.summary}[/]")


# ── Push ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--repo-path", "-p", default=None, type=click.Path(exists=True, file_okay=False),
              help="Use an existing local checkout instead of cloning the sync repo")
@click.pass_context
def push(ctx: click.Context, repo_path: str | None):
    """Apply the commits made since the last sync commit.

    Commits are processed oldest first; files deleted by a commit delete
    their resources from the cluster.
    """
    from kubesync.sync.forward import sync_pending
    from kubesync.utils.git_ops import clone_working_copy, open_working_copy

    options = _options(ctx, local=repo_path is not None)
    applier = _applier(ctx)
    try:
        if repo_path:
            wc = open_working_copy(repo_path)
        else:
            wc = clone_working_copy(options.repo.url, options.repo.branch, options.credentials, options.clone_depth)
        with wc:
            result = sync_pending(wc, applier, options)
    except SyncError as e:
        _print_errors(e)
        raise click.ClickException("Push sync failed")
    except KubesyncError as e:
        raise click.ClickException(str(e))

    if not result.changes:
        console.print("[yellow]No spec changes to apply.[/]")
        return
    table = Table(title=f"Spec Changes ({len(result.changes)})")
    table.add_column("Commit", style="dim", width=8)
    table.add_column("Change", style="cyan")
    table.add_column("Path")
    for change in result.changes:
        table.add_row(change.sha[:7], change.change.value, change.path)
    console.print(table)
    console.print(f"[green]{result.summary}[/]")


# ── Watch ────────────────────────────────────────────────────────────


@main.command()
@click.option("--interval", "-i", default=None, type=click.IntRange(min=1),
              help="Seconds between syncs (default: from config)")
@click.pass_context
def watch(ctx: click.Context, interval: int | None):
    """Re-sync the whole repo periodically until interrupted."""
    from kubesync.sync.scheduler import PeriodicSync

    options = _options(ctx)
    interval = interval or options.interval
    if not interval:
        raise click.ClickException("No sync interval configured, use --interval or KUBESYNC_INTERVAL")
    applier = _applier(ctx)
    periodic = PeriodicSync(options, lambda: applier, interval)
    console.print(f"Syncing [cyan]{options.repo.slug}[/] every {interval}s, press Ctrl-C to stop")
    periodic.start()
    try:
        while periodic.running:
            periodic.wait(1)
    except KeyboardInterrupt:
        console.print("\nStopping.")
    finally:
        periodic.stop()


# ── Secrets ──────────────────────────────────────────────────────────


@main.command()
@click.argument("value")
@click.option("--key", "-k", envvar=f"{ENV_PREFIX}SECRET_KEY", required=True, help="Secret passphrase")
def encrypt(value: str, key: str):
    """Encrypt a secret value for use in a sync repo spec."""
    from kubesync.utils.crypto import encrypt as encrypt_value

    click.echo(encrypt_value(value, key))


@main.command()
@click.argument("value")
@click.option("--key", "-k", envvar=f"{ENV_PREFIX}SECRET_KEY", required=True, help="Secret passphrase")
def decrypt(value: str, key: str):
    """Decrypt a secret value taken from a sync repo spec."""
    from kubesync.utils.crypto import decrypt as decrypt_value

    try:
        click.echo(decrypt_value(value, key))
    except ValueError as e:
        raise click.ClickException(f"Failed to decrypt value: {e}")


# ── Naming ───────────────────────────────────────────────────────────


@main.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
def name(spec_file: str):
    """Print the file name kubesync would give SPEC_FILE's resource."""
    from pathlib import Path

    from kubesync.sync.naming import spec_file_basename
    from kubesync.sync.specs import parse_spec_file

    try:
        spec = parse_spec_file(Path(spec_file))
    except KubesyncError as e:
        raise click.ClickException(str(e))
    click.echo(f"{spec_file_basename(spec)}.json")


if __name__ == "__main__":
    main()
