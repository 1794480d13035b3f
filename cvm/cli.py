"""CLI entry point for cvm."""

from __future__ import annotations

import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from types import FrameType

import click

from .errors import CvmError, PublishAbortedError, PublishCancelledError
from .logging import configure_logging, get_logger
from .pipeline import run_add, run_graph, run_pre, run_publish, run_status, run_version
from .publisher import CancelToken
from .shell import fatal

logger = get_logger(__name__)


@dataclass
class GlobalOptions:
    root: Path
    format_name: str | None


class CvmGroup(click.Group):
    """Group that renders cvm errors as ``ERROR:`` lines and exits 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except CvmError as exc:
            logger.debug("command_failed", error=exc.message, **exc.context())
            fatal(exc.message, exc.hint)


@click.group(cls=CvmGroup)
@click.version_option(package_name="cvm")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root.",
)
@click.option(
    "--format",
    "format_name",
    type=click.Choice(["uv", "cargo"]),
    default=None,
    help="Manifest format. Detected from the root manifest if omitted.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors.")
@click.option("--json-log", is_flag=True, help="Log as JSON lines.")
@click.pass_context
def cli(
    ctx: click.Context,
    root: Path,
    format_name: str | None,
    verbose: bool,
    quiet: bool,
    json_log: bool,
) -> None:
    """Version and publish the packages of a multi-package workspace."""
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive.")
    configure_logging(verbose=verbose, quiet=quiet, json_log=json_log)
    ctx.obj = GlobalOptions(root=root, format_name=format_name)


@cli.command()
@click.option("--major", multiple=True, metavar="PKG", help="Package that needs a major bump (repeatable).")
@click.option("--minor", multiple=True, metavar="PKG", help="Package that needs a minor bump (repeatable).")
@click.option("--patch", multiple=True, metavar="PKG", help="Package that needs a patch bump (repeatable).")
@click.option("--pre", is_flag=True, help="Release as a prerelease on the active channel.")
@click.option("-m", "--message", required=True, help="Change summary.")
@click.pass_obj
def add(
    opts: GlobalOptions,
    major: tuple[str, ...],
    minor: tuple[str, ...],
    patch: tuple[str, ...],
    pre: bool,
    message: str,
) -> None:
    """Stage a change descriptor."""
    run_add(
        opts.root,
        summary=message,
        major=major,
        minor=minor,
        patch=patch,
        pre=pre,
        format_name=opts.format_name,
    )


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON.")
@click.pass_obj
def status(opts: GlobalOptions, as_json: bool) -> None:
    """Show the pending version plan."""
    run_status(opts.root, as_json=as_json, format_name=opts.format_name)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Show what would change without writing.")
@click.option("--pr", is_flag=True, help="Commit to a branch and open a pull request.")
@click.pass_obj
def version(opts: GlobalOptions, dry_run: bool, pr: bool) -> None:
    """Apply staged changes to manifests."""
    run_version(opts.root, dry_run=dry_run, pr=pr, format_name=opts.format_name)


@cli.group()
def pre() -> None:
    """Manage prerelease mode."""


@pre.command("start")
@click.argument("channel")
@click.pass_obj
def pre_start(opts: GlobalOptions, channel: str) -> None:
    """Enter prerelease mode on CHANNEL (e.g. canary, beta, rc)."""
    run_pre(opts.root, "start", channel, format_name=opts.format_name)


@pre.command("exit")
@click.pass_obj
def pre_exit(opts: GlobalOptions) -> None:
    """Leave prerelease mode."""
    run_pre(opts.root, "exit", format_name=opts.format_name)


@pre.command("status")
@click.pass_obj
def pre_status(opts: GlobalOptions) -> None:
    """Show the prerelease state."""
    run_pre(opts.root, "status", format_name=opts.format_name)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Check the registry but publish nothing.")
@click.option("--no-tags", is_flag=True, help="Do not create tags.")
@click.option("--no-releases", is_flag=True, help="Do not create releases.")
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON.")
@click.pass_obj
def publish(opts: GlobalOptions, dry_run: bool, no_tags: bool, no_releases: bool, as_json: bool) -> None:
    """Publish unpublished packages in dependency order.

    The first Ctrl-C stops the run before the next package; a second
    one interrupts immediately.
    """
    token = CancelToken()

    def on_interrupt(signum: int, frame: FrameType | None) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        click.echo("\nStopping after the current package (Ctrl-C again to abort)", err=True)
        token.cancel()

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        report = run_publish(
            opts.root,
            dry_run=dry_run,
            tags=False if no_tags else None,
            releases=False if no_releases else None,
            as_json=as_json,
            cancel=token,
            format_name=opts.format_name,
        )
    except (PublishAbortedError, PublishCancelledError) as exc:
        for record in exc.report.records:
            click.echo(f"  {record.name} {record.version}: {record.outcome.value}")
        if exc.report.blocked:
            click.echo(f"  not attempted: {', '.join(exc.report.blocked)}")
        raise
    finally:
        signal.signal(signal.SIGINT, previous)
    if not report.ok:
        sys.exit(1)


@cli.command()
@click.pass_obj
def graph(opts: GlobalOptions) -> None:
    """Print the dependency graph by level."""
    run_graph(opts.root, format_name=opts.format_name)
