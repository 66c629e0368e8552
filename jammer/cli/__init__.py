"""
Jammer CLI.

Command-line interface for exporting state jams and maintaining the
SHA256SUMS manifest that certifies them.

Exit codes: 0 success, 1 usage or operational failure, 2 integrity check
completed with mismatched or missing files.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from jammer import __version__
from jammer.config import ENV_VARS, JammerConfig
from jammer.core.log import configure_logging
from jammer.errors import JammerError, UsageError
from jammer.manifest.verifier import EntryStatus, VerificationReport
from jammer.node.guard import TerminationRequested
from jammer.pipeline import JamPipeline, create_pipeline

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTEGRITY = 2

USAGE = """\
Usage:
  jammer jam     # Export a new state jam, then hash
  jammer hash    # Generate/update manifest only
  jammer check   # Verify files against manifest
  jammer status  # Show published jams and service state

Optional env overrides:
""" + "".join(f"  {var}\n" for var in ENV_VARS)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", type=click.Path(), help="YAML config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Export nockchain state jams and certify them with a manifest."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None


@cli.command()
@click.pass_context
def jam(ctx: click.Context) -> None:
    """Export a new state jam, then rebuild the manifest."""
    with _exit_on_error():
        pipeline = _pipeline(ctx)
        result = pipeline.jam()

    record = result.export
    if record.exported:
        click.echo(f"Exported jam for block {result.height}: {record.artifact_path}")
    else:
        click.echo(f"Jam for block {result.height} already exists: {record.artifact_path}")
    click.echo(
        f"Manifest written: {pipeline.config.manifest_path} "
        f"({result.manifest.entry_count} files, fingerprint {result.manifest.fingerprint})"
    )


@cli.command("hash")
@click.pass_context
def hash_(ctx: click.Context) -> None:
    """Generate or update the manifest only."""
    with _exit_on_error():
        pipeline = _pipeline(ctx)
        manifest = pipeline.hash()

    click.echo(
        f"Manifest written: {pipeline.config.manifest_path} "
        f"({manifest.entry_count} files, fingerprint {manifest.fingerprint})"
    )


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify published files against the manifest."""
    with _exit_on_error():
        pipeline = _pipeline(ctx)
        report = pipeline.check()

    _echo_report(report)

    if report.passed:
        click.echo("Integrity check PASSED")
        return

    click.echo("Integrity check FAILED")
    raise SystemExit(EXIT_INTEGRITY)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show published jams, manifest fingerprint and service state."""
    from rich.console import Console
    from rich.table import Table

    with _exit_on_error():
        report = _pipeline(ctx).status()

    console = Console()
    table = Table(title="Jammer Status")
    table.add_column("Item", style="cyan")
    table.add_column("Value")

    table.add_row("Jams directory", str(report.jams_dir))
    table.add_row("Jam count", str(report.artifact_count))
    table.add_row(
        "Newest block",
        str(report.newest_height) if report.newest_height is not None else "-",
    )
    table.add_row("Manifest", str(report.manifest_path))
    table.add_row("Manifest fingerprint", report.manifest_fingerprint or "(missing)")
    table.add_row(
        f"Service {report.service_name}",
        report.service_state.value if report.service_state else "unknown",
    )

    console.print(table)


def _pipeline(ctx: click.Context) -> JamPipeline:
    config = JammerConfig.load(ctx.obj.get("config_path"))
    return create_pipeline(config)


def _echo_report(report: VerificationReport) -> None:
    for warning in report.warnings:
        click.echo(f"WARN: {warning.message}")

    for entry in report.entries:
        if entry.status == EntryStatus.OK:
            click.echo(f"OK: {entry.relative_path}")
        elif entry.status == EntryStatus.MISSING:
            click.echo(f"MISSING: {entry.relative_path}")
        else:
            click.echo(f"FAIL: {entry.relative_path}")
            click.echo(f"  expected: {entry.expected}")
            click.echo(f"  actual:   {entry.actual or '(unreadable)'}")


@contextmanager
def _exit_on_error() -> Iterator[None]:
    """Translate failures into exit codes after the guard has cleaned up."""
    try:
        yield
    except JammerError as e:
        logger.debug("Failure details: %s", e.to_dict())
        click.echo(f"ERROR: {e}", err=True)
        raise SystemExit(e.exit_code)
    except TerminationRequested as e:
        click.echo(f"Interrupted by signal {e.signum}", err=True)
        raise SystemExit(128 + e.signum)
    except KeyboardInterrupt:
        click.echo("Interrupted", err=True)
        raise SystemExit(130)


def main(argv: list[str] | None = None) -> None:
    """
    Console entry point.

    Usage errors exit with status 1 instead of click's default 2, which is
    reserved for failed integrity checks.
    """
    args = sys.argv[1:] if argv is None else list(argv)

    try:
        if not args:
            raise UsageError("No command given")
        try:
            code = cli.main(args=args, prog_name="jammer", standalone_mode=False)
        except click.UsageError as e:
            raise UsageError(e.format_message()) from e
    except UsageError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo(USAGE, err=True)
        raise SystemExit(e.exit_code)
    except click.Abort:
        raise SystemExit(EXIT_FAILURE)

    raise SystemExit(code if isinstance(code, int) else EXIT_OK)


if __name__ == "__main__":
    main()
