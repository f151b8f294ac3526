"""Command-line interface for viralqc.

This module provides the main entry point for the viralqc CLI tool.
It uses Click to define commands. The CLI only reads pre-parsed JSON
bundles; sequence, alignment and model-info text formats are handled by
the upstream stages that write those bundles.

Commands:
    run: Judge every sequence of a bundle and write alert tables
    alerts: List alert codes and their default fatality
    check-config: Validate a configuration file

Example:
    $ viralqc --help
    $ viralqc run run.json -o alerts.tsv --verdicts verdicts.tsv -j 4
    $ viralqc run run.json -o alerts.tsv --fail fstlocfi --pass lowcovrg
    $ viralqc check-config viralqc.toml
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import attrs
import click
from rich.console import Console
from rich.table import Table

from viralqc import __version__
from viralqc.config import Config, ConfigError
from viralqc.engine import AnnotationEngine
from viralqc.io.bundle import BundleError, load_bundle, load_library, load_units
from viralqc.parallel.executor import create_progress_bar, get_optimal_workers
from viralqc.qc.aggregate import export_alerts_tsv, export_verdicts_tsv, summarize_verdicts
from viralqc.qc.alerts import ALERT_REGISTRY, codes_in_order
from viralqc.qc.policy import AlertPolicyError
from viralqc.utils.logging import ProgressLogger, Timer, setup_logging

logger = logging.getLogger(__name__)

# Initialize rich console for pretty output
console = Console()


def _split_codes(values: tuple[str, ...]) -> list[str]:
    """Accept repeated and comma-separated code names."""
    codes = []
    for value in values:
        codes.extend(part.strip() for part in value.split(",") if part.strip())
    return codes


@click.group()
@click.version_option(version=__version__, prog_name="viralqc")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output.")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write a debug log to this file.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool, log_file: Optional[Path]) -> None:
    """viralqc: alert detection and pass/fail verdicts for viral genome annotation.

    viralqc reads per-sequence alignments, hit lists and optional protein
    predictions against reference models, raises typed alerts for
    annotation problems, and decides which sequences pass.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    verbosity = 0 if quiet else (2 if verbose else 1)
    setup_logging(verbosity=verbosity, log_file=log_file)


# =============================================================================
# run command
# =============================================================================


@main.command()
@click.argument("bundle", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-m",
    "--models",
    type=click.Path(exists=True, path_type=Path),
    help="Separate bundle holding the models (default: models in BUNDLE).",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    required=True,
    help="Output alert TSV, one row per reported alert.",
)
@click.option(
    "--verdicts",
    type=click.Path(path_type=Path),
    help="Output verdict TSV, one row per sequence.",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file (.toml or .json).",
)
@click.option(
    "--fail",
    "fail_codes",
    multiple=True,
    help="Alert codes to make fatal. Comma-separated or repeated.",
)
@click.option(
    "--pass",
    "pass_codes",
    multiple=True,
    help="Alert codes to make non-fatal. Comma-separated or repeated.",
)
@click.option(
    "--ignore-misc-not-failure",
    is_flag=True,
    help="Never demote expendable features; their alerts fail like any other.",
)
@click.option(
    "-j",
    "--workers",
    type=int,
    default=None,
    help="Number of parallel workers (overrides configuration, 0 = one per CPU).",
)
@click.option(
    "--backend",
    type=click.Choice(["serial", "threads", "processes"]),
    default=None,
    help="Execution backend (overrides configuration).",
)
@click.option(
    "--include-suppressed",
    is_flag=True,
    help="Also write alerts suppressed by more specific alerts.",
)
@click.pass_context
def run(
    ctx: click.Context,
    bundle: Path,
    models: Optional[Path],
    output: Path,
    verdicts: Optional[Path],
    config_path: Optional[Path],
    fail_codes: tuple[str, ...],
    pass_codes: tuple[str, ...],
    ignore_misc_not_failure: bool,
    workers: Optional[int],
    backend: Optional[str],
    include_suppressed: bool,
) -> None:
    """Judge every sequence in BUNDLE.

    BUNDLE is a JSON file of sequence units (and, unless --models is
    given, the models they refer to).

    Examples:
        viralqc run run.json -o alerts.tsv

        viralqc run units.json -m models.json -o alerts.tsv --verdicts verdicts.tsv -j 8
    """
    quiet = ctx.obj.get("quiet", False)
    verbose = ctx.obj.get("verbose", False)

    try:
        config = Config.load(config_path)
        if fail_codes or pass_codes or ignore_misc_not_failure:
            policy = config.policy
            policy = attrs.evolve(
                policy,
                fail_codes=[*policy.fail_codes, *_split_codes(fail_codes)],
                pass_codes=[*policy.pass_codes, *_split_codes(pass_codes)],
                ignore_misc_not_failure=policy.ignore_misc_not_failure or ignore_misc_not_failure,
            )
            config = attrs.evolve(config, policy=policy)
        execution = config.execution
        if workers == 0:
            workers = get_optimal_workers()
        if workers is not None:
            execution = attrs.evolve(execution, n_workers=workers)
        if backend is not None:
            execution = attrs.evolve(execution, backend=backend)
        config = attrs.evolve(config, execution=execution)
        config.validate()
    except (ConfigError, AlertPolicyError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    try:
        if models is None:
            library, units = load_bundle(bundle)
        else:
            library = load_library(models)
            units = load_units(bundle)
            missing = sorted({u.model_id for u in units if u.model_id not in library})
            if missing:
                raise BundleError(f"Units reference unknown models: {', '.join(missing)}")
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if not quiet:
        console.print(f"[blue]Bundle:[/blue] {bundle}")
        console.print(f"[blue]Models:[/blue] {len(library)}")
        console.print(f"[blue]Sequences:[/blue] {len(units)}")
        console.print(
            f"[blue]Workers:[/blue] {config.execution.n_workers} ({config.execution.backend})"
        )

    engine = AnnotationEngine.from_config(library, config)
    progress = ProgressLogger(logger, total=len(units), description="Sequences")
    progress_bar = None if quiet else create_progress_bar()
    bar_task = None
    if progress_bar is not None:
        bar_task = progress_bar.add_task("Sequences", total=len(units))

    def on_progress(completed: int, total: int, task_id: str) -> None:
        progress.update()
        if progress_bar is not None:
            progress_bar.update(bar_task, completed=completed)

    try:
        if progress_bar is not None:
            progress_bar.start()
        with Timer("Alert detection"):
            results, task_results, stats = engine.run_units(
                units,
                n_workers=config.execution.n_workers,
                backend=config.execution.backend,
                progress_callback=on_progress,
            )
        progress.finish()
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback

            traceback.print_exc()
        raise SystemExit(1)
    finally:
        if progress_bar is not None:
            progress_bar.stop()

    # restore input order for numbered output
    order = {unit.sequence_id: i for i, unit in enumerate(units)}
    results.sort(key=lambda v: order[v.sequence_id])

    n_rows = export_alerts_tsv(results, library, output, include_suppressed=include_suppressed)
    if verdicts is not None:
        export_verdicts_tsv(results, verdicts)

    failed_units = [r for r in task_results if not r.success]
    if not quiet:
        summary = summarize_verdicts(results)
        console.print("")
        console.print("[bold]Verdict Summary:[/bold]")
        console.print(f"  Sequences:   {summary['total']:,}")
        console.print(f"  Passed:      {summary['passed']:,}")
        console.print(f"  Failed:      {summary['failed']:,}")
        console.print(f"  Alerts:      {n_rows:,}")
        if failed_units:
            console.print(f"  [red]Errors:[/red]      {len(failed_units):,}")
        if verbose:
            console.print(
                f"  Mean time:   {stats.mean_task_duration * 1000:.1f} ms/sequence "
                f"(max {stats.max_task_duration * 1000:.1f} ms)"
            )
        if summary["alert_counts"]:
            table = Table(title="Alert counts")
            table.add_column("Code", style="cyan")
            table.add_column("Count", justify="right")
            for code, count in summary["alert_counts"].items():
                table.add_row(code, str(count))
            console.print(table)
        console.print("")
        console.print(f"[green]Wrote alerts:[/green] {output}")
        if verdicts is not None:
            console.print(f"[green]Wrote verdicts:[/green] {verdicts}")

    for result in failed_units:
        console.print(f"[red]Error:[/red] {result.task_id}: {result.error}")
    if failed_units:
        raise SystemExit(1)


# =============================================================================
# alerts command
# =============================================================================


@main.command("alerts")
@click.option(
    "--fatal-only",
    is_flag=True,
    help="Only list codes that fail a sequence by default.",
)
def list_alerts(fatal_only: bool) -> None:
    """List every alert code with its scope and default fatality."""
    table = Table(title="Alert codes")
    table.add_column("Code", style="cyan")
    table.add_column("Scope")
    table.add_column("Family")
    table.add_column("Fatal")
    table.add_column("Description")

    for code in codes_in_order():
        info = ALERT_REGISTRY[code]
        if fatal_only and not info.causes_failure:
            continue
        if info.always_fatal:
            fatal = "always"
        else:
            fatal = "yes" if info.causes_failure else "no"
        table.add_row(code.value, info.scope.value, info.family.value, fatal, info.short_desc)

    console.print(table)


# =============================================================================
# check-config command
# =============================================================================


@main.command("check-config")
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--dump",
    type=click.Path(path_type=Path),
    help="Write the effective configuration (with defaults) as JSON.",
)
def check_config(config_path: Path, dump: Optional[Path]) -> None:
    """Validate a configuration file."""
    try:
        config = Config.load(config_path)
    except (ConfigError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    console.print(f"[green]Configuration OK:[/green] {config_path}")
    policy = config.policy
    if policy.fail_codes:
        console.print(f"[blue]Fail:[/blue] {', '.join(sorted(c.value for c in policy.fail_codes))}")
    if policy.pass_codes:
        console.print(f"[blue]Pass:[/blue] {', '.join(sorted(c.value for c in policy.pass_codes))}")
    if dump is not None:
        config.save(dump)
        console.print(f"[green]Wrote configuration:[/green] {dump}")


if __name__ == "__main__":
    main()
