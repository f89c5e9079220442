"""
Main entry point for Cyto Workbench.

This module provides the main() function behind the ``cyto-workbench``
command:

    cyto-workbench inspect FILE
    cyto-workbench apply FILE [--comp JSON] [--density X Y] [--scale KIND] [--grid N]
    cyto-workbench export-comp FILE OUT

``apply`` runs the full decode and compensation through the background
compute service, the same path an interactive front end uses.
"""

import argparse
import logging
import sys
from typing import List, Optional, Sequence

import numpy as np
from PyQt6.QtCore import QCoreApplication, QEventLoop
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from cyto_workbench import __version__
from cyto_workbench.core.compensation import CompensationMatrix, save_compensation
from cyto_workbench.core.dataset import Dataset, load_dataset
from cyto_workbench.core.density import DensityQuery, DensityResult
from cyto_workbench.core.gating import AxisRanges
from cyto_workbench.core.settings import Settings, get_settings
from cyto_workbench.core.transforms import ScaleKind
from cyto_workbench.fcs.errors import CompensationError, FCSError, WorkerFault
from cyto_workbench.gui.session import ApplyJobState, WorkbenchSession
from cyto_workbench.gui.workers.messages import JobStatus
from cyto_workbench.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()

# Rows shown in the worst-pairs table
WORST_PAIRS_SHOWN = 10

DENSITY_SLOT = "cli"


# =============================================================================
# Helpers
# =============================================================================

def _resolve_param(dataset: Dataset, value: str) -> int:
    """Channel index from a label, detector name or 0-based index."""
    try:
        return dataset.meta.param_index(value)
    except KeyError:
        pass
    try:
        index = int(value)
    except ValueError:
        raise SystemExit(f"Unknown channel: {value}")
    if not 0 <= index < dataset.n_params:
        raise SystemExit(f"Channel index {index} outside 0..{dataset.n_params - 1}")
    return index


def _data_range(values: np.ndarray) -> tuple:
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return 0.0, 1.0
    lo, hi = float(finite.min()), float(finite.max())
    if hi <= lo:
        hi = lo + 1.0
    return lo, hi


def _worst_pairs_table(dataset: Dataset, matrix: CompensationMatrix) -> Table:
    labels = dataset.meta.labels
    table = Table(title="Strongest spillover")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Coefficient", justify="right")
    for pair in matrix.worst_pairs()[:WORST_PAIRS_SHOWN]:
        table.add_row(labels[pair.source], labels[pair.target], f"{pair.coeff:+.4f}")
    return table


def _wait(session: WorkbenchSession, done) -> None:
    """Run the Qt event loop until done() is true or the service faults."""
    loop = QEventLoop()

    def check(*_args):
        if done():
            loop.quit()

    signals = (session.apply_state_changed, session.density_ready, session.density_failed)
    for signal in signals:
        signal.connect(check)
    session.error_occurred.connect(loop.quit)
    try:
        if not done():
            loop.exec()
    finally:
        for signal in signals:
            signal.disconnect(check)
        session.error_occurred.disconnect(loop.quit)


# =============================================================================
# Commands
# =============================================================================

def cmd_inspect(args: argparse.Namespace, settings: Settings) -> int:
    dataset = load_dataset(args.path, settings.processing.preview_cap)
    meta = dataset.meta

    summary = Table(title=dataset.name, show_header=False)
    summary.add_column("Field", style="bold")
    summary.add_column("Value")
    summary.add_row("Version", meta.version)
    summary.add_row("Events", f"{meta.n_events:,}")
    summary.add_row("Parameters", str(meta.n_params))
    summary.add_row("Data type", meta.data_type.name)
    summary.add_row("Byte order", "little-endian" if meta.little_endian else "big-endian")
    summary.add_row("Bytes/event", str(meta.bytes_per_event))
    summary.add_row("DATA range", f"{meta.data_start}-{meta.data_end}")
    summary.add_row("Spillover", "yes" if meta.spillover is not None else "no")
    summary.add_row("Preview", f"{dataset.preview.n:,} events")
    console.print(summary)

    params = Table(title="Parameters")
    params.add_column("#", justify="right")
    params.add_column("Label")
    params.add_column("Name")
    params.add_column("Bits", justify="right")
    params.add_column("Range", justify="right")
    for p in meta.params:
        params.add_row(
            str(p.index), p.label, p.name or "",
            "" if p.bit_width is None else str(p.bit_width),
            "" if p.range is None else str(p.range),
        )
    console.print(params)

    matrix = CompensationMatrix(meta.n_params, initial=meta.spillover)
    if matrix.worst_pairs():
        console.print(_worst_pairs_table(dataset, matrix))
    return 0


def _run_apply(session: WorkbenchSession) -> ApplyJobState:
    with Progress(
        TextColumn("[progress.description]{task.description:<10}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("starting", total=None)

        def on_state(state: ApplyJobState):
            if state.phase is not None:
                progress.update(
                    task,
                    description=state.phase.value,
                    completed=state.done,
                    total=state.total if state.total > 0 else None,
                )

        session.apply_state_changed.connect(on_state)
        job_id = session.start_apply()
        try:
            _wait(session, lambda: session.apply_state.status.is_terminal
                  or session.apply_state.job_id != job_id)
        finally:
            session.apply_state_changed.disconnect(on_state)
    return session.apply_state


def _run_density(session: WorkbenchSession, query: DensityQuery) -> DensityResult:
    failure: List[str] = []
    session.density_failed.connect(lambda slot, message: failure.append(message))
    result = session.request_density(DENSITY_SLOT, query)
    if result is None:
        _wait(session, lambda: bool(failure) or session.cached_density(DENSITY_SLOT) is not None)
        result = session.cached_density(DENSITY_SLOT)
    if result is None:
        raise WorkerFault(failure[0] if failure else "Density request produced no result")
    return result


def cmd_apply(args: argparse.Namespace, settings: Settings) -> int:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    session = WorkbenchSession(settings)
    try:
        dataset = session.load_dataset(args.path)
        if args.comp:
            session.load_compensation(args.comp)
            console.print(f"Loaded compensation from {args.comp}")

        state = _run_apply(session)
        if state.status == JobStatus.ERROR:
            console.print(f"[red]Apply failed:[/red] {escape(state.error or 'unknown error')}")
            return 1
        if state.status != JobStatus.DONE:
            console.print(f"[yellow]Apply ended: {state.status.name.lower()}[/yellow]")
            return 1
        console.print(
            f"Applied compensation to {state.total:,} events "
            f"(revision {state.applied_revision})"
        )

        if args.density:
            x = _resolve_param(dataset, args.density[0])
            y = _resolve_param(dataset, args.density[1])
            corrected = session.matrix.apply(dataset.preview.channels)
            x_min, x_max = _data_range(corrected[x])
            y_min, y_max = _data_range(corrected[y])
            query = DensityQuery(
                x_param=x,
                y_param=y,
                scale=ScaleKind.parse(args.scale or settings.transform.default_scale),
                params=settings.transform.get_params(),
                axis=AxisRanges(x_min, x_max, y_min, y_max),
                gates=session.gate_chain(),
                bins_w=args.grid or settings.density.default_grid,
                bins_h=args.grid or settings.density.default_grid,
            )
            result = _run_density(session, query)

            table = Table(title=f"Density {dataset.meta.labels[x]} vs {dataset.meta.labels[y]}")
            table.add_column("Grid")
            table.add_column("In range", justify="right")
            table.add_column("Total", justify="right")
            table.add_column("Max bin", justify="right")
            table.add_row(
                f"{result.width}x{result.height}",
                f"{result.n_passed:,}",
                f"{result.total:,}",
                f"{result.max_count:,}",
            )
            console.print(table)

            if args.save_grid:
                np.save(args.save_grid, result.grid())
                console.print(f"Saved density grid to {args.save_grid}")
        return 0
    finally:
        session.shutdown()
        app.processEvents()


def cmd_export_comp(args: argparse.Namespace, settings: Settings) -> int:
    dataset = load_dataset(args.path, settings.processing.preview_cap)
    matrix = CompensationMatrix(dataset.n_params, initial=dataset.meta.spillover)
    save_compensation(matrix, args.out)
    if dataset.meta.spillover is None:
        console.print("[yellow]No spillover keyword found; wrote a zero matrix[/yellow]")
    console.print(f"Wrote {dataset.n_params}x{dataset.n_params} compensation to {args.out}")
    return 0


# =============================================================================
# Entry Point
# =============================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        "cyto-workbench",
        description="FCS decoding, spillover compensation and density tooling",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-file", default=None, help="log file (default: settings)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log progress to the console")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("inspect", help="show metadata, parameters and spillover")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_inspect)

    sp = sub.add_parser("apply", help="compensate every event, optionally bin a density")
    sp.add_argument("path")
    sp.add_argument("--comp", default=None, help="compensation JSON to load first")
    sp.add_argument("--density", nargs=2, metavar=("X", "Y"), default=None,
                    help="channels (label or index) to bin after applying")
    sp.add_argument("--scale", default=None,
                    choices=[kind.value for kind in ScaleKind] + ["logicle"])
    sp.add_argument("--grid", type=int, default=None, help="grid size per axis (8-512)")
    sp.add_argument("--save-grid", default=None, help="save density counts as .npy")
    sp.set_defaults(func=cmd_apply)

    sp = sub.add_parser("export-comp", help="write the file's spillover as compensation JSON")
    sp.add_argument("path")
    sp.add_argument("out")
    sp.set_defaults(func=cmd_export_comp)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for Cyto Workbench.

    Returns:
        Process exit code: 0 on success, 1 on decode, compensation or
        background failures
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(
        args.log_file or settings.logging.get_log_file(),
        settings.logging.get_level(),
        console_level=logging.INFO if args.verbose else logging.WARNING,
    )

    try:
        return args.func(args, settings)
    except (FCSError, CompensationError, WorkerFault) as e:
        logger.error("%s failed: %s", args.cmd, e)
        console.print(f"[red]{type(e).__name__}:[/red] {escape(str(e))}", highlight=False)
        return 1
    except OSError as e:
        logger.error("%s failed: %s", args.cmd, e)
        console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        return 1


if __name__ == "__main__":
    sys.exit(main())
