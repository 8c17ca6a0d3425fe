"""CLI entry point for estuary-report."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from estuary_report import __version__
from estuary_report.config import ESTUARIES, VARIABLES, Estuary, normalize_header
from estuary_report.errors import MissingSliceError
from estuary_report.ingest import ingest_estuary
from estuary_report.io import is_export_file, write_json
from estuary_report.models import RunManifest
from estuary_report.panels import DEFAULT_DPI
from estuary_report.report import estuary_report
from estuary_report.utils import sha256_file, utcnow_iso

app = typer.Typer(
    name="wqreport",
    help="estuary-report — Annual water-quality tables and panels for the Swan and Canning.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

MAP_TARGETS: frozenset[str] = frozenset({"site", "date", "method", *VARIABLES})


class EstuaryOption(str, Enum):
    swan = "swan"
    canning = "canning"
    all = "all"


class MissingOption(str, Enum):
    empty = "empty"
    omit = "omit"
    error = "error"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"estuary-report v{__version__}")
        raise typer.Exit()


def _selected(
    option: EstuaryOption,
    input_path: Path,
    belongs: Callable[[Path, Estuary], bool],
) -> list[Estuary]:
    """Estuaries to process; ``all`` with a single file keeps those the file belongs to."""
    if option is not EstuaryOption.all:
        return [ESTUARIES[option.value]]
    if not input_path.is_file():
        return list(ESTUARIES.values())
    selected = [est for est in ESTUARIES.values() if belongs(input_path, est)]
    if not selected:
        raise FileNotFoundError(f"{input_path.name} does not belong to any configured estuary")
    return selected


def _is_export_of(path: Path, est: Estuary) -> bool:
    return is_export_file(path, est.file_pattern)


def _is_normalized_of(path: Path, est: Estuary) -> bool:
    return path.name.startswith(f"{est.code}_annual_report_data_for_")


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map target=source`` pairs into ``{normalised source: target}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected target=source)")
        target, source = item.split("=", 1)
        target_norm = target.strip().lower()
        source_norm = normalize_header(source)
        if not target_norm or not source_norm:
            raise ValueError("--map entries must have non-empty target and source (target=source)")
        if target_norm not in MAP_TARGETS:
            raise ValueError(
                f"Unknown --map target {target_norm!r}; expected one of: "
                f"{', '.join(sorted(MAP_TARGETS))}"
            )
        if source_norm in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for source {source_norm!r}")
        mapping[source_norm] = target_norm
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``target=source`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like tn=Total N)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _input_hashes(input_path: Path, names: list[str]) -> dict[str, str]:
    base = input_path if input_path.is_dir() else input_path.parent
    hashes: dict[str, str] = {}
    for name in names:
        try:
            hashes[name] = sha256_file(base / name)
        except OSError:
            hashes[name] = ""
    return hashes


def _write_manifest(
    out_dir: Path,
    command: str,
    input_path: Path,
    created_at: str,
    *,
    inputs: dict[str, str] | None = None,
    outputs: list[Path] | None = None,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    manifest = RunManifest(
        version=__version__,
        command=command,
        run_id=created_at,
        input_path=str(input_path.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        inputs=inputs or {},
        outputs=[str(path) for path in outputs or []],
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    command: str,
    input_path: Path,
    created_at: str,
    message: str,
    *,
    error_code: int,
) -> None:
    manifest_path = _write_manifest(
        out_dir,
        command,
        input_path,
        created_at,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Manifest -> {manifest_path}")
    raise typer.Exit(code=error_code)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """estuary-report CLI."""


# ── ingest command ───────────────────────────────────────────────


@app.command()
def ingest(
    input_path: Path = typer.Option(
        ..., "--input", "-i",
        help="Directory of portal export files (or a single export file).",
        exists=True, readable=True,
    ),
    year: int = typer.Option(
        ..., "--year", "-y",
        help="Reporting year; the current period ends 31 May of this year.",
        min=1900, max=9999,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Directory for normalized CSVs, ingest reports and the manifest.",
    ),
    estuary: EstuaryOption = typer.Option(
        EstuaryOption.all, "--estuary", "-e",
        help="Estuary to ingest: swan, canning or all.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help=(
            "Header alias: target=source (read source header as target). "
            "E.g. --map tn='Total N' --map site=SiteCode"
        ),
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header aliases (target=source lines).",
    ),
    dayfirst: bool = typer.Option(
        True,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for non-ISO values like 01/02/2019.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Normalise raw exports into one CSV per estuary."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    except ValueError as exc:
        _fail(out_dir, "ingest", input_path, created_at, str(exc), error_code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]estuary-report[/bold] v{__version__}  [dim]ingest[/dim]\n"
            f"Input:  {input_path}\nOutput: {out_dir}\nYear:   {year}",
            title="Ingest Start", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")
        if mapping:
            console.print(f"  Column map: {mapping}")

    outputs: list[Path] = []
    inputs: dict[str, str] = {}
    try:
        for est in _selected(estuary, input_path, _is_export_of):
            echo(f"[blue]>[/blue] Ingesting {est.name} exports …")
            result = ingest_estuary(
                input_path, year, out_dir, est, extra_map=mapping, dayfirst=dayfirst,
            )
            report = result.report
            inputs.update(_input_hashes(input_path, report.files))
            outputs.extend([result.csv_path, result.report_path])
            echo(
                f"  {len(report.files)} file(s), format {', '.join(report.format_versions)}: "
                f"{report.observations_out} observations kept, {report.discarded} out of window"
            )
            if not quiet:
                for warning in report.warnings:
                    console.print(f"  [yellow]![/yellow] {warning}")
            echo(f"  CSV    -> {result.csv_path}")
            echo(f"  Report -> {result.report_path}")
    except (FileNotFoundError, ValueError, OSError) as exc:
        _fail(out_dir, "ingest", input_path, created_at, str(exc), error_code=2)
    except Exception as exc:
        _fail(
            out_dir, "ingest", input_path, created_at,
            f"Unexpected internal error: {exc}", error_code=1,
        )

    manifest_path = _write_manifest(
        out_dir, "ingest", input_path, created_at, inputs=inputs, outputs=outputs,
    )
    echo(f"  Manifest -> {manifest_path}")
    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {len(inputs)} export file(s) -> {out_dir}",
            title="Ingest Complete", border_style="green",
        ))


# ── report command ───────────────────────────────────────────────


@app.command()
def report(
    input_path: Path = typer.Option(
        ..., "--input", "-i",
        help="Directory holding the normalized CSVs written by 'ingest'.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Directory for the panels/ and tables/ folders.",
    ),
    estuary: EstuaryOption = typer.Option(
        EstuaryOption.all, "--estuary", "-e",
        help="Estuary to report: swan, canning or all.",
    ),
    surface: str = typer.Option("blue", "--surface", help="Colour for surface samples."),
    bottom: str = typer.Option("red", "--bottom", help="Colour for bottom samples."),
    chlorophyll: str = typer.Option(
        "darkgreen", "--chlorophyll", help="Colour for integrated chlorophyll samples.",
    ),
    missing: MissingOption = typer.Option(
        MissingOption.empty, "--missing",
        help="Sub-plots with no data: empty (blank), omit (removed) or error (abort).",
    ),
    dpi: int = typer.Option(
        DEFAULT_DPI, "--dpi", help="Resolution of the panel PNGs.", min=30, max=600,
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Render group panels and summary tables from normalized CSVs."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    if not quiet:
        console.print(Panel(
            f"[bold]estuary-report[/bold] v{__version__}  [dim]report[/dim]\n"
            f"Input:  {input_path}\nOutput: {out_dir}",
            title="Report Start", border_style="blue",
        ))

    outputs: list[Path] = []
    inputs: dict[str, str] = {}
    try:
        for est in _selected(estuary, input_path, _is_normalized_of):
            echo(f"[blue]>[/blue] Reporting {est.name} …")
            result = estuary_report(
                input_path, out_dir, est, surface, bottom, chlorophyll,
                missing=missing.value, dpi=dpi,
            )
            inputs[result.source.name] = sha256_file(result.source)
            for group in result.groups:
                outputs.extend([group.panel_path, group.table_path])
            if result.workbook_path is not None:
                outputs.append(result.workbook_path)

            if not quiet:
                tbl = RichTable(title=f"{est.name} {result.reporting_year}", show_lines=False)
                tbl.add_column("Group", style="bold")
                tbl.add_column("Rows", justify="right")
                tbl.add_column("Empty sub-plots", justify="right")
                tbl.add_column("Panel")
                for group in result.groups:
                    empty = len(group.missing_slices)
                    tbl.add_row(
                        group.group,
                        str(len(group.summary)),
                        f"[yellow]{empty}[/yellow]" if empty else "0",
                        str(group.panel_path),
                    )
                console.print(tbl)
                console.print(f"  Workbook -> {result.workbook_path}")
    except (FileNotFoundError, ValueError, OSError, MissingSliceError) as exc:
        _fail(out_dir, "report", input_path, created_at, str(exc), error_code=2)
    except Exception as exc:
        _fail(
            out_dir, "report", input_path, created_at,
            f"Unexpected internal error: {exc}", error_code=1,
        )

    manifest_path = _write_manifest(
        out_dir, "report", input_path, created_at, inputs=inputs, outputs=outputs,
    )
    echo(f"  Manifest -> {manifest_path}")
    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {len(outputs)} artifact(s) -> {out_dir}",
            title="Report Complete", border_style="green",
        ))
