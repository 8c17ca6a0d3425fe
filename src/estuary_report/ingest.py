"""Ingest + normalise — cross-tab exports to one observation per row.

Everything above ``ingest_estuary`` is a pure function of its arguments;
the configuration tables it needs are passed in explicitly.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, timedelta
from pathlib import Path

import pandas as pd

from estuary_report import NORMALIZED_COLUMNS
from estuary_report.config import (
    CANNING,
    DEFAULT_BACKGROUND_YEARS,
    EXPORT_FORMATS,
    METHOD_ALIASES,
    REPORTING_YEAR_START_MONTH,
    SWAN,
    Estuary,
    ExportFormat,
    normalize_header,
)
from estuary_report.errors import FormatMismatchError, UnmappedSiteError
from estuary_report.io import find_export_files, is_export_file, load_table, write_csv
from estuary_report.models import IngestReport, IngestResult, ReportingPeriods
from estuary_report.qc import write_ingest_report

_ID_COLUMNS = ["site", "date", "method"]
_SORT_KEYS = ["date", "site", "method", "variable"]


def output_filename(code: str, reporting_year: int) -> str:
    return f"{code}_annual_report_data_for_{reporting_year}.csv"


# ── Censored values ──────────────────────────────────────────────


def resolve_censored(value: object) -> tuple[float, str]:
    """Return ``(number, flag)`` for one raw measurement cell.

    ``"<x"`` resolves to ``x / 2`` and ``">x"`` to ``x``; anything else is
    parsed as-is. Blank cells give ``(nan, "")``. Text that is still not a
    number once the prefix is removed raises ``ValueError``.
    """
    if value is None:
        return math.nan, ""
    if isinstance(value, bool):
        raise ValueError(f"Unparseable measurement value: {value!r}")
    if isinstance(value, (int, float)):
        return float(value), ""
    try:
        if pd.isna(value):  # type: ignore[arg-type]
            return math.nan, ""
    except (TypeError, ValueError):
        pass

    text = str(value).strip()
    if not text:
        return math.nan, ""

    flag = ""
    if text[0] in "<>":
        flag = text[0]
        text = text[1:].strip()
    try:
        number = float(text)
    except ValueError:
        raise ValueError(f"Unparseable measurement value: {value!r}") from None

    if flag == "<":
        number /= 2
    return number, flag


def resolve_censored_series(s: pd.Series) -> tuple[pd.Series, pd.Series]:
    """Vector form of :func:`resolve_censored`; returns ``(values, flags)``."""
    values: list[float] = []
    flags: list[str] = []
    for raw in s.tolist():
        number, flag = resolve_censored(raw)
        values.append(number)
        flags.append(flag)
    return (
        pd.Series(values, index=s.index, dtype="float64"),
        pd.Series(flags, index=s.index, dtype="object"),
    )


# ── Column standardisation ───────────────────────────────────────


def detect_format(
    columns: Iterable[object],
    formats: Sequence[ExportFormat] = EXPORT_FORMATS,
    extra_map: Mapping[str, str] | None = None,
) -> ExportFormat:
    """Return the first export format whose columns are all present.

    *extra_map* (``{normalised raw header: standard name}``) may stand in
    for any of a format's columns.
    """
    if not formats:
        raise ValueError("No export formats configured")

    present = {normalize_header(c) for c in columns}
    aliased = {target for source, target in (extra_map or {}).items() if source in present}

    gaps: list[tuple[ExportFormat, list[str]]] = []
    for fmt in formats:
        missing = [
            raw
            for raw, std in fmt.columns.items()
            if normalize_header(raw) not in present and std not in aliased
        ]
        if not missing:
            return fmt
        gaps.append((fmt, missing))

    closest, closest_missing = min(gaps, key=lambda gap: len(gap[1]))
    raise FormatMismatchError(
        f"Export columns match no known format (closest: {closest.version}); "
        f"missing: {', '.join(closest_missing)}",
        missing=closest_missing,
    )


def standardize_columns(
    df: pd.DataFrame,
    fmt: ExportFormat,
    extra_map: Mapping[str, str] | None = None,
) -> pd.DataFrame:
    """Rename raw headers to standard names and drop everything else."""
    lookup = {normalize_header(raw): std for raw, std in fmt.columns.items()}
    lookup.update(extra_map or {})

    rename: dict[object, str] = {}
    sources: dict[str, list[str]] = {}
    for col in df.columns:
        std = lookup.get(normalize_header(col))
        if std is None:
            continue
        rename[col] = std
        sources.setdefault(std, []).append(str(col))

    duplicated = {std: cols for std, cols in sources.items() if len(cols) > 1}
    if duplicated:
        details = "; ".join(
            f"{std} (source: {' + '.join(cols)})" for std, cols in sorted(duplicated.items())
        )
        raise FormatMismatchError(f"Several export columns map to one name: {details}")

    wanted = [*fmt.id_columns.values(), *fmt.variables]
    out = df.loc[:, list(rename)].rename(columns=rename)
    missing = [name for name in wanted if name not in out.columns]
    if missing:
        raise FormatMismatchError(
            f"Export is missing columns for: {', '.join(missing)}", missing=missing
        )
    return out.loc[:, wanted].copy()


def normalize_methods(
    s: pd.Series, aliases: Mapping[str, str] = METHOD_ALIASES
) -> pd.Series:
    """Map raw sampling-method labels to ``surface``/``bottom``/``integrated``."""
    keys = s.map(lambda v: "" if pd.isna(v) else normalize_header(v))
    methods = keys.map(lambda k: aliases.get(k))
    unknown = sorted({str(s[i]) for i in methods[methods.isna()].index})
    if unknown:
        raise FormatMismatchError(f"Unknown sampling method labels: {', '.join(unknown)}")
    return methods.astype("object")


def parse_dates(s: pd.Series, *, dayfirst: bool = True) -> pd.Series:
    """Parse sample dates to midnight timestamps; bad dates are an error.

    ISO strings (what Excel date cells become) are read first so that
    *dayfirst* only applies to the remaining ``dd/mm/yyyy`` style text.
    """
    parsed = pd.to_datetime(s, errors="coerce", format="ISO8601")
    rest = parsed.isna() & s.notna()
    if rest.any():
        parsed[rest] = pd.to_datetime(s[rest], errors="coerce", dayfirst=dayfirst, format="mixed")
    bad = s[parsed.isna()]
    if not bad.empty:
        examples = ", ".join(repr(v) for v in bad.head(3).tolist())
        raise ValueError(f"Found {len(bad)} unparseable sample dates (e.g. {examples})")
    return parsed.dt.normalize()


# ── Zones and periods ────────────────────────────────────────────


def assign_zones(
    df: pd.DataFrame, sites: Mapping[str, str], *, estuary: str = ""
) -> pd.DataFrame:
    """Return a copy of *df* with cleaned ``site`` ids and their ``zone``."""
    df = df.copy()
    lookup = {str(site).strip().upper(): zone for site, zone in sites.items()}
    df["site"] = df["site"].map(lambda v: "" if pd.isna(v) else str(v).strip().upper())
    df["zone"] = df["site"].map(lookup)

    unmapped = df.loc[df["zone"].isna(), "site"]
    if not unmapped.empty:
        labels = [site or "<blank>" for site in unmapped.unique()]
        raise UnmappedSiteError(estuary or "estuary", labels)
    return df


def reporting_periods(
    reporting_year: int, background_years: int = DEFAULT_BACKGROUND_YEARS
) -> ReportingPeriods:
    """Current June..May window ending in *reporting_year* and the years before it."""
    if background_years < 1:
        raise ValueError("background_years must be >= 1")
    start_month = REPORTING_YEAR_START_MONTH
    current_start = date(reporting_year - 1, start_month, 1)
    current_end = date(reporting_year, start_month, 1) - timedelta(days=1)
    background_start = date(reporting_year - 1 - background_years, start_month, 1)
    background_end = current_start - timedelta(days=1)
    return ReportingPeriods(
        reporting_year=reporting_year,
        current_start=current_start,
        current_end=current_end,
        background_start=background_start,
        background_end=background_end,
    )


def assign_periods(
    df: pd.DataFrame, periods: ReportingPeriods
) -> tuple[pd.DataFrame, int]:
    """Label rows ``current``/``background``; drop the rest.

    Returns ``(labelled_df, discarded_count)``.
    """
    day = pd.to_datetime(df["date"])
    current = day.between(pd.Timestamp(periods.current_start), pd.Timestamp(periods.current_end))
    background = day.between(
        pd.Timestamp(periods.background_start), pd.Timestamp(periods.background_end)
    )

    df = df.copy()
    df["period"] = None
    df.loc[background, "period"] = "background"
    df.loc[current, "period"] = "current"
    kept = df[current | background].copy()
    return kept, len(df) - len(kept)


# ── Reshape ──────────────────────────────────────────────────────


def melt_observations(df: pd.DataFrame, variables: Sequence[str]) -> pd.DataFrame:
    """Cross-tab (one column per variable) to long form; blank cells dropped."""
    long = df.melt(
        id_vars=[c for c in df.columns if c not in variables],
        value_vars=list(variables),
        var_name="variable",
        value_name="raw_value",
    )
    text = long["raw_value"].astype("string").str.strip()
    long = long[text.notna() & (text != "")]
    return long.reset_index(drop=True)


def normalize_export(
    raw: pd.DataFrame,
    estuary: Estuary,
    periods: ReportingPeriods,
    *,
    formats: Sequence[ExportFormat] = EXPORT_FORMATS,
    extra_map: Mapping[str, str] | None = None,
    dayfirst: bool = True,
) -> tuple[pd.DataFrame, IngestReport]:
    """Normalise one raw export for *estuary*.

    Returns ``(observations, report)``. Observations carry exactly the
    columns in ``NORMALIZED_COLUMNS`` and are sorted deterministically.
    """
    fmt = detect_format(raw.columns, formats, extra_map)
    df = standardize_columns(raw, fmt, extra_map)

    df["method"] = normalize_methods(df["method"])
    df["date"] = parse_dates(df["date"], dayfirst=dayfirst)
    df = assign_zones(df, estuary.sites, estuary=estuary.name)

    long = melt_observations(df, fmt.variables)
    long["value"], long["censored"] = resolve_censored_series(long["raw_value"])

    observations_in = len(long)
    kept, discarded = assign_periods(long, periods)
    kept["estuary"] = estuary.name
    kept["date"] = kept["date"].dt.strftime("%Y-%m-%d")
    kept = kept.loc[:, NORMALIZED_COLUMNS]
    kept = kept.sort_values(_SORT_KEYS, kind="mergesort").reset_index(drop=True)

    report = IngestReport(
        estuary=estuary.name,
        reporting_year=periods.reporting_year,
        format_versions=[fmt.version],
        rows_in=len(raw),
        observations_in=observations_in,
        observations_out=len(kept),
        discarded=discarded,
        censored_below=int((kept["censored"] == "<").sum()),
        censored_above=int((kept["censored"] == ">").sum()),
    )
    cells = df[fmt.variables].apply(lambda col: col.astype("string").str.strip())
    empty_rows = len(df) - int((cells.notna() & (cells != "")).any(axis=1).sum())
    if empty_rows:
        report.warnings.append(f"Found {empty_rows} sample rows with no measurements")
    if discarded:
        report.warnings.append(
            f"Discarded {discarded} observations outside "
            f"{periods.background_start.isoformat()}..{periods.current_end.isoformat()}"
        )
    return kept, report


def combine_exports(
    parts: Sequence[tuple[pd.DataFrame, IngestReport]],
    estuary: Estuary,
    reporting_year: int,
) -> tuple[pd.DataFrame, IngestReport]:
    """Concatenate normalised exports, dropping exact duplicate observations."""
    frames = [frame for frame, _ in parts]
    if frames:
        data = pd.concat(frames, ignore_index=True)
    else:
        data = pd.DataFrame(columns=NORMALIZED_COLUMNS)
    before = len(data)
    data = data.drop_duplicates(subset=[*_ID_COLUMNS, "variable", "value", "censored"])
    data = data.sort_values(_SORT_KEYS, kind="mergesort").reset_index(drop=True)
    duplicates = before - len(data)

    versions: list[str] = []
    warnings: list[str] = []
    for _, part in parts:
        for version in part.format_versions:
            if version not in versions:
                versions.append(version)
        warnings.extend(part.warnings)
    if duplicates:
        warnings.append(f"Dropped {duplicates} duplicate observations across exports")
    if not (data["period"] == "current").any():
        warnings.append("No current-period observations after ingest")

    report = IngestReport(
        estuary=estuary.name,
        reporting_year=reporting_year,
        format_versions=versions,
        rows_in=sum(part.rows_in for _, part in parts),
        observations_in=sum(part.observations_in for _, part in parts),
        observations_out=len(data),
        discarded=sum(part.discarded for _, part in parts),
        duplicates=duplicates,
        censored_below=int((data["censored"] == "<").sum()),
        censored_above=int((data["censored"] == ">").sum()),
        warnings=warnings,
    )
    return data, report


# ── Entry points ─────────────────────────────────────────────────


def _export_files(input_path: Path, estuary: Estuary) -> list[Path]:
    input_path = Path(input_path)
    if input_path.is_file():
        if not is_export_file(input_path, estuary.file_pattern):
            raise FileNotFoundError(
                f"{input_path.name} is not a {estuary.name} export "
                f"(expected a name matching {estuary.file_pattern!r})"
            )
        return [input_path]
    files = find_export_files(input_path, estuary.file_pattern)
    if not files:
        raise FileNotFoundError(
            f"No {estuary.name} export files matching {estuary.file_pattern!r} in {input_path}"
        )
    return files


def ingest_estuary(
    input_path: Path,
    reporting_year: int,
    output_path: Path,
    estuary: Estuary = SWAN,
    *,
    formats: Sequence[ExportFormat] = EXPORT_FORMATS,
    extra_map: Mapping[str, str] | None = None,
    background_years: int = DEFAULT_BACKGROUND_YEARS,
    dayfirst: bool = True,
) -> IngestResult:
    """Normalise every *estuary* export under *input_path* into one CSV.

    Writes ``{code}_annual_report_data_for_{year}.csv`` and
    ``{code}_ingest_report.json`` into *output_path*.
    """
    periods = reporting_periods(reporting_year, background_years)
    files = _export_files(Path(input_path), estuary)

    parts: list[tuple[pd.DataFrame, IngestReport]] = []
    for path in files:
        raw = load_table(path)
        try:
            parts.append(
                normalize_export(
                    raw,
                    estuary,
                    periods,
                    formats=formats,
                    extra_map=extra_map,
                    dayfirst=dayfirst,
                )
            )
        except FormatMismatchError as exc:
            raise FormatMismatchError(f"{path.name}: {exc}", missing=exc.missing) from exc

    data, report = combine_exports(parts, estuary, reporting_year)
    report.files = [path.name for path in files]

    output_path = Path(output_path)
    csv_path = write_csv(output_path / output_filename(estuary.code, reporting_year), data)
    report_path = write_ingest_report(output_path, estuary.code, report)
    return IngestResult(csv_path=csv_path, report_path=report_path, report=report, data=data)


def annual_ingest(
    input_path: Path,
    reporting_year: int,
    output_path: Path,
    estuaries: Sequence[Estuary] = (SWAN, CANNING),
    **kwargs: object,
) -> dict[str, IngestResult]:
    """Run :func:`ingest_estuary` for each estuary; keyed by estuary code."""
    return {
        estuary.code: ingest_estuary(
            input_path, reporting_year, output_path, estuary, **kwargs  # type: ignore[arg-type]
        )
        for estuary in estuaries
    }
