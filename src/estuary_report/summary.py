"""Monthly statistics — background percentile bands and current summaries."""

from __future__ import annotations

import calendar
import re
from collections.abc import Sequence
from pathlib import Path

import pandas as pd

from estuary_report import NORMALIZED_COLUMNS
from estuary_report.config import (
    BAND_QUANTILES,
    METHODS,
    REPORTING_YEAR_START_MONTH,
    VARIABLES,
)
from estuary_report.errors import FormatMismatchError

BAND_COLUMNS = ["variable", "zone", "method", "month", "n", "p10", "median", "p90"]
SUMMARY_COLUMNS = ["variable", "zone", "method", "month", "count", "min", "median", "max"]

_YEAR_RE = re.compile(r"_annual_report_data_for_(\d{4})\.csv$")


# ── Loading ──────────────────────────────────────────────────────


def find_normalized_csv(input_path: Path, code: str) -> tuple[Path, int]:
    """Locate ``{code}_annual_report_data_for_{year}.csv``; latest year wins."""
    input_path = Path(input_path)
    if input_path.is_file():
        candidates = [input_path]
    elif input_path.is_dir():
        candidates = sorted(input_path.glob(f"{code}_annual_report_data_for_*.csv"))
    else:
        raise FileNotFoundError(f"Input path not found: {input_path}")

    found: list[tuple[int, Path]] = []
    for path in candidates:
        match = _YEAR_RE.search(path.name)
        if match and path.name.startswith(f"{code}_"):
            found.append((int(match.group(1)), path))
    if not found:
        raise FileNotFoundError(
            f"No normalized CSV for estuary code {code!r} in {input_path}"
        )
    year, path = max(found)
    return path, year


def load_normalized(path: Path) -> pd.DataFrame:
    """Read a normalized CSV written by the ingest stage."""
    df = pd.read_csv(
        path,
        dtype={
            "estuary": "string",
            "site": "string",
            "zone": "string",
            "method": "string",
            "variable": "string",
            "censored": "string",
            "period": "string",
        },
        keep_default_na=False,
        na_values={"value": [""]},
    )
    missing = [c for c in NORMALIZED_COLUMNS if c not in df.columns]
    if missing:
        raise FormatMismatchError(
            f"{Path(path).name} is missing columns: {', '.join(missing)}", missing=missing
        )
    df["date"] = pd.to_datetime(df["date"], format="%Y-%m-%d")
    df["value"] = pd.to_numeric(df["value"], errors="raise")
    return df


# ── Calendar helpers ─────────────────────────────────────────────


def season_position(month: int) -> int:
    """1-based position of a calendar month within the June..May year."""
    return (month - REPORTING_YEAR_START_MONTH) % 12 + 1


def month_order(reporting_year: int) -> list[str]:
    """``YYYY-MM`` keys of the current period, June first."""
    keys: list[str] = []
    for offset in range(12):
        month = (REPORTING_YEAR_START_MONTH - 1 + offset) % 12 + 1
        year = reporting_year - 1 if month >= REPORTING_YEAR_START_MONTH else reporting_year
        keys.append(f"{year:04d}-{month:02d}")
    return keys


def season_labels() -> list[str]:
    return [
        calendar.month_abbr[(REPORTING_YEAR_START_MONTH - 1 + offset) % 12 + 1]
        for offset in range(12)
    ]


def infer_reporting_year(df: pd.DataFrame) -> int:
    """Reporting year that the latest observation in *df* falls in."""
    if df.empty:
        raise ValueError("Cannot infer a reporting year from an empty dataset")
    latest = pd.to_datetime(df["date"]).max()
    return int(latest.year) + (1 if latest.month >= REPORTING_YEAR_START_MONTH else 0)


# ── Statistics ───────────────────────────────────────────────────


def _subset(df: pd.DataFrame, period: str, variables: Sequence[str]) -> pd.DataFrame:
    # only the variable/method pairs a panel draws (chlorophyll is integrated-only)
    drawn = {(code, method) for code in variables for method in VARIABLES[code].methods}
    pairs = pd.Series(
        [(v, m) in drawn for v, m in zip(df["variable"], df["method"])],
        index=df.index,
        dtype=bool,
    )
    mask = (df["period"] == period) & pairs
    return df.loc[mask & df["value"].notna()]


def _ordered(df: pd.DataFrame, variables: Sequence[str]) -> pd.DataFrame:
    if df.empty:
        return df.reset_index(drop=True)
    order = pd.DataFrame({
        "_v": pd.Categorical(df["variable"], categories=list(variables), ordered=True),
        "_m": pd.Categorical(df["method"], categories=list(METHODS), ordered=True),
    }, index=df.index)
    df = pd.concat([df, order], axis=1)
    df = df.sort_values(["_v", "zone", "_m", "month"], kind="mergesort")
    return df.drop(columns=["_v", "_m"]).reset_index(drop=True)


def background_bands(df: pd.DataFrame, variables: Sequence[str]) -> pd.DataFrame:
    """10th/50th/90th percentiles per (variable, zone, method, calendar month).

    Pools every background year, so each calendar month has one band that
    repeats as a seasonal baseline.
    """
    subset = _subset(df, "background", variables)
    if subset.empty:
        return pd.DataFrame(columns=BAND_COLUMNS)

    lo, mid, hi = BAND_QUANTILES
    subset = subset.assign(month=pd.to_datetime(subset["date"]).dt.month)
    bands = (
        subset.groupby(["variable", "zone", "method", "month"])["value"]
        .agg(
            n="count",
            p10=lambda v: v.quantile(lo),
            median=lambda v: v.quantile(mid),
            p90=lambda v: v.quantile(hi),
        )
        .reset_index()
    )
    bands["month"] = bands["month"].astype(int)
    bands["n"] = bands["n"].astype(int)
    return _ordered(bands.loc[:, BAND_COLUMNS], variables)


def current_summary(df: pd.DataFrame, variables: Sequence[str]) -> pd.DataFrame:
    """Count/min/median/max per (variable, zone, method, ``YYYY-MM``) month."""
    subset = _subset(df, "current", variables)
    if subset.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    subset = subset.assign(month=pd.to_datetime(subset["date"]).dt.strftime("%Y-%m"))
    summary = (
        subset.groupby(["variable", "zone", "method", "month"])["value"]
        .agg(count="count", min="min", median="median", max="max")
        .reset_index()
    )
    summary["count"] = summary["count"].astype(int)
    return _ordered(summary.loc[:, SUMMARY_COLUMNS], variables)
