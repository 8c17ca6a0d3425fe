"""Data models shared by the ingest and report stages."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from numbers import Integral
from pathlib import Path
from typing import Any

import pandas as pd


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


@dataclass(frozen=True)
class ReportingPeriods:
    """Current (June..May) and background windows for one reporting year.

    Both windows are closed intervals and do not overlap.
    """

    reporting_year: int
    current_start: date
    current_end: date
    background_start: date
    background_end: date

    def period_of(self, day: date) -> str | None:
        if self.current_start <= day <= self.current_end:
            return "current"
        if self.background_start <= day <= self.background_end:
            return "background"
        return None


@dataclass
class IngestReport:
    """Audit record for one estuary ingest.

    Contract invariant:
    ``discarded + duplicates == observations_in - observations_out``.
    """

    estuary: str = ""
    reporting_year: int = 0
    format_versions: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    rows_in: int = 0
    observations_in: int = 0
    observations_out: int = 0
    discarded: int = 0
    duplicates: int = 0
    censored_below: int = 0
    censored_above: int = 0
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.reporting_year = _to_non_negative_int(self.reporting_year, "reporting_year")
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.observations_in = _to_non_negative_int(self.observations_in, "observations_in")
        self.observations_out = _to_non_negative_int(self.observations_out, "observations_out")
        self.discarded = _to_non_negative_int(self.discarded, "discarded")
        self.duplicates = _to_non_negative_int(self.duplicates, "duplicates")
        self.censored_below = _to_non_negative_int(self.censored_below, "censored_below")
        self.censored_above = _to_non_negative_int(self.censored_above, "censored_above")
        self.format_versions = _to_string_list(self.format_versions, "format_versions")
        self.files = _to_string_list(self.files, "files")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.observations_out > self.observations_in:
            raise ValueError("observations_out must be <= observations_in")
        if self.discarded + self.duplicates != self.observations_in - self.observations_out:
            raise ValueError(
                "discarded + duplicates must equal observations_in - observations_out"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "estuary": self.estuary,
            "reporting_year": self.reporting_year,
            "format_versions": list(self.format_versions),
            "files": list(self.files),
            "rows_in": self.rows_in,
            "observations_in": self.observations_in,
            "observations_out": self.observations_out,
            "discarded": self.discarded,
            "duplicates": self.duplicates,
            "censored_below": self.censored_below,
            "censored_above": self.censored_above,
            "warnings": list(self.warnings),
        }


@dataclass
class IngestResult:
    csv_path: Path
    report_path: Path
    report: IngestReport
    data: pd.DataFrame


@dataclass
class GroupOutputs:
    """Artifacts written for one variable group."""

    group: str
    panel_path: Path
    table_path: Path
    summary: pd.DataFrame
    bands: pd.DataFrame
    missing_slices: list[str] = field(default_factory=list)


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "estuary-report"
    version: str = ""
    command: str = ""
    run_id: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    inputs: dict[str, str] = field(default_factory=dict)
    outputs: list[str] = field(default_factory=list)
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")
        if self.error_code is not None:
            self.error_code = _to_non_negative_int(self.error_code, "error_code")
        self.outputs = _to_string_list(self.outputs, "outputs")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "command": self.command,
            "run_id": self.run_id,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "inputs": dict(self.inputs),
            "outputs": list(self.outputs),
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
