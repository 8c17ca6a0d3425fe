"""Report generation — one panel figure and one summary table per variable group."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from estuary_report.config import CANNING, SWAN, Colours, Estuary, VariableGroup
from estuary_report.io import write_csv
from estuary_report.models import GroupOutputs
from estuary_report.panels import DEFAULT_DPI, MissingPolicy, render_group_panel
from estuary_report.summary import (
    background_bands,
    current_summary,
    find_normalized_csv,
    infer_reporting_year,
    load_normalized,
)
from estuary_report.workbook import write_summary_workbook


@dataclass
class EstuaryReport:
    estuary: str
    reporting_year: int
    source: Path
    groups: list[GroupOutputs] = field(default_factory=list)
    workbook_path: Path | None = None

    @property
    def missing_slices(self) -> list[str]:
        return [
            f"{outputs.group}:{key}" for outputs in self.groups for key in outputs.missing_slices
        ]


def group_filename(code: str, group: str, reporting_year: int, suffix: str) -> str:
    return f"{code}_{group}_{reporting_year}{suffix}"


def report_group(
    output_path: Path,
    data: pd.DataFrame,
    estuary: Estuary,
    group: VariableGroup | str,
    surface: str = "blue",
    bottom: str = "red",
    chlorophyll: str = "darkgreen",
    *,
    missing: MissingPolicy = "empty",
    year: int | None = None,
    dpi: int = DEFAULT_DPI,
) -> GroupOutputs:
    """Write the panel image and summary CSV for one variable group.

    *data* must be the normalized CSV for *estuary*, already loaded (see
    :func:`estuary_report.summary.find_normalized_csv`).
    """
    if isinstance(group, str):
        group = estuary.group(group)
    if year is None:
        year = infer_reporting_year(data)

    output_path = Path(output_path)
    shown = data.loc[data["zone"].isin(estuary.zones_for(group))]
    bands = background_bands(shown, group.variables)
    summary = current_summary(shown, group.variables)

    panel_path, empty_cells = render_group_panel(
        output_path / estuary.panels_dir / group_filename(estuary.code, group.name, year, ".png"),
        bands,
        summary,
        estuary,
        group,
        Colours(surface=surface, bottom=bottom, chlorophyll=chlorophyll),
        missing=missing,
        year=year,
        dpi=dpi,
    )
    table_path = write_csv(
        output_path / estuary.tables_dir / group_filename(estuary.code, group.name, year, ".csv"),
        summary,
    )
    return GroupOutputs(
        group=group.name,
        panel_path=panel_path,
        table_path=table_path,
        summary=summary,
        bands=bands,
        missing_slices=empty_cells,
    )


def estuary_report(
    input_path: Path,
    output_path: Path,
    estuary: Estuary,
    surface: str = "blue",
    bottom: str = "red",
    chlorophyll: str = "darkgreen",
    *,
    missing: MissingPolicy = "empty",
    dpi: int = DEFAULT_DPI,
) -> EstuaryReport:
    """Report every variable group configured for *estuary*."""
    source, year = find_normalized_csv(Path(input_path), estuary.code)
    data = load_normalized(source)

    result = EstuaryReport(estuary=estuary.name, reporting_year=year, source=source)
    for group in estuary.groups:
        result.groups.append(
            report_group(
                output_path,
                data,
                estuary,
                group,
                surface,
                bottom,
                chlorophyll,
                missing=missing,
                year=year,
                dpi=dpi,
            )
        )
    result.workbook_path = write_summary_workbook(
        Path(output_path) / estuary.tables_dir,
        estuary,
        year,
        {outputs.group: outputs.summary for outputs in result.groups},
        source=source,
    )
    return result


def swan_report(
    input_path: Path,
    output_path: Path,
    surface: str = "blue",
    bottom: str = "red",
    chlorophyll: str = "darkgreen",
    *,
    missing: MissingPolicy = "empty",
    dpi: int = DEFAULT_DPI,
) -> EstuaryReport:
    return estuary_report(
        input_path, output_path, SWAN, surface, bottom, chlorophyll, missing=missing, dpi=dpi
    )


def canning_report(
    input_path: Path,
    output_path: Path,
    surface: str = "blue",
    bottom: str = "red",
    chlorophyll: str = "darkgreen",
    *,
    missing: MissingPolicy = "empty",
    dpi: int = DEFAULT_DPI,
) -> EstuaryReport:
    return estuary_report(
        input_path, output_path, CANNING, surface, bottom, chlorophyll, missing=missing, dpi=dpi
    )
