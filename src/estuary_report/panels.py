"""Panel figures — background ribbon, median line and current monthly medians."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.figure import Figure  # noqa: E402
from matplotlib.lines import Line2D  # noqa: E402
from matplotlib.patches import Patch  # noqa: E402

import pandas as pd  # noqa: E402

from estuary_report.config import VARIABLES, Colours, Estuary, VariableGroup  # noqa: E402
from estuary_report.errors import MissingSliceError  # noqa: E402
from estuary_report.summary import season_labels, season_position  # noqa: E402

MissingPolicy = Literal["empty", "omit", "error"]
MISSING_POLICIES: tuple[str, ...] = ("empty", "omit", "error")

CELL_WIDTH = 3.2
CELL_HEIGHT = 2.6
RIBBON_ALPHA = 0.25
DEFAULT_DPI = 200


@dataclass(frozen=True)
class PanelCell:
    zone: str
    variable: str
    method: str

    @property
    def key(self) -> str:
        return f"{self.zone}/{self.variable}/{self.method}"


def panel_layout(estuary: Estuary, group: VariableGroup) -> list[list[PanelCell]]:
    """Sub-plot grid for *group*: one row per zone, one column per variable x method."""
    columns = [
        (code, method) for code in group.variables for method in VARIABLES[code].methods
    ]
    return [
        [PanelCell(zone, code, method) for code, method in columns]
        for zone in estuary.zones_for(group)
    ]


def _slice(df: pd.DataFrame, cell: PanelCell) -> pd.DataFrame:
    if df.empty:
        return df
    mask = (
        (df["zone"] == cell.zone)
        & (df["variable"] == cell.variable)
        & (df["method"] == cell.method)
    )
    return df.loc[mask]


def _draw_cell(
    ax: plt.Axes,
    band: pd.DataFrame,
    points: pd.DataFrame,
    colour: str,
) -> None:
    if not band.empty:
        band = band.assign(x=band["month"].map(season_position)).sort_values("x")
        ax.fill_between(
            band["x"], band["p10"], band["p90"],
            color=colour, alpha=RIBBON_ALPHA, linewidth=0,
        )
        ax.plot(band["x"], band["median"], color=colour, linewidth=1.2)
    if not points.empty:
        months = points["month"].map(lambda key: int(str(key)[5:7]))
        ax.scatter(
            months.map(season_position), points["median"],
            color=colour, edgecolor="black", linewidth=0.5, s=22, zorder=3,
        )


def build_group_figure(
    bands: pd.DataFrame,
    current: pd.DataFrame,
    estuary: Estuary,
    group: VariableGroup,
    colours: Colours | None = None,
    *,
    missing: MissingPolicy = "empty",
    year: int | None = None,
) -> tuple[Figure, list[str]]:
    """Lay out and draw every sub-plot for *group*.

    Returns ``(figure, missing_slice_keys)``. A slice is missing when it
    has neither background bands nor current-period points.
    """
    if missing not in MISSING_POLICIES:
        raise ValueError(f"Invalid missing policy: {missing!r}. Use empty/omit/error.")
    colours = colours or Colours()

    layout = panel_layout(estuary, group)
    empty_cells = [
        cell.key
        for row in layout
        for cell in row
        if _slice(bands, cell).empty and _slice(current, cell).empty
    ]
    if empty_cells and missing == "error":
        raise MissingSliceError(
            f"{estuary.name} {group.name}: no data for {', '.join(empty_cells)}"
        )

    nrows, ncols = len(layout), len(layout[0])
    fig, axes = plt.subplots(
        nrows, ncols,
        figsize=(CELL_WIDTH * ncols, CELL_HEIGHT * nrows),
        sharex=True, squeeze=False,
    )
    labels = season_labels()
    for r, row in enumerate(layout):
        for c, cell in enumerate(row):
            ax = axes[r][c]
            if cell.key in empty_cells:
                if missing == "omit":
                    ax.remove()
                    continue
                ax.text(
                    0.5, 0.5, "No data", ha="center", va="center",
                    transform=ax.transAxes, color="grey",
                )
            else:
                _draw_cell(
                    ax,
                    _slice(bands, cell),
                    _slice(current, cell),
                    colours.for_method(cell.method),
                )
            var = VARIABLES[cell.variable]
            ax.set_title(f"{cell.zone} | {var.label} | {cell.method}", fontsize=8)
            ax.set_xlim(0.5, 12.5)
            ax.set_xticks(range(1, 13))
            ax.set_xticklabels(labels, fontsize=6, rotation=90)
            ax.tick_params(axis="y", labelsize=7)
            if c == 0 or row[c - 1].variable != cell.variable:
                ax.set_ylabel(var.axis_label, fontsize=7)

    title = f"{estuary.name} estuary {group.name}"
    if year is not None:
        title += f" {year - 1}-{str(year)[-2:]}"
    fig.suptitle(title, fontsize=11)
    fig.legend(
        handles=[
            Patch(facecolor="grey", alpha=RIBBON_ALPHA, label="Background 10th-90th percentile"),
            Line2D([0], [0], color="grey", label="Background median"),
            Line2D([0], [0], marker="o", color="grey", markeredgecolor="black",
                   linestyle="none", label="Current monthly median"),
        ],
        loc="lower center", ncol=3, fontsize=8, frameon=False,
    )
    fig.tight_layout(rect=(0, 0.04, 1, 0.96))
    return fig, empty_cells


def render_group_panel(
    path: Path,
    bands: pd.DataFrame,
    current: pd.DataFrame,
    estuary: Estuary,
    group: VariableGroup,
    colours: Colours | None = None,
    *,
    missing: MissingPolicy = "empty",
    year: int | None = None,
    dpi: int = DEFAULT_DPI,
) -> tuple[Path, list[str]]:
    """Draw *group* and save it as a PNG at *path*."""
    path = Path(path)
    fig, empty_cells = build_group_figure(
        bands, current, estuary, group, colours, missing=missing, year=year
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        fig.savefig(tmp_path, dpi=dpi, format="png")
        tmp_path.replace(path)
    finally:
        plt.close(fig)
    return path, empty_cells
