from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pandas as pd
import pytest

from estuary_report.config import EXPORT_FORMATS, ExportFormat

FORMAT_2021 = EXPORT_FORMATS[0]

ExportFactory = Callable[..., pd.DataFrame]


def _build_export(
    rows: Sequence[dict[str, str]], fmt: ExportFormat = FORMAT_2021
) -> pd.DataFrame:
    """Cross-tab export with *fmt*'s raw headers; rows use standard names."""
    records = [{raw: row.get(std) for raw, std in fmt.columns.items()} for row in rows]
    return pd.DataFrame(records, columns=list(fmt.columns)).astype("string")


@pytest.fixture
def export_factory() -> ExportFactory:
    return _build_export


@pytest.fixture
def swan_rows() -> list[dict[str, str]]:
    """Swan samples spread over background, current and out-of-window dates."""
    rows: list[dict[str, str]] = []
    sites = {"BLA": "1.0", "NIL": "2.0", "KIN": "3.0", "KMO": "4.0"}
    dates = [
        "2012-07-10",  # too old for the 2019 background window
        "2014-07-10",
        "2015-07-14",
        "2016-07-12",
        "2017-07-11",
        "2018-07-12",  # current
        "2019-01-15",  # current
        "2019-06-04",  # after the 2019 current window
    ]
    for site, base in sites.items():
        for day in dates:
            rows.append({
                "site": site, "date": day, "method": "Surface",
                "tn": base, "tp": "<0.02", "do": "7.5", "salinity": "30",
            })
            rows.append({
                "site": site, "date": day, "method": "Bottom",
                "tn": str(float(base) + 0.5), "tp": "0.05", "do": ">9", "salinity": "33",
            })
            rows.append({
                "site": site, "date": day, "method": "Integrated", "chla": "12.5",
            })
    return rows


@pytest.fixture
def swan_export(export_factory: ExportFactory, swan_rows: list[dict[str, str]]) -> pd.DataFrame:
    return export_factory(swan_rows)


@pytest.fixture
def export_dir(tmp_path: Path, swan_export: pd.DataFrame) -> Path:
    """Directory holding one Swan export workbook."""
    directory = tmp_path / "exports"
    directory.mkdir()
    swan_export.to_excel(directory / "Swan_export_2019.xlsx", index=False, engine="openpyxl")
    return directory
