from __future__ import annotations

import json
from pathlib import Path

from estuary_report.models import IngestReport
from estuary_report.qc import write_ingest_report


def test_write_ingest_report_writes_expected_contract(tmp_path: Path) -> None:
    report = IngestReport(
        estuary="Canning",
        reporting_year=2019,
        format_versions=["2021"],
        files=["canning.xlsx"],
        rows_in=3,
        observations_in=9,
        observations_out=6,
        discarded=3,
        censored_below=1,
        warnings=["warn"],
    )

    out = write_ingest_report(tmp_path, "c", report)

    assert out == tmp_path / "c_ingest_report.json"
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data == {
        "censored_above": 0,
        "censored_below": 1,
        "discarded": 3,
        "duplicates": 0,
        "estuary": "Canning",
        "files": ["canning.xlsx"],
        "format_versions": ["2021"],
        "observations_in": 9,
        "observations_out": 6,
        "reporting_year": 2019,
        "rows_in": 3,
        "warnings": ["warn"],
    }
