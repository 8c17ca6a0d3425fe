"""Ingest report persistence."""

from __future__ import annotations

from pathlib import Path

from estuary_report.io import write_json
from estuary_report.models import IngestReport


def ingest_report_filename(code: str) -> str:
    return f"{code}_ingest_report.json"


def write_ingest_report(out_dir: Path, code: str, report: IngestReport) -> Path:
    """Write ``{code}_ingest_report.json`` into *out_dir* and return the path."""
    return write_json(Path(out_dir) / ingest_report_filename(code), report.to_dict())
