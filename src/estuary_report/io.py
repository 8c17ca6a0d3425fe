"""I/O helpers — find and load export files, write CSV and JSON artifacts."""

from __future__ import annotations

import fnmatch
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd

from estuary_report.utils import write_text_atomic

SUPPORTED_SUFFIXES: tuple[str, ...] = (".csv", ".xlsx", ".xlsm", ".xltx", ".xltm", ".xls")

_EXCEL_ENGINES: dict[str, str] = {
    ".xlsx": "openpyxl",
    ".xlsm": "openpyxl",
    ".xltx": "openpyxl",
    ".xltm": "openpyxl",
    ".xls": "xlrd",
}
_CSV_ENCODINGS: tuple[str, ...] = ("utf-8-sig", "utf-8", "latin-1")

# ── Loading ──────────────────────────────────────────────────────


def is_export_file(path: Path, pattern: str) -> bool:
    """True if *path* names a readable export matching *pattern* (case-insensitive).

    Excel lock files (``~$...``) never match.
    """
    name = Path(path).name
    return (
        not name.startswith("~$")
        and Path(name).suffix.lower() in SUPPORTED_SUFFIXES
        and fnmatch.fnmatch(name.lower(), pattern.lower())
    )


def find_export_files(input_dir: Path, pattern: str) -> list[Path]:
    """Return export files in *input_dir* whose name matches *pattern*, sorted."""
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    return sorted(
        path for path in input_dir.iterdir() if path.is_file() and is_export_file(path, pattern)
    )


def _read_csv_export(path: Path) -> pd.DataFrame:
    # separator is sniffed; resaved copies often use ";"
    last_exc: Exception | None = None
    for encoding in _CSV_ENCODINGS:
        try:
            return pd.read_csv(
                path,
                dtype="string",
                sep=None,
                engine="python",
                encoding=encoding,
                encoding_errors="strict",
                skip_blank_lines=True,
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            last_exc = exc
    raise ValueError(
        f"Could not read CSV export {path.name} (decode or parse failed)"
    ) from last_exc


def _read_excel_export(path: Path, engine: str) -> pd.DataFrame:
    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    try:
        return read_excel(path, sheet_name=0, engine=engine, dtype="string")
    except ImportError as exc:
        raise ValueError(
            f"Reading {path.name} needs the {engine!r} package. "
            "Convert the export to .xlsx or install the 'xls' extra."
        ) from exc


def load_table(path: Path) -> pd.DataFrame:
    """Load one cross-tab export as an all-text DataFrame.

    Cells stay text so censored values such as ``<0.02`` survive until they
    are resolved, and Excel date cells come back as ISO date text. Rows
    with every cell blank are dropped.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If *path* is not a file, the extension is not supported, or the
        file cannot be decoded/parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Export file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Export path is not a file: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = _read_csv_export(path)
    elif suffix in _EXCEL_ENGINES:
        df = _read_excel_export(path, _EXCEL_ENGINES[suffix])
    else:
        raise ValueError(
            f"Unsupported export type: {suffix!r}. Use {', '.join(SUPPORTED_SUFFIXES)}"
        )
    return df.dropna(how="all").reset_index(drop=True)


# ── Writing ──────────────────────────────────────────────────────


def write_csv(path: Path, df: pd.DataFrame) -> Path:
    """Write *df* without its index, atomically and with stable float text."""
    payload = df.to_csv(index=False, lineterminator="\n", float_format="%.10g")
    return write_text_atomic(Path(path), payload)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    return write_text_atomic(Path(path), payload)
