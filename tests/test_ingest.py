"""Tests for export normalisation, censored values, zones and periods."""

from __future__ import annotations

import math
from datetime import date
from pathlib import Path

import pandas as pd
import pytest

from estuary_report import NORMALIZED_COLUMNS
from estuary_report.config import CANNING, EXPORT_FORMATS, SWAN
from estuary_report.errors import FormatMismatchError, UnmappedSiteError
from estuary_report.ingest import (
    annual_ingest,
    assign_periods,
    assign_zones,
    combine_exports,
    detect_format,
    ingest_estuary,
    melt_observations,
    normalize_export,
    normalize_methods,
    output_filename,
    parse_dates,
    reporting_periods,
    resolve_censored,
    resolve_censored_series,
    standardize_columns,
)

FORMAT_2021, FORMAT_2016 = EXPORT_FORMATS


# ── Censored values ──────────────────────────────────────────────


@pytest.mark.parametrize(
    ("raw", "expected", "flag"),
    [
        ("<0.02", 0.01, "<"),
        (">5", 5.0, ">"),
        ("0.44", 0.44, ""),
        (" < 0.5 ", 0.25, "<"),
        ("> 12", 12.0, ">"),
        (3, 3.0, ""),
        (1.25, 1.25, ""),
    ],
)
def test_resolve_censored_values(raw: object, expected: float, flag: str) -> None:
    value, got_flag = resolve_censored(raw)

    assert value == pytest.approx(expected)
    assert got_flag == flag


@pytest.mark.parametrize("raw", [None, "", "   ", pd.NA, float("nan")])
def test_resolve_censored_blank_is_nan(raw: object) -> None:
    value, flag = resolve_censored(raw)

    assert math.isnan(value)
    assert flag == ""


@pytest.mark.parametrize("raw", ["abc", "<abc", ">", "1.2.3", "<<1"])
def test_resolve_censored_malformed_raises(raw: str) -> None:
    with pytest.raises(ValueError, match="Unparseable measurement value"):
        resolve_censored(raw)


def test_resolve_censored_is_noop_on_resolved_values() -> None:
    once, _ = resolve_censored("<0.02")
    twice, flag = resolve_censored(once)

    assert twice == once
    assert flag == ""


def test_resolve_censored_series_keeps_index() -> None:
    s = pd.Series(["<0.2", ">3", "1", pd.NA], index=[10, 11, 12, 13], dtype="string")

    values, flags = resolve_censored_series(s)

    assert list(values.index) == [10, 11, 12, 13]
    assert values.iloc[:3].tolist() == pytest.approx([0.1, 3.0, 1.0])
    assert math.isnan(values.iloc[3])
    assert flags.tolist() == ["<", ">", "", ""]


# ── Formats and columns ──────────────────────────────────────────


def test_detect_format_picks_matching_version() -> None:
    assert detect_format(list(FORMAT_2021.columns)).version == "2021"
    assert detect_format(list(FORMAT_2016.columns)).version == "2016"


def test_detect_format_ignores_case_and_whitespace() -> None:
    columns = [f"  {name.upper()} " for name in FORMAT_2021.columns]

    assert detect_format(columns).version == "2021"


def test_detect_format_missing_column_raises_with_names() -> None:
    columns = [c for c in FORMAT_2021.columns if c != "TN (mg/L)"]

    with pytest.raises(FormatMismatchError, match="TN \\(mg/L\\)") as info:
        detect_format(columns)

    assert info.value.missing == ["TN (mg/L)"]


def test_detect_format_accepts_alias_for_missing_column() -> None:
    columns = [c if c != "TN (mg/L)" else "Total N" for c in FORMAT_2021.columns]

    fmt = detect_format(columns, extra_map={"total n": "tn"})

    assert fmt.version == "2021"


def test_standardize_columns_renames_and_drops_unknown(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory([{"site": "BLA", "date": "2019-01-01", "method": "surface", "tn": "1"}])
    raw["Comments"] = "checked"

    out = standardize_columns(raw, FORMAT_2021)

    assert list(out.columns) == ["site", "date", "method", *FORMAT_2021.variables]
    assert out.loc[0, "tn"] == "1"


def test_standardize_columns_rejects_two_sources_for_one_name(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory([{"site": "BLA", "date": "2019-01-01", "method": "surface"}])
    raw["Total N"] = "1"

    with pytest.raises(FormatMismatchError, match="tn \\(source: TN \\(mg/L\\) \\+ Total N\\)"):
        standardize_columns(raw, FORMAT_2021, {"total n": "tn"})


def test_normalize_methods_maps_aliases() -> None:
    s = pd.Series(["Surface", " BOTTOM ", "Depth Integrated", "s"], dtype="string")

    assert normalize_methods(s).tolist() == ["surface", "bottom", "integrated", "surface"]


def test_normalize_methods_unknown_label_raises() -> None:
    s = pd.Series(["Surface", "Mid-depth"], dtype="string")

    with pytest.raises(FormatMismatchError, match="Mid-depth"):
        normalize_methods(s)


def test_parse_dates_handles_iso_and_day_first() -> None:
    s = pd.Series(["2018-07-03 00:00:00", "03/07/2018", "2018-07-03 10:45:00"], dtype="string")

    parsed = parse_dates(s)

    assert parsed.tolist() == [pd.Timestamp("2018-07-03")] * 3


def test_parse_dates_rejects_unparseable() -> None:
    s = pd.Series(["2018-07-03", "someday"], dtype="string")

    with pytest.raises(ValueError, match="1 unparseable sample dates"):
        parse_dates(s)


# ── Zones ────────────────────────────────────────────────────────


def test_assign_zones_maps_every_row_of_a_site() -> None:
    df = pd.DataFrame({"site": ["X1", " x1 ", "Y2", "X1"], "value": [1, 2, 3, 4]})

    out = assign_zones(df, {"X1": "Upper", "Y2": "Lower"})

    assert out.loc[out["site"] == "X1", "zone"].tolist() == ["Upper", "Upper", "Upper"]
    assert out.loc[out["site"] == "Y2", "zone"].tolist() == ["Lower"]


def test_assign_zones_is_deterministic() -> None:
    df = pd.DataFrame({"site": ["BLA", "KIN", "NIL"]})

    first = assign_zones(df, SWAN.sites)
    second = assign_zones(df, SWAN.sites)

    assert first["zone"].tolist() == second["zone"].tolist() == ["Lower", "Upper", "Middle"]


def test_assign_zones_unmapped_site_raises_listing_sites() -> None:
    df = pd.DataFrame({"site": ["BLA", "ZZZ", "QQQ", "ZZZ", None]})

    with pytest.raises(UnmappedSiteError) as info:
        assign_zones(df, SWAN.sites, estuary="Swan")

    assert info.value.sites == ["<blank>", "QQQ", "ZZZ"]
    assert "Swan" in str(info.value)


def test_canning_sites_are_not_swan_sites() -> None:
    df = pd.DataFrame({"site": ["SCB2"]})

    with pytest.raises(UnmappedSiteError):
        assign_zones(df, SWAN.sites)
    assert assign_zones(df, CANNING.sites)["zone"].tolist() == ["Lower"]


# ── Periods ──────────────────────────────────────────────────────


def test_reporting_periods_for_2019() -> None:
    periods = reporting_periods(2019)

    assert periods.current_start == date(2018, 6, 1)
    assert periods.current_end == date(2019, 5, 31)
    assert periods.background_start == date(2013, 6, 1)
    assert periods.background_end == date(2018, 5, 31)


def test_reporting_periods_with_shorter_background() -> None:
    periods = reporting_periods(2020, background_years=2)

    assert periods.current_end == date(2020, 5, 31)
    assert periods.background_start == date(2017, 6, 1)


def test_reporting_periods_rejects_zero_background_years() -> None:
    with pytest.raises(ValueError, match="background_years"):
        reporting_periods(2019, background_years=0)


@pytest.mark.parametrize(
    ("day", "expected"),
    [
        (date(2018, 6, 1), "current"),
        (date(2019, 5, 31), "current"),
        (date(2018, 5, 31), "background"),
        (date(2013, 6, 1), "background"),
        (date(2013, 5, 31), None),
        (date(2019, 6, 1), None),
    ],
)
def test_period_boundaries_are_inclusive_and_disjoint(day: date, expected: str | None) -> None:
    assert reporting_periods(2019).period_of(day) == expected


def test_assign_periods_drops_out_of_window_rows() -> None:
    df = pd.DataFrame({
        "date": pd.to_datetime(["2013-05-31", "2013-06-01", "2018-06-01", "2019-06-01"]),
        "value": [1.0, 2.0, 3.0, 4.0],
    })

    kept, discarded = assign_periods(df, reporting_periods(2019))

    assert discarded == 2
    assert kept["period"].tolist() == ["background", "current"]
    assert kept["value"].tolist() == [2.0, 3.0]


# ── normalize_export ─────────────────────────────────────────────


def test_normalize_export_produces_normalized_columns(swan_export: pd.DataFrame) -> None:
    periods = reporting_periods(2019)

    data, report = normalize_export(swan_export, SWAN, periods)

    assert list(data.columns) == NORMALIZED_COLUMNS
    assert data["zone"].notna().all()
    assert set(data["estuary"]) == {"Swan"}
    assert set(data["method"]) == {"surface", "bottom", "integrated"}
    assert report.format_versions == ["2021"]
    assert report.rows_in == len(swan_export)


def test_normalize_export_counts_and_partition(swan_export: pd.DataFrame) -> None:
    periods = reporting_periods(2019)

    data, report = normalize_export(swan_export, SWAN, periods)

    # 4 sites x 8 dates x 9 measurements; 2 of the dates are out of window
    assert report.observations_in == 288
    assert report.discarded == 72
    assert report.observations_out == len(data) == 216
    assert (data["period"] == "current").sum() == 72
    assert (data["period"] == "background").sum() == 144
    for day, period in zip(data["date"], data["period"]):
        assert periods.period_of(date.fromisoformat(day)) == period
    assert any("Discarded 72 observations" in w for w in report.warnings)


def test_normalize_export_resolves_censored_values(swan_export: pd.DataFrame) -> None:
    data, report = normalize_export(swan_export, SWAN, reporting_periods(2019))

    tp_surface = data[(data["variable"] == "tp") & (data["method"] == "surface")]
    do_bottom = data[(data["variable"] == "do") & (data["method"] == "bottom")]
    assert tp_surface["value"].tolist() == pytest.approx([0.01] * len(tp_surface))
    assert set(tp_surface["censored"]) == {"<"}
    assert do_bottom["value"].tolist() == pytest.approx([9.0] * len(do_bottom))
    assert set(do_bottom["censored"]) == {">"}
    assert report.censored_below == 24
    assert report.censored_above == 24


def test_normalize_export_zone_follows_site(swan_export: pd.DataFrame) -> None:
    data, _ = normalize_export(swan_export, SWAN, reporting_periods(2019))

    zones_per_site = data.groupby("site")["zone"].unique()
    assert {site: list(z) for site, z in zones_per_site.items()} == {
        "BLA": ["Lower"],
        "KIN": ["Upper"],
        "KMO": ["Riverine"],
        "NIL": ["Middle"],
    }


def test_normalize_export_is_sorted(swan_export: pd.DataFrame) -> None:
    data, _ = normalize_export(swan_export, SWAN, reporting_periods(2019))

    keys = list(zip(data["date"], data["site"], data["method"], data["variable"]))
    assert keys == sorted(keys)


def test_normalize_export_legacy_format(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory(
        [{"site": "SAL", "date": "12/07/2018", "method": "Grab sample - Surface", "tn": "<0.5"}],
        FORMAT_2016,
    )

    data, report = normalize_export(raw, CANNING, reporting_periods(2019))

    assert report.format_versions == ["2016"]
    assert data.to_dict("records") == [{
        "estuary": "Canning",
        "site": "SAL",
        "zone": "Lower",
        "date": "2018-07-12",
        "method": "surface",
        "variable": "tn",
        "value": 0.25,
        "censored": "<",
        "period": "current",
    }]


def test_normalize_export_warns_on_rows_without_measurements(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory([
        {"site": "BLA", "date": "2019-01-01", "method": "surface", "tn": "1"},
        {"site": "BLA", "date": "2019-01-02", "method": "surface"},
    ])

    data, report = normalize_export(raw, SWAN, reporting_periods(2019))

    assert len(data) == 1
    assert any("1 sample rows with no measurements" in w for w in report.warnings)


def test_normalize_export_malformed_value_propagates(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory([{"site": "BLA", "date": "2019-01-01", "method": "surface", "tn": "n/a?"}])

    with pytest.raises(ValueError, match="n/a\\?"):
        normalize_export(raw, SWAN, reporting_periods(2019))


def test_normalize_export_unmapped_site_is_fatal(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory([{"site": "NOPE", "date": "2019-01-01", "method": "surface", "tn": "1"}])

    with pytest.raises(UnmappedSiteError, match="NOPE"):
        normalize_export(raw, SWAN, reporting_periods(2019))


# ── ingest_estuary / annual_ingest ───────────────────────────────


def test_output_filename_pattern() -> None:
    assert output_filename("s", 2019) == "s_annual_report_data_for_2019.csv"


def test_ingest_estuary_writes_csv_and_report(export_dir: Path, tmp_path: Path) -> None:
    out = tmp_path / "out"

    result = ingest_estuary(export_dir, 2019, out, SWAN)

    assert result.csv_path == out / "s_annual_report_data_for_2019.csv"
    assert result.report_path == out / "s_ingest_report.json"
    assert result.report.files == ["Swan_export_2019.xlsx"]
    written = pd.read_csv(result.csv_path, keep_default_na=False)
    assert list(written.columns) == NORMALIZED_COLUMNS
    assert len(written) == 216


def test_ingest_estuary_is_byte_identical_across_runs(export_dir: Path, tmp_path: Path) -> None:
    first = ingest_estuary(export_dir, 2019, tmp_path / "a", SWAN)
    second = ingest_estuary(export_dir, 2019, tmp_path / "b", SWAN)

    assert first.csv_path.read_bytes() == second.csv_path.read_bytes()


def test_ingest_estuary_drops_duplicates_across_exports(
    export_dir: Path, swan_export: pd.DataFrame, tmp_path: Path
) -> None:
    swan_export.to_excel(export_dir / "swan_export_copy.xlsx", index=False, engine="openpyxl")

    result = ingest_estuary(export_dir, 2019, tmp_path / "out", SWAN)

    assert result.report.duplicates == 216
    assert result.report.observations_out == 216
    assert any("duplicate observations" in w for w in result.report.warnings)


def test_ingest_estuary_reads_csv_exports(
    tmp_path: Path, swan_export: pd.DataFrame
) -> None:
    src = tmp_path / "exports"
    src.mkdir()
    swan_export.to_csv(src / "swan.csv", index=False)

    result = ingest_estuary(src, 2019, tmp_path / "out", SWAN)

    assert result.report.observations_out == 216


def test_ingest_estuary_without_matching_files_raises(export_dir: Path, tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="No Canning export files"):
        ingest_estuary(export_dir, 2019, tmp_path / "out", CANNING)


def test_ingest_estuary_format_error_names_file(
    tmp_path: Path, swan_export: pd.DataFrame
) -> None:
    src = tmp_path / "exports"
    src.mkdir()
    swan_export.drop(columns=["DO (mg/L)"]).to_excel(
        src / "swan_bad.xlsx", index=False, engine="openpyxl"
    )

    with pytest.raises(FormatMismatchError, match="swan_bad.xlsx") as info:
        ingest_estuary(src, 2019, tmp_path / "out", SWAN)

    assert "DO (mg/L)" in info.value.missing


def test_annual_ingest_runs_both_estuaries(
    export_dir: Path, export_factory, tmp_path: Path  # type: ignore[no-untyped-def]
) -> None:
    canning = export_factory([
        {"site": "KEN", "date": "2018-09-01", "method": "surface", "tn": "0.9"},
        {"site": "NIC", "date": "2016-09-01", "method": "bottom", "tn": "1.1"},
    ])
    canning.to_excel(export_dir / "canning_2019.xlsx", index=False, engine="openpyxl")

    results = annual_ingest(export_dir, 2019, tmp_path / "out")

    assert set(results) == {"s", "c"}
    assert results["c"].csv_path.name == "c_annual_report_data_for_2019.csv"
    assert results["c"].report.observations_out == 2
    assert set(results["c"].data["zone"]) == {"Middle", "Upper"}


def test_melt_observations_drops_blank_cells() -> None:
    df = pd.DataFrame({
        "site": ["BLA", "NIL"],
        "tn": pd.array(["1.2", None], dtype="string"),
        "tp": pd.array(["  ", "<0.02"], dtype="string"),
    })

    long = melt_observations(df, ["tn", "tp"])

    assert list(zip(long["site"], long["variable"], long["raw_value"])) == [
        ("BLA", "tn", "1.2"),
        ("NIL", "tp", "<0.02"),
    ]


def test_combine_exports_without_current_data_warns(export_factory) -> None:  # type: ignore[no-untyped-def]
    raw = export_factory([{"site": "BLA", "date": "2015-08-01", "method": "surface", "tn": "1"}])
    part = normalize_export(raw, SWAN, reporting_periods(2019))

    data, report = combine_exports([part, part], SWAN, 2019)

    assert len(data) == 1
    assert report.duplicates == 1
    assert report.observations_in == 2
    assert "No current-period observations after ingest" in report.warnings


def test_detect_format_names_the_closest_format() -> None:
    columns = [c for c in FORMAT_2016.columns if c != "Salinity_ppt"]

    with pytest.raises(FormatMismatchError, match="closest: 2016") as info:
        detect_format(columns)

    assert info.value.missing == ["Salinity_ppt"]


def test_detect_format_without_formats_raises() -> None:
    with pytest.raises(ValueError, match="No export formats"):
        detect_format(list(FORMAT_2021.columns), formats=())


def test_ingest_estuary_accepts_single_matching_file(export_dir: Path, tmp_path: Path) -> None:
    result = ingest_estuary(export_dir / "Swan_export_2019.xlsx", 2019, tmp_path / "out", SWAN)

    assert result.report.files == ["Swan_export_2019.xlsx"]
    assert result.report.observations_out == 216


def test_ingest_estuary_rejects_single_file_of_another_estuary(
    export_dir: Path, tmp_path: Path
) -> None:
    out = tmp_path / "out"

    with pytest.raises(FileNotFoundError, match="is not a Canning export"):
        ingest_estuary(export_dir / "Swan_export_2019.xlsx", 2019, out, CANNING)

    assert not (out / "c_annual_report_data_for_2019.csv").exists()
