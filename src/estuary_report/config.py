"""Static configuration tables — export formats, sites, zones, variable groups.

Every table here is plain data. Functions in the ingest and report stages take
the table they need as an argument; the module-level constants are defaults.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

METHODS: tuple[str, ...] = ("surface", "bottom", "integrated")

DEFAULT_BACKGROUND_YEARS = 5
BAND_QUANTILES: tuple[float, float, float] = (0.1, 0.5, 0.9)

# Reporting year runs June..May.
REPORTING_YEAR_START_MONTH = 6


def normalize_header(name: object) -> str:
    """Collapse whitespace and case-fold a raw spreadsheet header."""
    return " ".join(str(name).split()).casefold()


# ── Export formats ───────────────────────────────────────────────


@dataclass(frozen=True)
class ExportFormat:
    """Renaming table for one version of the portal's cross-tab export."""

    version: str
    id_columns: Mapping[str, str]
    variable_columns: Mapping[str, str]

    @property
    def columns(self) -> dict[str, str]:
        """Raw header -> standard name, id columns first."""
        return {**self.id_columns, **self.variable_columns}

    @property
    def variables(self) -> list[str]:
        return list(self.variable_columns.values())


EXPORT_FORMATS: tuple[ExportFormat, ...] = (
    ExportFormat(
        version="2021",
        id_columns=MappingProxyType({
            "Site": "site",
            "Date": "date",
            "Method": "method",
        }),
        variable_columns=MappingProxyType({
            "TN (mg/L)": "tn",
            "NH3-N (mg/L)": "nh3_n",
            "NOx-N (mg/L)": "nox_n",
            "DON (mg/L)": "don",
            "TP (mg/L)": "tp",
            "FRP (mg/L)": "frp",
            "DOP (mg/L)": "dop",
            "SiO2-Si (mg/L)": "sio2",
            "Chl a (ug/L)": "chla",
            "DO (mg/L)": "do",
            "Salinity (ppt)": "salinity",
            "Temperature (C)": "temperature",
            "pH": "ph",
        }),
    ),
    ExportFormat(
        version="2016",
        id_columns=MappingProxyType({
            "Program Site Ref": "site",
            "Collect Date": "date",
            "Collection Method": "method",
        }),
        variable_columns=MappingProxyType({
            "N (tot) {TN, pTN}_mg/L": "tn",
            "NH3-N/NH4-N (sol)_mg/L": "nh3_n",
            "N (sum sol ox) {NOx-N, TON}_mg/L": "nox_n",
            "N (sum sol org) {DON}_mg/L": "don",
            "P (tot) {TP, pTP}_mg/L": "tp",
            "PO4-P (sol react) {SRP, FRP}_mg/L": "frp",
            "P (sum sol org) {DOP}_mg/L": "dop",
            "SiO2-Si (sol react)_mg/L": "sio2",
            "Chlorophyll a (by vol)_ug/L": "chla",
            "O2-{DO conc}_mg/L": "do",
            "Salinity_ppt": "salinity",
            "Temperature_deg C": "temperature",
            "pH_no units": "ph",
        }),
    ),
)

METHOD_ALIASES: Mapping[str, str] = MappingProxyType({
    "surface": "surface",
    "s": "surface",
    "surface grab": "surface",
    "grab sample - surface": "surface",
    "bottom": "bottom",
    "b": "bottom",
    "bottom grab": "bottom",
    "grab sample - bottom": "bottom",
    "integrated": "integrated",
    "i": "integrated",
    "depth integrated": "integrated",
    "integrated over depth": "integrated",
})


# ── Variables ────────────────────────────────────────────────────


@dataclass(frozen=True)
class VariableSpec:
    code: str
    label: str
    units: str
    methods: tuple[str, ...] = ("surface", "bottom")

    @property
    def axis_label(self) -> str:
        return f"{self.label} ({self.units})" if self.units else self.label


VARIABLES: Mapping[str, VariableSpec] = MappingProxyType({
    var.code: var
    for var in (
        VariableSpec("tn", "Total nitrogen", "mg/L"),
        VariableSpec("nh3_n", "Ammonium nitrogen", "mg/L"),
        VariableSpec("nox_n", "Nitrate + nitrite nitrogen", "mg/L"),
        VariableSpec("don", "Dissolved organic nitrogen", "mg/L"),
        VariableSpec("tp", "Total phosphorus", "mg/L"),
        VariableSpec("frp", "Filterable reactive phosphorus", "mg/L"),
        VariableSpec("dop", "Dissolved organic phosphorus", "mg/L"),
        VariableSpec("sio2", "Silica", "mg/L"),
        VariableSpec("chla", "Chlorophyll a", "ug/L", methods=("integrated",)),
        VariableSpec("do", "Dissolved oxygen", "mg/L"),
        VariableSpec("salinity", "Salinity", "ppt"),
        VariableSpec("temperature", "Temperature", "deg C"),
        VariableSpec("ph", "pH", ""),
    )
})


@dataclass(frozen=True)
class VariableGroup:
    """A fixed set of variables reported together in one panel and table.

    ``extra_zone`` adds one more row of sub-plots for a zone that the
    estuary's other groups do not show.
    """

    name: str
    variables: tuple[str, ...]
    extra_zone: str | None = None

    @property
    def is_multi(self) -> bool:
        return len(self.variables) > 1


# ── Estuaries ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Estuary:
    code: str
    name: str
    file_pattern: str
    sites: Mapping[str, str]
    zones: tuple[str, ...]
    groups: tuple[VariableGroup, ...] = field(default_factory=tuple)

    @property
    def panels_dir(self) -> str:
        return f"{self.code}_panels"

    @property
    def tables_dir(self) -> str:
        return f"{self.code}_tables"

    def group(self, name: str) -> VariableGroup:
        for grp in self.groups:
            if grp.name == name:
                return grp
        raise KeyError(f"{self.name} has no variable group {name!r}")

    def zones_for(self, group: VariableGroup) -> tuple[str, ...]:
        if group.extra_zone and group.extra_zone not in self.zones:
            return (*self.zones, group.extra_zone)
        return self.zones


_NITROGEN = ("tn", "nh3_n", "nox_n", "don")
_PHOSPHORUS = ("tp", "frp", "dop")

SWAN = Estuary(
    code="s",
    name="Swan",
    file_pattern="*swan*",
    sites=MappingProxyType({
        "BLA": "Lower",
        "ARM": "Lower",
        "HEA": "Lower",
        "NAR": "Lower",
        "NIL": "Middle",
        "STJ": "Middle",
        "MAY": "Middle",
        "RON": "Middle",
        "KIN": "Upper",
        "SUC": "Upper",
        "WMP": "Upper",
        "MSB": "Upper",
        "KMO": "Riverine",
        "JBC": "Riverine",
        "VIT": "Riverine",
        "POL": "Riverine",
    }),
    zones=("Lower", "Middle", "Upper"),
    groups=(
        VariableGroup("group1", _NITROGEN),
        VariableGroup("group2", _PHOSPHORUS),
        VariableGroup("group3", ("chla",), extra_zone="Riverine"),
        VariableGroup("group4", ("do",)),
        VariableGroup("group5", ("salinity",)),
        VariableGroup("group6", ("temperature",)),
        VariableGroup("group7", ("sio2",)),
        VariableGroup("group8", ("ph",)),
    ),
)

CANNING = Estuary(
    code="c",
    name="Canning",
    file_pattern="*canning*",
    sites=MappingProxyType({
        "SCB2": "Lower",
        "SAL": "Lower",
        "RIV": "Lower",
        "CASMID": "Middle",
        "KEN": "Middle",
        "BAC": "Middle",
        "NIC": "Upper",
        "ELL": "Upper",
    }),
    zones=("Lower", "Middle", "Upper"),
    groups=(
        VariableGroup("group1", _NITROGEN),
        VariableGroup("group2", _PHOSPHORUS),
        VariableGroup("group3", ("chla",)),
        VariableGroup("group4", ("do",)),
        VariableGroup("group5", ("salinity",)),
        VariableGroup("group6", ("temperature",)),
        VariableGroup("group7", ("ph",)),
    ),
)

ESTUARIES: Mapping[str, Estuary] = MappingProxyType({
    "swan": SWAN,
    "canning": CANNING,
})


# ── Rendering ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Colours:
    """Point and ribbon colours per sampling method."""

    surface: str = "blue"
    bottom: str = "red"
    chlorophyll: str = "darkgreen"

    def for_method(self, method: str) -> str:
        if method == "surface":
            return self.surface
        if method == "bottom":
            return self.bottom
        if method == "integrated":
            return self.chlorophyll
        raise ValueError(f"Unknown sampling method: {method!r}")
