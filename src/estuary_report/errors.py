"""Exceptions raised by the ingest and report stages."""

from __future__ import annotations

from collections.abc import Iterable


class FormatMismatchError(ValueError):
    """The export layout does not match any known format version."""

    def __init__(self, message: str, missing: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.missing = sorted(missing)


class UnmappedSiteError(ValueError):
    """One or more site identifiers have no management zone."""

    def __init__(self, estuary: str, sites: Iterable[str]) -> None:
        self.estuary = estuary
        self.sites = sorted(set(sites))
        super().__init__(
            f"Sites with no {estuary} management zone: {', '.join(self.sites)}"
        )


class MissingSliceError(LookupError):
    """A zone/method/variable slice has no data and the policy forbids gaps."""
