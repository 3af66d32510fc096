"""Static catalog of purchasable premium packages.

Prices are stored in the minor currency unit (rupiah has no subunit in
practice, so ``15000`` means Rp 15.000).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from .errors import UnknownPackage


@dataclass(frozen=True)
class Package:
    """A purchasable plan."""

    id: str
    name: str
    price_label: str
    price_amount: int
    validity_days: int
    highlight: bool = False


def format_amount(amount: int) -> str:
    """Render an amount the way the buyers read it, e.g. ``Rp 15.000``.

    Parameters
    ----------
    amount : int
        Amount in the minor currency unit

    Returns
    -------
    str
        Label with dot thousands separators
    """
    sign = "-" if amount < 0 else ""
    return f"Rp {sign}{abs(int(amount)):,}".replace(",", ".")


def _package(package_id: str, name: str, amount: int, days: int, highlight: bool = False) -> Package:
    return Package(
        id=package_id,
        name=name,
        price_label=format_amount(amount),
        price_amount=amount,
        validity_days=days,
        highlight=highlight,
    )


PACKAGES: Dict[str, Package] = {
    "1": _package("1", "Paket 7 Hari", 5000, 7),
    "2": _package("2", "Paket 30 Hari", 15000, 30, highlight=True),
}


def get_package(package_id: str) -> Package:
    """Look up a package by id.

    Raises
    ------
    UnknownPackage
        If the id is not part of the catalog.
    """
    try:
        return PACKAGES[str(package_id)]
    except KeyError:
        raise UnknownPackage(f"unknown package {package_id!r}") from None


def list_packages() -> List[Package]:
    """Packages in display order."""

    return [PACKAGES[key] for key in sorted(PACKAGES, key=int)]


def is_amount_accepted(claimed: int, price: int, tolerance: int = 0) -> bool:
    """Decide whether a claimed payment covers the package price.

    A tolerance of zero is the exact policy: the claim must be at least the
    price. A positive tolerance accepts claims short by up to that amount.
    """
    if tolerance < 0:
        raise ValueError("tolerance must not be negative")
    return claimed >= price - tolerance
