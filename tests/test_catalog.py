"""Tests for the package catalog."""
import pytest

from premium_bot import catalog
from premium_bot.errors import UnknownPackage


class TestCatalog:
    """Test package lookup and the amount policy."""

    def test_get_package(self):
        """Test looking up the 30 day package."""
        package = catalog.get_package("2")
        assert package.name == "Paket 30 Hari"
        assert package.price_amount == 15000
        assert package.price_label == "Rp 15.000"
        assert package.validity_days == 30
        assert package.highlight is True

    def test_get_package_accepts_int(self):
        """Test that numeric ids are normalized."""
        assert catalog.get_package(1).validity_days == 7

    def test_get_package_unknown(self):
        """Test that an unknown id raises UnknownPackage."""
        with pytest.raises(UnknownPackage):
            catalog.get_package("9")

    def test_list_packages_order(self):
        """Test packages are listed in display order."""
        assert [package.id for package in catalog.list_packages()] == ["1", "2"]

    def test_format_amount(self):
        """Test rupiah labels use dot separators."""
        assert catalog.format_amount(5000) == "Rp 5.000"
        assert catalog.format_amount(1500000) == "Rp 1.500.000"
        assert catalog.format_amount(500) == "Rp 500"


class TestAmountPolicy:
    """Test is_amount_accepted."""

    def test_exact_amount_accepted(self):
        assert catalog.is_amount_accepted(15000, 15000) is True

    def test_overpayment_accepted(self):
        assert catalog.is_amount_accepted(20000, 15000) is True

    def test_underpayment_rejected(self):
        """Test that one rupiah short is rejected under the exact policy."""
        assert catalog.is_amount_accepted(14999, 15000) is False
        assert catalog.is_amount_accepted(1000, 15000) is False

    def test_tolerance(self):
        """Test a configured tolerance accepts small shortfalls only."""
        assert catalog.is_amount_accepted(14500, 15000, tolerance=500) is True
        assert catalog.is_amount_accepted(14499, 15000, tolerance=500) is False

    def test_negative_tolerance(self):
        with pytest.raises(ValueError):
            catalog.is_amount_accepted(15000, 15000, tolerance=-1)
