"""Tests for the static catalog and directory (prepaid_kernel.domain.reference)."""

from decimal import Decimal
from uuid import UUID

import pytest

from prepaid_kernel.domain.reference import (
    CatalogPort,
    DirectoryPort,
    PackageInfo,
    StaticReferenceData,
)

LOCATION = "6f1c9a52-3b1e-4c55-9a8e-0c2d4f7b1a01"
PACKAGE = "0b7d2e11-8c4a-4f0e-b2d1-5e6f7a8b9c02"
CUSTOMER = "a3e4f5d6-1b2c-4d3e-8f9a-0b1c2d3e4f03"
TEACHER = "c9d8e7f6-5a4b-4c3d-9e2f-1a0b9c8d7e04"

SEED_YAML = f"""
locations:
  - id: {LOCATION}
    name: Riverside
packages:
  - id: {PACKAGE}
    name: 24 lesson package
    total_lessons: 24
    total_price: "2400.00"
    validity_days: 180
    on_sale: false
customers:
  - id: {CUSTOMER}
    name: Chen Family
teachers:
  - id: {TEACHER}
    name: Mr. Ortiz
    location_ids: [{LOCATION}]
"""


class TestFromYaml:

    def test_seed_file_populates_every_port(self, tmp_path):
        path = tmp_path / "reference.yaml"
        path.write_text(SEED_YAML)

        ref = StaticReferenceData.from_yaml(path)

        package = ref.get_package(UUID(PACKAGE))
        assert package.total_price == Decimal("2400.00")
        assert package.on_sale is False
        assert ref.get_customer(UUID(CUSTOMER)).name == "Chen Family"
        assert ref.get_teacher(UUID(TEACHER)).location_ids == (UUID(LOCATION),)
        assert ref.get_location(UUID(LOCATION)).active is True

    def test_empty_file_gives_empty_data(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert StaticReferenceData.from_yaml(path).packages == {}

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            StaticReferenceData.from_yaml(path)


class TestStaticReferenceData:

    def test_satisfies_both_ports(self):
        ref = StaticReferenceData()
        assert isinstance(ref, CatalogPort)
        assert isinstance(ref, DirectoryPort)

    def test_unknown_ids_return_none(self):
        ref = StaticReferenceData()
        assert ref.get_package(UUID(PACKAGE)) is None
        assert ref.get_location(UUID(LOCATION)) is None

    def test_package_price_must_be_decimal(self):
        with pytest.raises(TypeError):
            PackageInfo(id=UUID(PACKAGE), name="x", total_lessons=1, total_price=100, validity_days=1)
