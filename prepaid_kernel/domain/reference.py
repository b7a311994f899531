"""
Reference data ports (``prepaid_kernel.domain.reference``).

Responsibility
--------------
Read-only views of the catalog (packages, customers) and directory
(teachers, locations) that the ledger validates against.  The data is owned
by external services; the ledger only reads it through these ports.

Architecture position
---------------------
**Kernel domain layer** -- frozen value objects and Protocols.  ZERO I/O,
except ``StaticReferenceData.from_yaml`` which reads one seed file.
``StaticReferenceData`` is an in-process implementation for development and
tests.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

import yaml


@dataclass(frozen=True)
class PackageInfo:
    """A sellable block of lessons."""

    id: UUID
    name: str
    total_lessons: int
    total_price: Decimal
    validity_days: int
    on_sale: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.total_price, Decimal):
            raise TypeError("total_price must be Decimal")
        if self.total_lessons <= 0:
            raise ValueError("total_lessons must be positive")
        if self.total_price < 0:
            raise ValueError("total_price cannot be negative")
        if self.validity_days <= 0:
            raise ValueError("validity_days must be positive")

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        data["id"] = str(self.id)
        data["total_price"] = str(self.total_price)
        return data


@dataclass(frozen=True)
class CustomerInfo:
    id: UUID
    name: str
    phone: str | None = None

    def snapshot(self) -> dict[str, Any]:
        return {"id": str(self.id), "name": self.name, "phone": self.phone}


@dataclass(frozen=True)
class TeacherInfo:
    id: UUID
    name: str
    active: bool = True
    location_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class LocationInfo:
    id: UUID
    name: str
    active: bool = True


@runtime_checkable
class CatalogPort(Protocol):
    """Catalog service: packages and customers by id."""

    def get_package(self, package_id: UUID) -> PackageInfo | None:
        ...

    def get_customer(self, customer_id: UUID) -> CustomerInfo | None:
        ...


@runtime_checkable
class DirectoryPort(Protocol):
    """Directory service: teachers and locations by id."""

    def get_teacher(self, teacher_id: UUID) -> TeacherInfo | None:
        ...

    def get_location(self, location_id: UUID) -> LocationInfo | None:
        ...


@dataclass
class StaticReferenceData:
    """Dict-backed CatalogPort and DirectoryPort."""

    packages: dict[UUID, PackageInfo] = field(default_factory=dict)
    customers: dict[UUID, CustomerInfo] = field(default_factory=dict)
    teachers: dict[UUID, TeacherInfo] = field(default_factory=dict)
    locations: dict[UUID, LocationInfo] = field(default_factory=dict)

    def get_package(self, package_id: UUID) -> PackageInfo | None:
        return self.packages.get(package_id)

    def get_customer(self, customer_id: UUID) -> CustomerInfo | None:
        return self.customers.get(customer_id)

    def get_teacher(self, teacher_id: UUID) -> TeacherInfo | None:
        return self.teachers.get(teacher_id)

    def get_location(self, location_id: UUID) -> LocationInfo | None:
        return self.locations.get(location_id)

    def add_package(self, package: PackageInfo) -> PackageInfo:
        self.packages[package.id] = package
        return package

    def add_customer(self, customer: CustomerInfo) -> CustomerInfo:
        self.customers[customer.id] = customer
        return customer

    def add_teacher(self, teacher: TeacherInfo) -> TeacherInfo:
        self.teachers[teacher.id] = teacher
        return teacher

    def add_location(self, location: LocationInfo) -> LocationInfo:
        self.locations[location.id] = location
        return location

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StaticReferenceData:
        """Build from a parsed document with packages/customers/teachers/locations lists."""
        ref = cls()
        for item in data.get("locations", []):
            ref.add_location(LocationInfo(
                id=UUID(str(item["id"])),
                name=item["name"],
                active=item.get("active", True),
            ))
        for item in data.get("packages", []):
            ref.add_package(PackageInfo(
                id=UUID(str(item["id"])),
                name=item["name"],
                total_lessons=int(item["total_lessons"]),
                total_price=Decimal(str(item["total_price"])),
                validity_days=int(item["validity_days"]),
                on_sale=item.get("on_sale", True),
            ))
        for item in data.get("customers", []):
            ref.add_customer(CustomerInfo(
                id=UUID(str(item["id"])),
                name=item["name"],
                phone=item.get("phone"),
            ))
        for item in data.get("teachers", []):
            ref.add_teacher(TeacherInfo(
                id=UUID(str(item["id"])),
                name=item["name"],
                active=item.get("active", True),
                location_ids=tuple(UUID(str(x)) for x in item.get("location_ids", ())),
            ))
        return ref

    @classmethod
    def from_yaml(cls, path: str | Path) -> StaticReferenceData:
        """Seed from a YAML file laid out like the ``from_dict`` document."""
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: reference data must be a mapping")
        return cls.from_dict(data)
