"""
Catalog Domain Models

Labs and the tests and packages they offer. The booking core reads
availability and prices from here; catalog editing lives elsewhere.
"""

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Float, ForeignKey, JSON, Table
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.infrastructure.database import Base
import uuid


def gen_uuid():
    return str(uuid.uuid4())


lab_available_tests = Table(
    "lab_available_tests",
    Base.metadata,
    Column("lab_id", String(36), ForeignKey("labs.id", ondelete="CASCADE"), primary_key=True),
    Column("test_id", String(36), ForeignKey("diagnostic_tests.id", ondelete="CASCADE"), primary_key=True),
)

lab_available_packages = Table(
    "lab_available_packages",
    Base.metadata,
    Column("lab_id", String(36), ForeignKey("labs.id", ondelete="CASCADE"), primary_key=True),
    Column("package_id", String(36), ForeignKey("health_packages.id", ondelete="CASCADE"), primary_key=True),
)

package_tests = Table(
    "package_tests",
    Base.metadata,
    Column("package_id", String(36), ForeignKey("health_packages.id", ondelete="CASCADE"), primary_key=True),
    Column("test_id", String(36), ForeignKey("diagnostic_tests.id", ondelete="CASCADE"), primary_key=True),
)


class DiagnosticTest(Base):
    __tablename__ = "diagnostic_tests"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    # blood, urine, imaging, cardiology, pathology
    category = Column(String(32), nullable=False, default="blood")
    price = Column(Float, nullable=False)
    duration = Column(String(50))
    preparation = Column(Text)
    # [{label, unit, referenceRange, type, required}]
    result_fields = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class HealthPackage(Base):
    __tablename__ = "health_packages"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    discount = Column(Float, default=0.0)
    duration = Column(String(50))
    benefits = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    tests = relationship("DiagnosticTest", secondary=package_tests, lazy="selectin")


class Lab(Base):
    __tablename__ = "labs"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    # {street, city, state, zipCode, country}
    address = Column(JSON, default=dict)
    # {phone, email, website}
    contact = Column(JSON, default=dict)
    operating_hours = Column(JSON, default=dict)
    facilities = Column(JSON, default=list)
    image = Column(String(500))
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    available_tests = relationship("DiagnosticTest", secondary=lab_available_tests, lazy="selectin")
    available_packages = relationship("HealthPackage", secondary=lab_available_packages, lazy="selectin")

    def offers_test(self, test_id: str) -> bool:
        return any(test.id == test_id for test in self.available_tests)

    def offers_package(self, package_id: str) -> bool:
        return any(package.id == package_id for package in self.available_packages)
