from typing import Optional, List, Dict, Any

from app.schemas.response import CamelModel


class DiagnosticTestSummary(CamelModel):
    id: str
    name: str
    category: Optional[str] = None
    price: float
    duration: Optional[str] = None
    preparation: Optional[str] = None


class HealthPackageSummary(CamelModel):
    id: str
    name: str
    price: float
    discount: Optional[float] = None
    tests: List[DiagnosticTestSummary] = []


class LabSummary(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    contact: Optional[Dict[str, Any]] = None
    image: Optional[str] = None


class LabResponse(LabSummary):
    operating_hours: Optional[Dict[str, Any]] = None
    facilities: Optional[List[str]] = None
    available_tests: List[DiagnosticTestSummary] = []
    available_packages: List[HealthPackageSummary] = []
