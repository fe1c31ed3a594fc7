import os
import tempfile

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-labmate360")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="labmate-uploads-"))

from datetime import datetime, timedelta
from functools import lru_cache
from types import SimpleNamespace
from typing import AsyncGenerator, Dict, Any, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api import deps
from app.core.permissions import AuthorizationEngine, Caller
from app.core.security import create_access_token, get_password_hash
from app.domain.bookings.payments import PaymentService
from app.domain.bookings.service import BookingService
from app.domain.catalog.models import Lab, DiagnosticTest, HealthPackage
from app.domain.identity.models import User, UserRole
from app.domain.identity.repository import UserRepository
from app.domain.identity.service import build_token_claims
from app.infrastructure.database import get_db, Base, import_models
from app.infrastructure.file_store import StoredFile
from app.infrastructure.payment_gateway import GatewayOrder, compute_signature

# Fixed "now" for service-level tests
NOW = datetime(2026, 3, 2, 9, 0, 0)
GATEWAY_SECRET = "rzp_test_secret"
TEST_PASSWORD = "secret123"


class FakeGateway:
    """Gateway double that signs with a known secret"""

    def __init__(self):
        self.orders: List[Dict[str, Any]] = []

    async def create_order(self, amount: int, currency: str, receipt: str, notes=None) -> GatewayOrder:
        order = GatewayOrder(
            id=f"order_{len(self.orders) + 1}", amount=amount, currency=currency, receipt=receipt, status="created"
        )
        self.orders.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return compute_signature(GATEWAY_SECRET, order_id, payment_id) == signature

    @staticmethod
    def sign(order_id: str, payment_id: str) -> str:
        return compute_signature(GATEWAY_SECRET, order_id, payment_id)


class RecordingNotifier:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(self, template: str, to: str, variables: Dict[str, Any]) -> bool:
        self.sent.append({"template": template, "to": to, "variables": variables})
        return True

    def templates(self) -> List[str]:
        return [item["template"] for item in self.sent]


class InMemoryFileStore:
    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    async def save(self, content: bytes, extension: str, content_type: Optional[str] = None) -> StoredFile:
        path = f"uploads/reports/reportFile-{len(self.files) + 1}{extension}"
        self.files[path] = content
        return StoredFile(path=path)

    async def delete(self, stored: StoredFile) -> None:
        self.files.pop(stored.path, None)
        self.deleted.append(stored.path)


@pytest.fixture(scope="function")
async def test_engine():
    import_models()
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database session for each test."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def file_store() -> InMemoryFileStore:
    return InMemoryFileStore()


@pytest.fixture
def authz(db_session: AsyncSession) -> AuthorizationEngine:
    return AuthorizationEngine(UserRepository(db_session))


@pytest.fixture
def booking_service(db_session, authz, notifier, file_store) -> BookingService:
    return BookingService(db_session, authz, notifier, file_store, clock=lambda: NOW)


@pytest.fixture
def payment_service(db_session, gateway, authz, notifier) -> PaymentService:
    return PaymentService(db_session, gateway, authz, notifier, clock=lambda: NOW)


@lru_cache(maxsize=1)
def _password_hash() -> str:
    return get_password_hash(TEST_PASSWORD)


async def _add_user(
    db: AsyncSession,
    email: str,
    role: UserRole,
    assigned_lab_id: Optional[str] = None,
    **extra
) -> User:
    user = User(
        email=email,
        first_name=email.split("@")[0].title(),
        last_name="Tester",
        role=role,
        assigned_lab_id=assigned_lab_id,
        **extra
    )
    user.password_hash = _password_hash()
    db.add(user)
    return user


@pytest.fixture
async def seed(db_session: AsyncSession) -> SimpleNamespace:
    """Two active labs, one inactive lab, a small catalog and one user per role."""
    cbc = DiagnosticTest(name="Complete Blood Count", description="CBC", category="blood", price=500.0)
    lipid = DiagnosticTest(name="Lipid Profile", description="Cholesterol panel", category="blood", price=800.0)
    xray = DiagnosticTest(name="Chest X-Ray", description="PA view", category="radiology", price=650.0)
    retired = DiagnosticTest(name="Retired Test", description="", price=100.0, is_active=False)
    wellness = HealthPackage(name="Basic Wellness", description="CBC and lipids", price=1100.0, tests=[cbc, lipid])

    lab_a = Lab(
        name="Alpha Diagnostics",
        description="Lab A",
        address={"street": "1 Main Rd", "city": "Kochi", "state": "Kerala", "pincode": "682001"},
        contact={"phone": "0484000000", "email": "alpha@labs.test"},
        available_tests=[cbc, lipid, retired],
        available_packages=[wellness],
    )
    lab_b = Lab(
        name="Beta Labs",
        description="Lab B",
        address={"city": "Chennai"},
        available_tests=[cbc, xray],
    )
    closed_lab = Lab(name="Closed Lab", description="Lab C", address={"city": "Kochi"}, is_active=False,
                     available_tests=[cbc])
    db_session.add_all([cbc, lipid, xray, retired, wellness, lab_a, lab_b, closed_lab])
    await db_session.flush()

    users = SimpleNamespace(
        patient=await _add_user(db_session, "patient@example.com", UserRole.USER),
        other_patient=await _add_user(db_session, "other@example.com", UserRole.USER),
        tech_a=await _add_user(db_session, "tech.a@example.com", UserRole.LAB_TECHNICIAN, lab_a.id),
        tech_b=await _add_user(db_session, "tech.b@example.com", UserRole.LAB_TECHNICIAN, lab_b.id),
        staff_a=await _add_user(db_session, "staff.a@example.com", UserRole.STAFF, lab_a.id),
        local_admin_a=await _add_user(db_session, "local.a@example.com", UserRole.LOCAL_ADMIN, lab_a.id),
        unassigned_staff=await _add_user(db_session, "staff.none@example.com", UserRole.STAFF),
        blocked_staff=await _add_user(db_session, "blocked@example.com", UserRole.STAFF, lab_a.id, is_blocked=True),
        admin=await _add_user(db_session, "admin@example.com", UserRole.ADMIN),
    )
    await db_session.commit()

    return SimpleNamespace(
        lab_a=lab_a, lab_b=lab_b, closed_lab=closed_lab,
        cbc=cbc, lipid=lipid, xray=xray, retired=retired, wellness=wellness,
        users=users,
    )


def caller_for(user: User, include_lab: bool = True) -> Caller:
    """Caller as the token would describe it; ``include_lab=False`` mimics an old token"""
    return Caller(
        id=user.id,
        role=user.role,
        assigned_lab=user.assigned_lab_id if include_lab else None,
        email=user.email,
    )


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user.id, build_token_claims(user))
    return {"Authorization": f"Bearer {token}"}


def booking_payload(lab: Lab, tests=(), packages=(), days_ahead: int = 5, payment_method: str = "pay_now",
                    base: Optional[datetime] = None) -> Dict[str, Any]:
    appointment = (base or NOW) + timedelta(days=days_ahead)
    return {
        "labId": lab.id,
        "selectedTests": [{"testId": test.id, "testName": test.name, "price": 1.0} for test in tests],
        "selectedPackages": [{"packageId": package.id} for package in packages],
        "appointmentDate": appointment.isoformat(),
        "appointmentTime": "09:30 AM",
        "paymentMethod": payment_method,
        "notes": "Fasting since last night",
    }


@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    gateway: FakeGateway,
    notifier: RecordingNotifier,
    file_store: InMemoryFileStore
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and collaborator overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_email_dispatcher] = lambda: notifier
    app.dependency_overrides[deps.get_file_store] = lambda: file_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
