from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError
from app.core.permissions import AuthorizationEngine, Caller
from app.core.security import verify_token
from app.domain.bookings.payments import PaymentService
from app.domain.bookings.service import BookingService
from app.domain.identity.models import UserRole
from app.domain.identity.repository import UserRepository
from app.domain.identity.service import AuthenticationService
from app.infrastructure.database import get_db
from app.infrastructure.file_store import FileStore, get_file_store as build_file_store
from app.infrastructure.notifications import EmailDispatcher, email_dispatcher
from app.infrastructure.payment_gateway import PaymentGateway, payment_gateway

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Caller:
    """Build the caller from bearer token claims"""
    if not credentials:
        raise AuthenticationError("No token, authorization denied")

    payload = verify_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Token is not valid")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Token is not valid")

    return Caller(
        id=str(payload["sub"]),
        role=role,
        assigned_lab=payload.get("assigned_lab"),
        email=payload.get("email"),
    )


def get_email_dispatcher() -> EmailDispatcher:
    return email_dispatcher


def get_payment_gateway() -> PaymentGateway:
    return payment_gateway


def get_file_store() -> FileStore:
    return build_file_store()


def get_authorization_engine(db: AsyncSession = Depends(get_db)) -> AuthorizationEngine:
    return AuthorizationEngine(UserRepository(db))


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    notifier: EmailDispatcher = Depends(get_email_dispatcher)
) -> AuthenticationService:
    return AuthenticationService(db, notifier)


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
    notifier: EmailDispatcher = Depends(get_email_dispatcher),
    file_store: FileStore = Depends(get_file_store)
) -> BookingService:
    return BookingService(db, authz, notifier, file_store)


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
    notifier: EmailDispatcher = Depends(get_email_dispatcher)
) -> PaymentService:
    return PaymentService(db, gateway, authz, notifier)
