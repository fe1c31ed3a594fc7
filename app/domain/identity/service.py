from typing import Dict, Any
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, AuthorizationError, ConflictError
from app.core.security import create_access_token
from app.domain.identity.models import User, UserRole
from app.domain.identity.repository import UserRepository
from app.api.v1.auth.schemas import RegisterRequest, LoginRequest
from app.infrastructure.notifications import EmailDispatcher

logger = logging.getLogger(__name__)


def build_token_claims(user: User) -> Dict[str, Any]:
    return {
        "email": user.email,
        "role": user.role.value,
        "assigned_lab": user.assigned_lab_id,
    }


class AuthenticationService:
    """Service layer for patient registration and login"""
    
    def __init__(self, db: AsyncSession, notifier: EmailDispatcher):
        self.db = db
        self.user_repo = UserRepository(db)
        self.notifier = notifier
    
    async def register_user(self, data: RegisterRequest) -> User:
        """Register a new patient account"""
        existing = await self.user_repo.get_by_email(data.email)
        if existing:
            raise ConflictError("User with this email already exists", error_code="EMAIL_TAKEN")
        
        user = await self.user_repo.create(
            {
                "email": data.email.lower(),
                "first_name": data.first_name,
                "last_name": data.last_name,
                "phone": data.phone,
                "role": UserRole.USER,
            },
            password=data.password,
        )
        logger.info(f"Registered user {user.id}")
        
        self.notifier.send("welcome", user.email, {"first_name": user.first_name})
        return user
    
    async def authenticate_user(self, data: LoginRequest) -> Dict[str, Any]:
        """Authenticate user and return an access token"""
        user = await self.user_repo.get_by_email(data.email)
        if not user or not user.verify_password(data.password):
            raise AuthenticationError("Invalid email or password")
        
        if not user.is_active or user.is_blocked:
            raise AuthorizationError("Account is inactive or blocked", error_code="ACCOUNT_DISABLED")
        
        await self.user_repo.touch_last_login(user)
        
        access_token = create_access_token(user.id, build_token_claims(user))
        return {"access_token": access_token, "token_type": "bearer", "user": user}
    
    async def get_profile(self, user_id: str) -> User:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise AuthenticationError("User no longer exists")
        return user
