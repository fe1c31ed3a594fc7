from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.clock import utcnow
from app.domain.identity.models import User, UserRole


@dataclass(frozen=True)
class DirectoryEntry:
    """The slice of a user record the booking core is allowed to read"""
    id: str
    email: str
    first_name: str
    role: UserRole
    assigned_lab: Optional[str]
    is_active: bool
    is_blocked: bool


class UserRepository:
    """Repository for user data access; doubles as the identity directory"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_data: dict, password: str) -> User:
        user = User(**user_data)
        user.set_password(password)
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def touch_last_login(self, user: User) -> None:
        user.last_login_at = utcnow()
        await self.db.commit()
        await self.db.refresh(user)

    async def find_user(self, user_id: str) -> Optional[DirectoryEntry]:
        """Authoritative lookup used by the authorization engine"""
        user = await self.get_by_id(user_id)
        if not user:
            return None
        return DirectoryEntry(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            role=user.role,
            assigned_lab=user.assigned_lab_id,
            is_active=bool(user.is_active),
            is_blocked=bool(user.is_blocked),
        )
