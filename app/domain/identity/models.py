from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from app.infrastructure.database import Base
import uuid
import enum


def gen_uuid():
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    """User roles in the lab booking system"""
    USER = "user"
    STAFF = "staff"
    LAB_TECHNICIAN = "lab_technician"
    XRAY_TECHNICIAN = "xray_technician"
    LOCAL_ADMIN = "local_admin"
    ADMIN = "admin"


class User(Base):
    """User model for authentication and lab assignment"""
    __tablename__ = "users"
    
    id = Column(String(36), primary_key=True, default=gen_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    phone = Column(String(20))
    
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    # Only meaningful for staff, technicians and local admins
    assigned_lab_id = Column(String(36), ForeignKey("labs.id", ondelete="SET NULL"), nullable=True, index=True)
    
    is_active = Column(Boolean, default=True, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    last_login_at = Column(DateTime)
    
    def set_password(self, password: str):
        """Set password hash"""
        from app.core.security import get_password_hash
        self.password_hash = get_password_hash(password)
    
    def verify_password(self, password: str) -> bool:
        """Verify password"""
        from app.core.security import verify_password
        return verify_password(password, self.password_hash)
