import enum
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Integer

from medresponse.db.postgres import Base


class UserRole(str, enum.Enum):
    USER = "user"
    RESPONSE_TEAM = "response_team"
    ADMIN = "admin"


# Roles allowed to dispatch resources and change emergency status
DISPATCH_ROLES = {
    UserRole.RESPONSE_TEAM,
    UserRole.ADMIN,
}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    phone = Column(String, nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)
