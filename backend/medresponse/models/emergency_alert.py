import enum
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB

from medresponse.db.postgres import Base


class EmergencyStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class EmergencyPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Statuses still awaiting or receiving a response
OPEN_STATUSES = {
    EmergencyStatus.PENDING,
    EmergencyStatus.ACTIVE,
}

JsonList = JSON().with_variant(JSONB(), "postgresql")


class EmergencyAlert(Base):
    __tablename__ = "emergency_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ambulance_id = Column(Integer, ForeignKey("ambulance_units.id"), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    emergency_type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    status = Column(Enum(EmergencyStatus), nullable=False, default=EmergencyStatus.PENDING, index=True)
    priority = Column(Enum(EmergencyPriority), nullable=False, default=EmergencyPriority.MEDIUM)
    required_resources = Column(JsonList, default=list)  # resource type ids
    assigned_resources = Column(JsonList, default=list)  # resource ids
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    assigned_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
