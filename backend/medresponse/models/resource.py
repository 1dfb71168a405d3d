import enum
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, ForeignKey

from medresponse.db.postgres import Base


class ResourceStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    EN_ROUTE = "en_route"
    ON_SCENE = "on_scene"
    COMPLETED = "completed"


# Forward-only lifecycle of an assignment
ASSIGNMENT_FLOW = [
    AssignmentStatus.ASSIGNED,
    AssignmentStatus.EN_ROUTE,
    AssignmentStatus.ON_SCENE,
    AssignmentStatus.COMPLETED,
]


class EmergencyResourceType(Base):
    __tablename__ = "emergency_resource_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, nullable=False)  # "medical", "fire", "police"


class EmergencyResource(Base):
    __tablename__ = "emergency_resources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type_id = Column(Integer, ForeignKey("emergency_resource_types.id"), nullable=False)
    name = Column(String, nullable=False)
    status = Column(Enum(ResourceStatus), nullable=False, default=ResourceStatus.AVAILABLE, index=True)
    location = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    capacity = Column(Integer, nullable=True)
    last_maintenance = Column(DateTime, nullable=True)
    next_maintenance = Column(DateTime, nullable=True)


class EmergencyTypeResource(Base):
    """Which resource types an emergency type calls for."""
    __tablename__ = "emergency_type_resources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    emergency_type = Column(String, nullable=False, index=True)
    resource_type_id = Column(Integer, ForeignKey("emergency_resource_types.id"), nullable=False)
    priority = Column(Integer, nullable=False, default=1)  # 1 = required, 2 = recommended, 3 = optional
    quantity = Column(Integer, nullable=False, default=1)


class EmergencyResourceAssignment(Base):
    __tablename__ = "emergency_resource_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    emergency_id = Column(Integer, ForeignKey("emergency_alerts.id"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("emergency_resources.id"), nullable=False, index=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)
    status = Column(Enum(AssignmentStatus), nullable=False, default=AssignmentStatus.ASSIGNED)
    notes = Column(String, nullable=True)
