from medresponse.models.user import User, UserRole
from medresponse.models.location_update import LocationUpdate
from medresponse.models.emergency_alert import EmergencyAlert, EmergencyStatus, EmergencyPriority
from medresponse.models.ambulance import AmbulanceUnit, AmbulanceStatus
from medresponse.models.facility import MedicalFacility
from medresponse.models.resource import (
    EmergencyResourceType,
    EmergencyResource,
    EmergencyTypeResource,
    EmergencyResourceAssignment,
    ResourceStatus,
    AssignmentStatus,
)
from medresponse.models.audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "LocationUpdate",
    "EmergencyAlert",
    "EmergencyStatus",
    "EmergencyPriority",
    "AmbulanceUnit",
    "AmbulanceStatus",
    "MedicalFacility",
    "EmergencyResourceType",
    "EmergencyResource",
    "EmergencyTypeResource",
    "EmergencyResourceAssignment",
    "ResourceStatus",
    "AssignmentStatus",
    "AuditLog",
]
