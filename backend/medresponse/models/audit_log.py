from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer

from medresponse.db.postgres import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True)
    action = Column(String, nullable=False)  # "create", "update", "assign", "resolve"
    resource = Column(String, nullable=False)  # "emergency_alert", "resource_assignment"
    resource_id = Column(String, nullable=True)
    details = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
