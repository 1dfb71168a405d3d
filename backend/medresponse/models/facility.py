from datetime import datetime

from sqlalchemy import Column, String, DateTime, Float, Integer, Index

from medresponse.db.postgres import Base
from medresponse.services.geo import geography_point


class MedicalFacility(Base):
    """Hospital, clinic or pharmacy that patients can be routed to."""
    __tablename__ = "medical_facilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # "hospital", "clinic", "pharmacy"
    address = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    phone = Column(String, nullable=True)
    open_hours = Column(String, nullable=True)
    rating = Column(String, nullable=True)
    capacity = Column(Integer, nullable=True)
    current_occupancy = Column(Integer, nullable=True)
    last_update = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


Index(
    "ix_medical_facilities_geog",
    geography_point(MedicalFacility.longitude, MedicalFacility.latitude),
    postgresql_using="gist",
).ddl_if(dialect="postgresql")
