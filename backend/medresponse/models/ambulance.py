import enum
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Index

from medresponse.db.postgres import Base
from medresponse.services.geo import geography_point


class AmbulanceStatus(str, enum.Enum):
    AVAILABLE = "available"
    DISPATCHED = "dispatched"
    ON_SCENE = "on_scene"
    OUT_OF_SERVICE = "out_of_service"


class AmbulanceUnit(Base):
    __tablename__ = "ambulance_units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)
    last_location_update = Column(DateTime, nullable=True)
    status = Column(Enum(AmbulanceStatus), nullable=False, default=AmbulanceStatus.AVAILABLE, index=True)
    # Plain column; the FK lives on emergency_alerts.ambulance_id
    current_emergency_id = Column(Integer, nullable=True)


Index(
    "ix_ambulance_units_geog",
    geography_point(AmbulanceUnit.longitude, AmbulanceUnit.latitude),
    postgresql_using="gist",
).ddl_if(dialect="postgresql")
