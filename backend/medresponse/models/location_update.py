from datetime import datetime

from sqlalchemy import Column, String, DateTime, Float, Integer, ForeignKey

from medresponse.db.postgres import Base


class LocationUpdate(Base):
    """Append-only position fix. Corrections are new rows with a later timestamp."""
    __tablename__ = "location_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)  # metres
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    source = Column(String, nullable=False, default="user")  # "user", "ambulance", "response_team"
