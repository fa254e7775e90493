from sqlalchemy import Column, String

from .base import Base


class ActivityRecordModel(Base):
    __tablename__ = "activity_records"

    activity_id = Column(String, primary_key=True, index=True)
    canonical_url = Column(String, nullable=False)
    start_url = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    enriched_at = Column(String, nullable=True)
    updated_at = Column(String, nullable=False)
