from sqlalchemy import JSON, Column, String

from .base import Base


class FavoriteExperiencesCacheModel(Base):
    __tablename__ = "favorite_experiences_cache"

    user_id = Column(String, primary_key=True, index=True)
    favorites_json = Column(JSON, nullable=False, default=list)
    etag = Column(String, nullable=False)
    cached_at = Column(String, nullable=False)
    expires_at = Column(String, nullable=False)
