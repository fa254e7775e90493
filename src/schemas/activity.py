from typing import Optional

from pydantic import BaseModel, Field


# result of LinkResolver.normalize
class NormalizedActivityLink(BaseModel):
    activity_id: str = Field(description="Canonical identifier of the activity (place id).")
    canonical_url: str
    start_url: str
    original_input_url: str
    normalized_from: str = Field(
        description="Which link format the identifier was extracted from, e.g. 'web_games'."
    )


class FavoriteExperience(BaseModel):
    id: str
    name: str
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class LifecycleRunResult(BaseModel):
    auto_completed_count: int
    archived_completed_count: int
    checked_at: str
