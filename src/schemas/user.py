from typing import Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    user_id: str
    username: str
    display_name: Optional[str] = None
    external_user_id: Optional[str] = Field(
        default=None, description="Linked activity-platform account id."
    )
    create_at: str
