from datetime import datetime

from pydantic import BaseModel, Field


class FavoriteStatus(BaseModel):
    """Whether one article is in a user's favorites."""

    model_config = {"frozen": True}

    article_id: str
    is_favorited: bool = False
    favorited_at: datetime | None = Field(default=None, description="When the favorite was added")


class ViewStatus(BaseModel):
    """A user's view / read state for one article."""

    model_config = {"frozen": True}

    article_id: str
    is_viewed: bool = False
    is_read: bool = False
    viewed_at: datetime | None = None
    read_at: datetime | None = None
