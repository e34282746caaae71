from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field
from uuid import uuid4


class ReviewCreate(BaseModel):
    rider_email: str
    parcel_id:   Optional[str] = None
    rating:      int = Field(ge=1, le=5)
    comment:     str = ""


class Review(ReviewCreate):
    review_id:      str      = Field(default_factory=lambda: f"rev_{uuid4().hex[:12]}")
    reviewer_email: str      = ""
    created_at:     datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
