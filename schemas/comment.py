from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from schemas.enums import Role


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    section_number: Optional[int] = Field(None, alias="sectionNumber", ge=1, le=10)
    is_internal: bool = Field(False, alias="isInternal")
    addressed_to: Optional[Role] = Field(None, alias="addressedTo")

    model_config = {"populate_by_name": True}
