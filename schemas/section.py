from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class SectionFieldUpdate(BaseModel):
    """
    One field edit. ``immediate`` is true for blur / explicit save and false for
    typing events, which are debounced and acknowledged optimistically.
    """

    field_path: str = Field(..., alias="fieldPath", min_length=1)
    value: Any = None
    immediate: bool = True
    expected_version: Optional[int] = Field(None, alias="expectedVersion", ge=1)

    model_config = {"populate_by_name": True}
