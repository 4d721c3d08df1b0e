from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from schemas.enums import Priority


class ApplicationCreate(BaseModel):
    target_amount: Optional[int] = Field(None, alias="targetAmount", gt=0, le=1_000_000_000_000)
    priority: Priority = Priority.MEDIUM

    model_config = {"populate_by_name": True}


class ApplicationUpdate(BaseModel):
    """Top-level fields; only the ones present in the request body are applied."""

    target_amount: Optional[int] = Field(None, alias="targetAmount", gt=0, le=1_000_000_000_000)
    priority: Optional[Priority] = None
    assigned_regulator_id: Optional[str] = Field(None, alias="assignedRegulatorId")

    model_config = {"populate_by_name": True}

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class AdvisorAssignment(BaseModel):
    ib_advisor_id: str = Field(..., alias="ibAdvisorId", min_length=1)

    model_config = {"populate_by_name": True}


class QueryResponse(BaseModel):
    comment: str = Field(..., min_length=1)
