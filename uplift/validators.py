"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from uplift.models import DUEL_TYPES


class ChallengeCreateInput(BaseModel):
    challenger_group_id: int = Field(gt=0)
    target_group_id: int = Field(gt=0)
    duration_days: Optional[int] = Field(default=None, ge=1)

    @field_validator("target_group_id")
    @classmethod
    def distinct_groups(cls, v, info):
        if v == info.data.get("challenger_group_id"):
            raise ValueError("target_group_id must differ from challenger_group_id")
        return v


class DuelCreateInput(BaseModel):
    opponent_id: int = Field(gt=0)
    type: str = "workout_count"
    duration_days: Optional[int] = Field(default=None, ge=1)

    @field_validator("type")
    @classmethod
    def valid_type(cls, v):
        if v not in DUEL_TYPES:
            raise ValueError(f"type must be one of {DUEL_TYPES}")
        return v


class WorkoutLogInput(BaseModel):
    workout_date: Optional[date] = None
    caption: str = Field(default="", max_length=2000)
