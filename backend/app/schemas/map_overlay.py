"""Pydantic schemas for map overlay requests."""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.models.base import RiskLevelEnum


class MapPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    place: Optional[str] = None


class CheckpointIn(BaseModel):
    checkpoint_id: Optional[int] = None
    name: Optional[str] = None
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    checkpoint_type: Optional[str] = None
    status: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=0)
    current_load: Optional[int] = Field(None, ge=0)
    distance_to_route_km: Optional[float] = Field(None, ge=0)


class DangerZoneIn(BaseModel):
    name: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(..., gt=0)
    risk_level: RiskLevelEnum = RiskLevelEnum.HIGH
    distance_from_route_km: Optional[float] = Field(None, ge=0)

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalise_risk_level(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class MapOverlayRequest(BaseModel):
    route: list[tuple[float, float]] = Field(default_factory=list)
    start_point: Optional[MapPoint] = None
    end_point: Optional[MapPoint] = None
    checkpoints: list[CheckpointIn] = Field(default_factory=list)
    danger_zones: list[DangerZoneIn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("danger_zones", "danger_points"),
    )
