"""Pydantic schemas for convoy and vehicle operations."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.models.base import (
    LoadTypeEnum,
    PriorityEnum,
    VehicleStatusEnum,
    VehicleTypeEnum,
)


def _lower(v):
    return v.strip().lower() if isinstance(v, str) else v


class VehicleCreateRequest(BaseModel):
    vehicle_type: VehicleTypeEnum
    registration_number: str = Field(..., min_length=1, max_length=50)
    load_type: LoadTypeEnum
    load_weight_kg: float = Field(..., gt=0)
    capacity_kg: float = Field(..., gt=0)
    driver_name: str = Field(..., min_length=1, max_length=255)
    current_status: VehicleStatusEnum = VehicleStatusEnum.PENDING
    source_lat: Optional[float] = Field(None, ge=-90, le=90)
    source_lon: Optional[float] = Field(None, ge=-180, le=180)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lon: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("vehicle_type", "load_type", "current_status", mode="before")
    @classmethod
    def normalise_enums(cls, v):
        return _lower(v)

    @field_validator("registration_number", "driver_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ConvoyCreateRequest(BaseModel):
    """Create a convoy, or merge vehicles into the convoy with the same name.

    Location and priority fields are required only when the name is new.
    """
    convoy_name: str = Field(..., min_length=1, max_length=255)
    source_lat: Optional[float] = Field(None, ge=-90, le=90)
    source_lon: Optional[float] = Field(None, ge=-180, le=180)
    source_place: Optional[str] = Field(None, max_length=255)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lon: Optional[float] = Field(None, ge=-180, le=180)
    destination_place: Optional[str] = Field(None, max_length=255)
    priority: Optional[PriorityEnum] = None
    vehicles: list[VehicleCreateRequest] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def normalise_priority(cls, v):
        return _lower(v)

    def location(self, prefix: str) -> Optional[dict]:
        """``{"lat", "lon", "place"}`` for source/destination, or None if not supplied."""
        lat = getattr(self, f"{prefix}_lat")
        lon = getattr(self, f"{prefix}_lon")
        place = getattr(self, f"{prefix}_place")
        if lat is None and lon is None and place is None:
            return None
        return {"lat": lat, "lon": lon, "place": place}


class VehicleRead(BaseModel):
    id: int
    convoy_id: int
    registration_number: str
    vehicle_type: VehicleTypeEnum
    load_type: LoadTypeEnum
    load_weight_kg: float
    capacity_kg: float
    driver_name: str
    current_status: VehicleStatusEnum
    source_lat: Optional[float] = None
    source_lon: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lon: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
