"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class PriorityEnum(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VehicleTypeEnum(str, enum.Enum):
    TRUCK = "truck"
    VAN = "van"
    JEEP = "jeep"
    AMBULANCE = "ambulance"
    TANKER = "tanker"


class LoadTypeEnum(str, enum.Enum):
    MEDICAL = "medical"
    SUPPLIES = "supplies"
    AMMUNITION = "ammunition"
    FUEL = "fuel"
    PERSONNEL = "personnel"


class VehicleStatusEnum(str, enum.Enum):
    IDLE = "idle"
    EN_ROUTE = "en_route"
    AT_CHECKPOINT = "at_checkpoint"
    COMPLETED = "completed"
    BREAKDOWN = "breakdown"
    PENDING = "pending"


# Overlay enum; danger zones are display-only and never persisted.

class RiskLevelEnum(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def utcnow() -> datetime:
    """Naive UTC timestamp — matches the DateTime columns (no timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
