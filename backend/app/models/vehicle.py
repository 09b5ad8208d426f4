"""Vehicle entity — a transport unit owned by exactly one convoy."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Float, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import (
    Base,
    LoadTypeEnum,
    VehicleStatusEnum,
    VehicleTypeEnum,
    utcnow,
)


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    convoy_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("convoys.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Unique across all convoys, not just within one
    registration_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    vehicle_type: Mapped[str] = mapped_column(
        SAEnum(VehicleTypeEnum, values_callable=_enum_values), nullable=False
    )
    load_type: Mapped[str] = mapped_column(
        SAEnum(LoadTypeEnum, values_callable=_enum_values), nullable=False
    )
    load_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    capacity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    driver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    current_status: Mapped[str] = mapped_column(
        SAEnum(VehicleStatusEnum, values_callable=_enum_values),
        nullable=False,
        default=VehicleStatusEnum.PENDING,
    )
    source_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    source_lon: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    destination_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    destination_lon: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    convoy: Mapped["Convoy"] = relationship("Convoy", back_populates="vehicles")  # noqa: F821
