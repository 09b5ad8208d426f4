"""Convoy entity — a named movement of vehicles from a source to a destination."""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Integer, String, Float, DateTime, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import Base, PriorityEnum, utcnow

if TYPE_CHECKING:
    from app.models.vehicle import Vehicle


class Convoy(Base):
    __tablename__ = "convoys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    convoy_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    source_lat: Mapped[float] = mapped_column(Float, nullable=False)
    source_lon: Mapped[float] = mapped_column(Float, nullable=False)
    source_place: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    destination_lat: Mapped[float] = mapped_column(Float, nullable=False)
    destination_lon: Mapped[float] = mapped_column(Float, nullable=False)
    destination_place: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    priority: Mapped[str] = mapped_column(
        SAEnum(PriorityEnum, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PriorityEnum.MEDIUM,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    # Touched whenever vehicles are added
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # vehicle_count / total_load_kg are aggregated on read, never stored
    vehicles: Mapped[list["Vehicle"]] = relationship(
        "Vehicle",
        back_populates="convoy",
        cascade="all, delete-orphan",
        order_by="Vehicle.id",
    )
