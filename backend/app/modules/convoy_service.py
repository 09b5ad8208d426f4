"""Convoy domain service — create/merge, add vehicle, list, get, delete.

Rules:
  - convoy_name identifies a convoy. Creating with an existing name merges the
    supplied vehicles into that convoy; its id never changes.
  - Merge requests may repeat the stored source/destination/priority, but a
    differing value is rejected (ConvoyConflict) rather than silently dropped.
  - registration_number is unique across every convoy. A collision with the
    store, or a repeat inside one request, rejects the whole request.
  - vehicle_count / total_load_kg are aggregated from vehicle rows on read.

Transactions: functions flush but never commit; the caller (route handler or
CLI command) commits once per request. Validation and duplicate checks run
before anything is added to the session, and the database unique constraints
arbitrate races: an IntegrityError at flush rolls the session back and is
reported as a duplicate (or conflict) instead of a 500.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.base import (
    LoadTypeEnum,
    PriorityEnum,
    VehicleStatusEnum,
    VehicleTypeEnum,
    utcnow,
)
from app.models.convoy import Convoy
from app.models.vehicle import Vehicle
from app.modules.errors import (
    ConvoyConflict,
    DuplicateRegistration,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

_REQUIRED_VEHICLE_FIELDS = (
    "vehicle_type",
    "registration_number",
    "load_type",
    "load_weight_kg",
    "capacity_kg",
    "driver_name",
)


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class MergeResult:
    status: str  # "created" | "merged"
    convoy: Convoy
    vehicles: list[Vehicle] = field(default_factory=list)

    @property
    def vehicles_added(self) -> int:
        return len(self.vehicles)


@dataclass
class ConvoyTotals:
    convoy: Convoy
    vehicle_count: int
    total_load_kg: float


# ── Field parsing ─────────────────────────────────────────────────────────────

def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        valid = [e.value for e in enum_cls]
        raise ValidationError(f"{label} must be one of: {valid}") from None


def _parse_positive(value: Any, label: str) -> float:
    """Parse a strictly positive, finite number (numeric strings accepted)."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a positive number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a positive number") from None
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{label} must be a positive number")
    return number


def _parse_coordinate(value: Any, label: str, limit: float) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number") from None
    if not math.isfinite(number) or abs(number) > limit:
        raise ValidationError(f"{label} must be between -{limit:g} and {limit:g}")
    return number


def parse_location(location: Mapping[str, Any], label: str) -> dict:
    """Normalise a ``{"lat", "lon", "place"}`` mapping."""
    if _is_missing(location.get("lat")) or _is_missing(location.get("lon")):
        raise ValidationError(f"{label} latitude and longitude are required")
    place = location.get("place")
    return {
        "lat": _parse_coordinate(location["lat"], f"{label}_lat", 90.0),
        "lon": _parse_coordinate(location["lon"], f"{label}_lon", 180.0),
        "place": place.strip() if isinstance(place, str) and place.strip() else None,
    }


def _parse_merge_location(location: Optional[Mapping[str, Any]], label: str) -> Optional[dict]:
    """Like parse_location, but a place sent without coordinates is kept.

    Merge requests may name only the place; a new convoy still needs both coordinates.
    """
    if location is None:
        return None
    if _is_missing(location.get("lat")) and _is_missing(location.get("lon")):
        place = location.get("place")
        if _is_missing(place):
            return None
        return {"lat": None, "lon": None, "place": str(place).strip()}
    return parse_location(location, label)


def parse_vehicle(fields: Mapping[str, Any], label: str = "vehicle") -> dict:
    """Validate one vehicle's fields and return column values for Vehicle()."""
    missing = [name for name in _REQUIRED_VEHICLE_FIELDS if _is_missing(fields.get(name))]
    if missing:
        raise ValidationError(f"{label}: missing required field(s): {', '.join(missing)}")

    values = {
        "vehicle_type": _parse_enum(VehicleTypeEnum, fields["vehicle_type"], f"{label}.vehicle_type"),
        "registration_number": str(fields["registration_number"]).strip(),
        "load_type": _parse_enum(LoadTypeEnum, fields["load_type"], f"{label}.load_type"),
        "load_weight_kg": _parse_positive(fields["load_weight_kg"], f"{label}.load_weight_kg"),
        "capacity_kg": _parse_positive(fields["capacity_kg"], f"{label}.capacity_kg"),
        "driver_name": str(fields["driver_name"]).strip(),
        "current_status": VehicleStatusEnum.PENDING,
    }
    if not _is_missing(fields.get("current_status")):
        values["current_status"] = _parse_enum(
            VehicleStatusEnum, fields["current_status"], f"{label}.current_status"
        )
    for key, limit in (("source_lat", 90.0), ("source_lon", 180.0),
                       ("destination_lat", 90.0), ("destination_lon", 180.0)):
        raw = fields.get(key)
        values[key] = None if _is_missing(raw) else _parse_coordinate(raw, f"{label}.{key}", limit)
    return values


# ── Uniqueness checks ─────────────────────────────────────────────────────────

def _check_registrations(db: Session, registrations: list[str]) -> None:
    """Raise DuplicateRegistration for repeats within the request or in the store."""
    seen: set[str] = set()
    repeated = set()
    for reg in registrations:
        if reg in seen:
            repeated.add(reg)
        seen.add(reg)
    if repeated:
        raise DuplicateRegistration(list(repeated))
    if not registrations:
        return
    existing = [
        row[0]
        for row in db.query(Vehicle.registration_number)
        .filter(Vehicle.registration_number.in_(registrations))
        .all()
    ]
    if existing:
        logger.warning("Rejected duplicate registration(s): %s", ", ".join(existing))
        raise DuplicateRegistration(existing)


def _flush_or_raise(db: Session, registrations: list[str], convoy_name: str) -> None:
    """Flush pending rows; translate a unique-constraint race into a domain error."""
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        taken = []
        if registrations:
            taken = [
                row[0]
                for row in db.query(Vehicle.registration_number)
                .filter(Vehicle.registration_number.in_(registrations))
                .all()
            ]
        if taken:
            logger.warning("Concurrent insert won registration(s): %s", ", ".join(taken))
            raise DuplicateRegistration(taken) from None
        raise ConvoyConflict(
            f"Convoy '{convoy_name}' was modified concurrently; resubmit the request"
        ) from None


def _reject_conflicting_metadata(
    convoy: Convoy,
    source: Optional[dict],
    destination: Optional[dict],
    priority: Optional[PriorityEnum],
) -> None:
    conflicts = []
    for label, loc in (("source", source), ("destination", destination)):
        if loc is None:
            continue
        if loc["lat"] is not None and (
            loc["lat"] != getattr(convoy, f"{label}_lat") or loc["lon"] != getattr(convoy, f"{label}_lon")
        ):
            conflicts.append(f"{label} coordinates")
        if loc["place"] is not None and loc["place"] != getattr(convoy, f"{label}_place"):
            conflicts.append(f"{label} place")
    if priority is not None and PriorityEnum(convoy.priority) != priority:
        conflicts.append("priority")
    if conflicts:
        raise ConvoyConflict(
            f"Convoy '{convoy.convoy_name}' already exists with different "
            f"{', '.join(conflicts)}; vehicles were not added"
        )


def _build_vehicle(convoy: Convoy, values: dict) -> Vehicle:
    # Vehicles without their own endpoints inherit the convoy's
    for key in ("source_lat", "source_lon", "destination_lat", "destination_lon"):
        if values.get(key) is None:
            values[key] = getattr(convoy, key)
    return Vehicle(convoy=convoy, **values)


# ── Operations ────────────────────────────────────────────────────────────────

def create_or_merge_convoy(
    db: Session,
    convoy_name: str,
    vehicles: Iterable[Mapping[str, Any]] = (),
    source: Optional[Mapping[str, Any]] = None,
    destination: Optional[Mapping[str, Any]] = None,
    priority: Any = None,
) -> MergeResult:
    """Create a convoy, or merge vehicles into the existing one with that name.

    All-or-nothing: either the convoy (when new) and every vehicle are added to
    the session, or a ConvoyServiceError is raised and nothing is.
    """
    name = (convoy_name or "").strip() if isinstance(convoy_name, str) else ""
    if not name:
        raise ValidationError("convoy_name is required")

    parsed = [parse_vehicle(v, f"vehicles[{i}]") for i, v in enumerate(vehicles or [])]
    src = _parse_merge_location(source, "source")
    dst = _parse_merge_location(destination, "destination")
    prio = _parse_enum(PriorityEnum, priority, "priority") if not _is_missing(priority) else None

    registrations = [s["registration_number"] for s in parsed]
    existing = db.query(Convoy).filter(Convoy.convoy_name == name).first()

    if existing is None:
        missing = [label for label, val in (("source", src), ("destination", dst), ("priority", prio)) if val is None]
        if missing:
            raise ValidationError(
                f"New convoy '{name}' requires: {', '.join(missing)}"
            )
        for label, loc in (("source", src), ("destination", dst)):
            if loc["lat"] is None:
                raise ValidationError(f"{label} latitude and longitude are required")
        _check_registrations(db, registrations)
        convoy = Convoy(
            convoy_name=name,
            source_lat=src["lat"], source_lon=src["lon"], source_place=src["place"],
            destination_lat=dst["lat"], destination_lon=dst["lon"], destination_place=dst["place"],
            priority=prio,
        )
        db.add(convoy)
        status = "created"
    else:
        if not parsed:
            raise ValidationError(f"Convoy '{name}' already exists and no vehicles were supplied")
        _reject_conflicting_metadata(existing, src, dst, prio)
        _check_registrations(db, registrations)
        convoy = existing
        convoy.updated_at = utcnow()
        status = "merged"

    added = [_build_vehicle(convoy, values) for values in parsed]
    db.add_all(added)
    _flush_or_raise(db, registrations, name)

    logger.info(
        "Convoy %s id=%s %s with %d vehicle(s)", name, convoy.id, status, len(added)
    )
    return MergeResult(status=status, convoy=convoy, vehicles=added)


def get_convoy(db: Session, convoy_id: int) -> Convoy:
    convoy = db.query(Convoy).filter(Convoy.id == convoy_id).first()
    if convoy is None:
        raise NotFound(f"Convoy {convoy_id} not found")
    return convoy


def add_vehicle(db: Session, convoy_id: int, fields: Mapping[str, Any]) -> Vehicle:
    """Attach one vehicle to an existing convoy. current_status defaults to pending."""
    convoy = get_convoy(db, convoy_id)
    values = parse_vehicle(fields)
    _check_registrations(db, [values["registration_number"]])

    vehicle = _build_vehicle(convoy, values)
    db.add(vehicle)
    convoy.updated_at = utcnow()
    _flush_or_raise(db, [values["registration_number"]], convoy.convoy_name)
    logger.info(
        "Vehicle %s added to convoy id=%s", vehicle.registration_number, convoy_id
    )
    return vehicle


def convoy_totals(db: Session, convoy_id: int) -> tuple[int, float]:
    """Return (vehicle_count, total_load_kg) aggregated over the convoy's vehicles."""
    count, total = (
        db.query(func.count(Vehicle.id), func.coalesce(func.sum(Vehicle.load_weight_kg), 0.0))
        .filter(Vehicle.convoy_id == convoy_id)
        .one()
    )
    return int(count or 0), float(total or 0.0)


def list_convoys(db: Session) -> list[ConvoyTotals]:
    """All convoys, newest first, with aggregates from one grouped outer join."""
    rows = (
        db.query(
            Convoy,
            func.count(Vehicle.id),
            func.coalesce(func.sum(Vehicle.load_weight_kg), 0.0),
        )
        .outerjoin(Vehicle, Vehicle.convoy_id == Convoy.id)
        .group_by(Convoy.id)
        .order_by(Convoy.created_at.desc(), Convoy.id.desc())
        .all()
    )
    return [
        ConvoyTotals(convoy=convoy, vehicle_count=int(count or 0), total_load_kg=float(total or 0.0))
        for convoy, count, total in rows
    ]


def delete_convoy(db: Session, convoy_id: int) -> int:
    """Delete a convoy and its vehicles. Returns the number of vehicles removed."""
    convoy = get_convoy(db, convoy_id)
    vehicle_count, _ = convoy_totals(db, convoy_id)
    db.delete(convoy)
    db.flush()
    logger.info(
        "Convoy %s id=%s deleted with %d vehicle(s)", convoy.convoy_name, convoy_id, vehicle_count
    )
    return vehicle_count
