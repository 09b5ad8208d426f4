from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.convoy import Convoy
from app.models.vehicle import Vehicle
from app.modules import convoy_service
from app.modules.audit import record_audit
from app.modules.map_overlay import (
    build_map_overlay,
    convoy_route,
    load_overlay_catalogue,
    select_overlays_near_route,
)
from app.schemas.convoy import ConvoyCreateRequest, VehicleCreateRequest, VehicleRead
from app.schemas.error import ErrorResponse
from app.schemas.map_overlay import MapOverlayRequest

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _enum_value(value):
    return str(value.value) if hasattr(value, "value") else value


def _location(convoy: Convoy, prefix: str) -> dict:
    return {
        "lat": getattr(convoy, f"{prefix}_lat"),
        "lon": getattr(convoy, f"{prefix}_lon"),
        "place": getattr(convoy, f"{prefix}_place"),
    }


def _convoy_summary(convoy: Convoy, vehicle_count: int, total_load_kg: float) -> dict:
    return {
        "id": convoy.id,
        "convoy_name": convoy.convoy_name,
        "source": _location(convoy, "source"),
        "destination": _location(convoy, "destination"),
        "priority": _enum_value(convoy.priority),
        "vehicle_count": vehicle_count,
        "total_load_kg": total_load_kg,
        "created_at": convoy.created_at.isoformat() if convoy.created_at else None,
        "updated_at": convoy.updated_at.isoformat() if convoy.updated_at else None,
    }


def _vehicle_summary(v: Vehicle) -> dict:
    """Compact vehicle shape read by the convoy history view."""
    utilization = (
        round(v.load_weight_kg / v.capacity_kg * 100, 1) if v.capacity_kg else None
    )
    return {
        "id": v.id,
        "registration": v.registration_number,
        "type": _enum_value(v.vehicle_type),
        "driver": v.driver_name,
        "status": _enum_value(v.current_status),
        "load_type": _enum_value(v.load_type),
        "load_kg": v.load_weight_kg,
        "capacity_kg": v.capacity_kg,
        "utilization_pct": utilization,
    }


# ---------------------------------------------------------------------------
# Convoys
# ---------------------------------------------------------------------------

@router.post("/convoys/create", status_code=201, tags=["convoys"], responses=_ERRORS)
def create_convoy(
    body: ConvoyCreateRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Create a convoy, or merge the vehicles into the convoy with the same name.

    201 when a convoy was created, 200 when vehicles were merged into an existing one.
    """
    result = convoy_service.create_or_merge_convoy(
        db,
        body.convoy_name,
        [v.model_dump() for v in body.vehicles],
        source=body.location("source"),
        destination=body.location("destination"),
        priority=body.priority,
    )
    convoy = result.convoy
    record_audit(db, result.status, "convoy", convoy.id, details={
        "convoy_name": convoy.convoy_name,
        "registrations": [v.registration_number for v in result.vehicles],
    }, request=request)
    db.commit()

    vehicle_count, total_load_kg = convoy_service.convoy_totals(db, convoy.id)
    if result.status == "created":
        message = f"Convoy '{convoy.convoy_name}' created with {result.vehicles_added} vehicle(s)"
    else:
        response.status_code = 200
        message = (
            f"Convoy '{convoy.convoy_name}' already exists; "
            f"merged {result.vehicles_added} vehicle(s)"
        )
    return {
        "status": result.status,
        "message": message,
        "convoy_id": convoy.id,
        "vehicles_added": result.vehicles_added,
        "vehicle_count": vehicle_count,
        "total_load_kg": total_load_kg,
    }


@router.post(
    "/convoys/add-vehicle/{convoy_id}",
    status_code=201,
    response_model=VehicleRead,
    tags=["convoys"],
    responses=_ERRORS,
)
def add_vehicle(
    convoy_id: int,
    body: VehicleCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    vehicle = convoy_service.add_vehicle(db, convoy_id, body.model_dump())
    record_audit(db, "add_vehicle", "convoy", convoy_id, details={
        "registration_number": vehicle.registration_number,
    }, request=request)
    db.commit()
    return VehicleRead.model_validate(vehicle)


@router.get("/convoys/list", tags=["convoys"])
def list_convoys(db: Session = Depends(get_db)):
    """All convoys with vehicle_count and total_load_kg. Filtering is client-side."""
    return {
        "convoys": [
            _convoy_summary(row.convoy, row.vehicle_count, row.total_load_kg)
            for row in convoy_service.list_convoys(db)
        ]
    }


@router.get("/convoys/{convoy_id}", tags=["convoys"], responses=_ERRORS)
def get_convoy(convoy_id: int, db: Session = Depends(get_db)):
    convoy = convoy_service.get_convoy(db, convoy_id)
    vehicles = list(convoy.vehicles)
    total_load_kg = float(sum(v.load_weight_kg for v in vehicles))
    detail = _convoy_summary(convoy, len(vehicles), total_load_kg)
    detail["vehicles"] = [_vehicle_summary(v) for v in vehicles]
    return {"convoy": detail}


@router.delete("/convoys/{convoy_id}", tags=["convoys"], responses=_ERRORS)
def delete_convoy(convoy_id: int, request: Request, db: Session = Depends(get_db)):
    """Delete a convoy and every vehicle it owns. Irreversible."""
    convoy = convoy_service.get_convoy(db, convoy_id)
    convoy_name = convoy.convoy_name
    vehicles_deleted = convoy_service.delete_convoy(db, convoy_id)
    record_audit(db, "delete", "convoy", convoy_id, details={
        "convoy_name": convoy_name, "vehicles_deleted": vehicles_deleted,
    }, request=request)
    db.commit()
    return {"status": "deleted", "convoy_id": convoy_id, "vehicles_deleted": vehicles_deleted}


# ---------------------------------------------------------------------------
# Map overlays
# ---------------------------------------------------------------------------

@router.get("/convoys/{convoy_id}/map", tags=["maps"], responses=_ERRORS)
def convoy_map(convoy_id: int, db: Session = Depends(get_db)):
    """Overlay for the convoy's source -> destination leg with nearby catalogue items."""
    convoy = convoy_service.get_convoy(db, convoy_id)
    route = convoy_route(convoy)
    checkpoints, danger_zones = select_overlays_near_route(
        route, load_overlay_catalogue(), settings.OVERLAY_RADIUS_KM
    )
    overlay = build_map_overlay(
        route,
        start=_location(convoy, "source"),
        end=_location(convoy, "destination"),
        checkpoints=checkpoints,
        danger_zones=danger_zones,
    )
    overlay["convoy_id"] = convoy.id
    return overlay


@router.post("/maps/overlay", tags=["maps"])
def map_overlay(body: MapOverlayRequest):
    """Overlay for caller-supplied route, endpoints, checkpoints and danger zones."""
    data = body.model_dump(mode="json")
    return build_map_overlay(
        data["route"],
        start=data["start_point"],
        end=data["end_point"],
        checkpoints=data["checkpoints"],
        danger_zones=data["danger_zones"],
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@router.get("/health", tags=["admin"])
def health_check(db: Session = Depends(get_db)):
    """Health check with DB latency measurement."""
    from sqlalchemy import text

    t0 = time.time()
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        db_status = f"error: {e}"
    latency_ms = round((time.time() - t0) * 1000, 1)

    return {
        "status": "ok",
        "version": settings.VERSION,
        "database": {"status": db_status, "latency_ms": latency_ms},
    }
