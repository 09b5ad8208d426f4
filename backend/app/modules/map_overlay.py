"""Map overlay builder — turns a route plus checkpoints and danger zones into
drawable layers for a Leaflet-style map.

Layers:
  start / end markers      — green / red pins
  route polyline           — blue line through the route points in order
  danger zones             — circle (radius_km) + centre pin, coloured by risk_level
  checkpoints              — pin coloured by checkpoint_type, overridden by status
  bounds                   — box around every marker, recomputed on each call

Colour rules:
  risk_level  high -> #ef4444, medium -> #f59e0b, low -> #fbbf24 (unknown -> high)
  checkpoint  military -> gold, border -> violet, rest_stop -> blue, toll -> grey,
              else orange; status closed -> red, congested -> yellow (applied last)

Checkpoints and danger zones are display data only. The YAML catalogue
(settings.OVERLAYS_CONFIG) supplies them for stored convoys; callers can also
pass their own.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

import yaml

from app.config import settings
from app.utils.geo import distance_to_route_km

logger = logging.getLogger(__name__)

_ICON_URL = "https://cdn.rawgit.com/pointhi/leaflet-color-markers/master/img/marker-icon-2x-{color}.png"
_SHADOW_URL = "https://cdnjs.cloudflare.com/ajax/libs/leaflet/0.7.7/images/marker-shadow.png"

_ROUTE_STYLE = {"color": "#3b82f6", "weight": 3, "opacity": 0.8, "line_cap": "round"}
_BOUNDS_PADDING = [50, 50]

# risk_level -> (stroke/fill colour, fill opacity)
_RISK_STYLES: dict[str, tuple[str, float]] = {
    "high": ("#ef4444", 0.2),
    "medium": ("#f59e0b", 0.15),
    "low": ("#fbbf24", 0.1),
}

_CHECKPOINT_TYPE_COLORS: dict[str, str] = {
    "military": "gold",
    "border": "violet",
    "rest_stop": "blue",
    "toll": "grey",
}
_CHECKPOINT_DEFAULT_COLOR = "orange"

_OVERLAY_CATALOGUE: dict[str, list[dict]] | None = None


# ── Styling ───────────────────────────────────────────────────────────────────

def risk_style(risk_level: Optional[str]) -> tuple[str, float]:
    return _RISK_STYLES.get((risk_level or "").lower(), _RISK_STYLES["high"])


def checkpoint_color(checkpoint_type: Optional[str], status: Optional[str]) -> str:
    """Marker colour for a checkpoint; status overrides type."""
    color = _CHECKPOINT_TYPE_COLORS.get((checkpoint_type or "").lower(), _CHECKPOINT_DEFAULT_COLOR)
    status = (status or "").lower()
    if status == "closed":
        color = "red"
    if status == "congested":
        color = "yellow"
    return color


def _marker(kind: str, lat: float, lon: float, color: str, title: str,
            lines: list[str], small: bool = False) -> dict:
    size = [20, 33] if small else [25, 41]
    return {
        "kind": kind,
        "lat": lat,
        "lon": lon,
        "color": color,
        "icon_url": _ICON_URL.format(color=color),
        "shadow_url": _SHADOW_URL,
        "icon_size": size,
        "popup": {"title": title, "lines": lines},
    }


def _fmt_km(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:g} km"


# ── Layers ────────────────────────────────────────────────────────────────────

def _danger_layer(zone: Mapping[str, Any], route: Sequence[Sequence[float]]) -> dict:
    lat, lon = float(zone["lat"]), float(zone["lon"])
    risk_level = (zone.get("risk_level") or "high").lower()
    color, fill_opacity = risk_style(risk_level)
    radius_km = float(zone.get("radius_km") or 0.0)
    distance = zone.get("distance_from_route_km")
    if distance is None:
        computed = distance_to_route_km(lat, lon, route)
        distance = round(computed, 2) if computed is not None else None

    name = zone.get("name") or "Danger zone"
    lines = [f"Risk Level: {risk_level.upper()}", f"Distance from route: {_fmt_km(distance)}"]
    return {
        "name": name,
        "risk_level": risk_level,
        "distance_from_route_km": distance,
        "circle": {
            "lat": lat,
            "lon": lon,
            "radius_m": radius_km * 1000,
            "color": color,
            "fill_color": color,
            "fill_opacity": fill_opacity,
            "weight": 2,
            "popup": {"title": name, "lines": lines + [f"Radius: {radius_km:g} km"]},
        },
        "marker": _marker("danger", lat, lon, "red", name, lines, small=True),
    }


def _checkpoint_layer(cp: Mapping[str, Any], route: Sequence[Sequence[float]]) -> dict:
    lat, lon = float(cp["lat"]), float(cp["lon"])
    cp_type = cp.get("checkpoint_type") or "unknown"
    status = cp.get("status") or "operational"
    distance = cp.get("distance_to_route_km")
    if distance is None:
        computed = distance_to_route_km(lat, lon, route)
        distance = round(computed, 2) if computed is not None else None

    cp_id = cp.get("checkpoint_id")
    title = cp.get("name") or ("Checkpoint" if cp_id is None else f"Checkpoint {cp_id}")
    marker = _marker(
        "checkpoint", lat, lon, checkpoint_color(cp_type, status), title,
        [
            f"Type: {cp_type}",
            f"Status: {status}",
            f"Distance from route: {_fmt_km(distance)}",
            f"Capacity: {cp.get('current_load') or 0}/{cp.get('capacity') or 0} vehicles",
        ],
    )
    marker["checkpoint_id"] = cp.get("checkpoint_id")
    marker["distance_to_route_km"] = distance
    return marker


def compute_bounds(points: Iterable[Sequence[float]]) -> Optional[dict]:
    """South-west / north-east box around the given (lat, lon) points."""
    pts = list(points)
    if not pts:
        return None
    lats = [p[0] for p in pts]
    lons = [p[1] for p in pts]
    return {
        "south_west": [min(lats), min(lons)],
        "north_east": [max(lats), max(lons)],
        "padding": list(_BOUNDS_PADDING),
    }


def build_map_overlay(
    route: Sequence[Sequence[float]] = (),
    start: Optional[Mapping[str, Any]] = None,
    end: Optional[Mapping[str, Any]] = None,
    checkpoints: Iterable[Mapping[str, Any]] = (),
    danger_zones: Iterable[Mapping[str, Any]] = (),
) -> dict:
    route_pts = [[float(p[0]), float(p[1])] for p in route]

    start_marker = (
        _marker("start", float(start["lat"]), float(start["lon"]), "green", "Start Point",
                [start["place"]] if start.get("place") else [])
        if start else None
    )
    end_marker = (
        _marker("end", float(end["lat"]), float(end["lon"]), "red", "End Point",
                [end["place"]] if end.get("place") else [])
        if end else None
    )
    danger_layers = [_danger_layer(z, route_pts) for z in danger_zones]
    checkpoint_markers = [_checkpoint_layer(c, route_pts) for c in checkpoints]

    markers = [m for m in (start_marker, end_marker) if m is not None]
    markers += [d["marker"] for d in danger_layers]
    markers += checkpoint_markers

    return {
        "start_marker": start_marker,
        "end_marker": end_marker,
        "route": {"points": route_pts, **_ROUTE_STYLE} if route_pts else None,
        "danger_zones": danger_layers,
        "checkpoints": checkpoint_markers,
        "bounds": compute_bounds((m["lat"], m["lon"]) for m in markers),
    }


# ── Catalogue ─────────────────────────────────────────────────────────────────

def _catalogue_path() -> Path:
    path = Path(settings.OVERLAYS_CONFIG)
    if not path.is_absolute():
        # config/ is at repo root (two levels above backend/app)
        path = Path(__file__).resolve().parents[3] / path
    return path


def load_overlay_catalogue() -> dict[str, list[dict]]:
    """Checkpoints and danger zones from the YAML catalogue, loaded once."""
    global _OVERLAY_CATALOGUE
    if _OVERLAY_CATALOGUE is None:
        path = _catalogue_path()
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            _OVERLAY_CATALOGUE = {
                "checkpoints": list(data.get("checkpoints") or []),
                "danger_zones": list(data.get("danger_zones") or []),
            }
            logger.info(
                "Loaded %d checkpoint(s) and %d danger zone(s) from %s",
                len(_OVERLAY_CATALOGUE["checkpoints"]),
                len(_OVERLAY_CATALOGUE["danger_zones"]),
                path,
            )
        else:
            logger.warning("Overlay catalogue %s not found; maps will have no checkpoints", path)
            _OVERLAY_CATALOGUE = {"checkpoints": [], "danger_zones": []}
    return _OVERLAY_CATALOGUE


def reload_overlay_catalogue() -> dict[str, list[dict]]:
    """Force-reload the overlay catalogue from disk."""
    global _OVERLAY_CATALOGUE
    _OVERLAY_CATALOGUE = None
    return load_overlay_catalogue()


def select_overlays_near_route(
    route: Sequence[Sequence[float]],
    catalogue: Mapping[str, list[dict]],
    radius_km: float,
) -> tuple[list[dict], list[dict]]:
    """Catalogue items within radius_km of the route, with distances filled in.

    Danger zones count as near when their circle edge is within radius_km.
    """
    checkpoints = []
    for cp in catalogue.get("checkpoints", []):
        dist = distance_to_route_km(float(cp["lat"]), float(cp["lon"]), route)
        if dist is not None and dist <= radius_km:
            checkpoints.append({**cp, "distance_to_route_km": round(dist, 2)})

    danger_zones = []
    for zone in catalogue.get("danger_zones", []):
        dist = distance_to_route_km(float(zone["lat"]), float(zone["lon"]), route)
        if dist is not None and dist - float(zone.get("radius_km") or 0.0) <= radius_km:
            danger_zones.append({**zone, "distance_from_route_km": round(dist, 2)})
    return checkpoints, danger_zones


def convoy_route(convoy) -> list[list[float]]:
    """Straight source -> destination leg; no pathfinding."""
    return [
        [convoy.source_lat, convoy.source_lon],
        [convoy.destination_lat, convoy.destination_lon],
    ]
