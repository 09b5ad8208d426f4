"""Tests for the convoy domain service against an in-memory SQLite database.

Covers create vs merge, registration uniqueness across convoys, request
atomicity, aggregate totals, and cascade deletion.
"""
from __future__ import annotations

import pytest
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from app.models.base import PriorityEnum, VehicleStatusEnum
from app.models.convoy import Convoy
from app.models.vehicle import Vehicle
from app.modules import convoy_service
from app.modules.errors import (
    ConvoyConflict,
    DuplicateRegistration,
    NotFound,
    ValidationError,
)


def _create_alpha(db, alpha_route, vehicles):
    result = convoy_service.create_or_merge_convoy(db, "Alpha", vehicles, **alpha_route)
    db.commit()
    return result


# ══════════════════════════════════════════════════════════════════════════════
# Create / merge
# ══════════════════════════════════════════════════════════════════════════════


class TestCreateConvoy:

    def test_new_name_creates_one_convoy_and_one_row_per_vehicle(self, db, alpha_route, truck, ambulance):
        result = _create_alpha(db, alpha_route, [truck, ambulance])

        assert result.status == "created"
        assert result.vehicles_added == 2
        assert db.query(Convoy).count() == 1
        assert db.query(Vehicle).filter(Vehicle.convoy_id == result.convoy.id).count() == 2

    def test_stores_metadata(self, db, alpha_route, truck):
        convoy = _create_alpha(db, alpha_route, [truck]).convoy

        assert convoy.source_place == "New Delhi"
        assert convoy.destination_lat == pytest.approx(30.7333)
        assert convoy.priority == PriorityEnum.HIGH
        assert convoy.created_at is not None

    def test_vehicle_defaults(self, db, alpha_route, truck):
        vehicle = _create_alpha(db, alpha_route, [truck]).vehicles[0]

        assert vehicle.current_status == VehicleStatusEnum.PENDING
        # Endpoints inherited from the convoy
        assert vehicle.source_lat == pytest.approx(28.6139)
        assert vehicle.destination_lon == pytest.approx(76.7794)

    def test_numeric_strings_accepted(self, db, alpha_route, truck):
        truck.update(load_weight_kg="500", capacity_kg="1000.5")
        vehicle = _create_alpha(db, alpha_route, [truck]).vehicles[0]
        assert vehicle.load_weight_kg == 500.0
        assert vehicle.capacity_kg == 1000.5

    def test_new_convoy_without_vehicles_is_allowed(self, db, alpha_route):
        result = _create_alpha(db, alpha_route, [])
        assert result.status == "created"
        assert convoy_service.convoy_totals(db, result.convoy.id) == (0, 0.0)

    @pytest.mark.parametrize("missing", ["source", "destination", "priority"])
    def test_new_convoy_requires_metadata(self, db, alpha_route, truck, missing):
        alpha_route.pop(missing)
        with pytest.raises(ValidationError, match=missing):
            convoy_service.create_or_merge_convoy(db, "Alpha", [truck], **alpha_route)
        assert db.query(Convoy).count() == 0

    def test_blank_name_rejected(self, db, alpha_route):
        with pytest.raises(ValidationError, match="convoy_name"):
            convoy_service.create_or_merge_convoy(db, "   ", [], **alpha_route)

    def test_invalid_priority_rejected(self, db, alpha_route):
        alpha_route["priority"] = "urgent"
        with pytest.raises(ValidationError, match="priority"):
            convoy_service.create_or_merge_convoy(db, "Alpha", [], **alpha_route)

    def test_out_of_range_latitude_rejected(self, db, alpha_route):
        alpha_route["source"]["lat"] = 123.0
        with pytest.raises(ValidationError, match="source_lat"):
            convoy_service.create_or_merge_convoy(db, "Alpha", [], **alpha_route)


class TestVehicleValidation:

    @pytest.mark.parametrize("field", ["registration_number", "driver_name", "vehicle_type", "capacity_kg"])
    def test_missing_field(self, db, alpha_route, truck, field):
        truck.pop(field)
        with pytest.raises(ValidationError, match=field):
            convoy_service.create_or_merge_convoy(db, "Alpha", [truck], **alpha_route)
        assert db.query(Convoy).count() == 0

    @pytest.mark.parametrize("value", [0, -5, "heavy", None, float("nan"), True])
    def test_non_positive_or_unparseable_weight(self, db, alpha_route, truck, value):
        truck["load_weight_kg"] = value
        with pytest.raises(ValidationError):
            convoy_service.create_or_merge_convoy(db, "Alpha", [truck], **alpha_route)

    def test_unknown_vehicle_type(self, db, alpha_route, truck):
        truck["vehicle_type"] = "hovercraft"
        with pytest.raises(ValidationError, match="vehicle_type"):
            convoy_service.create_or_merge_convoy(db, "Alpha", [truck], **alpha_route)

    def test_enum_values_case_insensitive(self, db, alpha_route, truck):
        truck.update(vehicle_type="Truck", load_type="SUPPLIES", current_status="En_Route")
        vehicle = _create_alpha(db, alpha_route, [truck]).vehicles[0]
        assert vehicle.current_status == VehicleStatusEnum.EN_ROUTE

    def test_load_above_capacity_is_not_enforced(self, db, alpha_route, truck):
        truck.update(load_weight_kg=1500, capacity_kg=1000)
        result = _create_alpha(db, alpha_route, [truck])
        assert result.vehicles_added == 1


class TestMergeConvoy:

    def test_alpha_example(self, db, alpha_route, truck, ambulance):
        first = _create_alpha(db, alpha_route, [truck])
        convoy_id = first.convoy.id
        assert convoy_service.convoy_totals(db, convoy_id) == (1, 500.0)

        second = convoy_service.create_or_merge_convoy(db, "Alpha", [ambulance])
        db.commit()

        assert second.status == "merged"
        assert second.vehicles_added == 1
        assert second.convoy.id == convoy_id
        assert db.query(Convoy).filter(Convoy.convoy_name == "Alpha").count() == 1
        assert convoy_service.convoy_totals(db, convoy_id) == (2, 800.0)

    def test_merge_accepts_identical_metadata(self, db, alpha_route, truck, ambulance):
        _create_alpha(db, alpha_route, [truck])
        result = convoy_service.create_or_merge_convoy(db, "Alpha", [ambulance], **alpha_route)
        assert result.status == "merged"

    @pytest.mark.parametrize("change", [
        {"priority": "low"},
        {"source": {"lat": 19.076, "lon": 72.8777, "place": "Mumbai"}},
        {"destination": {"lat": 30.7333, "lon": 76.7794, "place": "Mohali"}},
    ])
    def test_merge_rejects_conflicting_metadata(self, db, alpha_route, truck, ambulance, change):
        _create_alpha(db, alpha_route, [truck])
        with pytest.raises(ConvoyConflict):
            convoy_service.create_or_merge_convoy(db, "Alpha", [ambulance], **change)
        db.rollback()
        assert db.query(Vehicle).count() == 1

    def test_merge_compares_place_sent_without_coordinates(self, db, alpha_route, truck, ambulance):
        _create_alpha(db, alpha_route, [truck])
        with pytest.raises(ConvoyConflict, match="source place"):
            convoy_service.create_or_merge_convoy(db, "Alpha", [ambulance], source={"place": "Mumbai"})
        db.rollback()
        assert db.query(Vehicle).count() == 1

    def test_merge_accepts_matching_place_without_coordinates(self, db, alpha_route, truck, ambulance):
        _create_alpha(db, alpha_route, [truck])
        result = convoy_service.create_or_merge_convoy(
            db, "Alpha", [ambulance], destination={"place": "Chandigarh"}
        )
        assert result.status == "merged"

    def test_new_convoy_place_without_coordinates_rejected(self, db, alpha_route):
        alpha_route["source"] = {"place": "New Delhi"}
        with pytest.raises(ValidationError, match="source latitude and longitude"):
            convoy_service.create_or_merge_convoy(db, "Alpha", [], **alpha_route)

    def test_merge_without_vehicles_rejected(self, db, alpha_route, truck):
        _create_alpha(db, alpha_route, [truck])
        with pytest.raises(ValidationError, match="no vehicles"):
            convoy_service.create_or_merge_convoy(db, "Alpha", [])

    def test_merge_touches_updated_at(self, db, alpha_route, truck, ambulance):
        convoy = _create_alpha(db, alpha_route, [truck]).convoy
        before = convoy.updated_at
        convoy_service.create_or_merge_convoy(db, "Alpha", [ambulance])
        db.commit()
        db.refresh(convoy)
        assert convoy.updated_at >= before


# ══════════════════════════════════════════════════════════════════════════════
# Registration uniqueness and atomicity
# ══════════════════════════════════════════════════════════════════════════════


class TestDuplicateRegistration:

    def test_duplicate_in_other_convoy_rejected(self, db, alpha_route, truck):
        _create_alpha(db, alpha_route, [truck])
        bravo_route = {**alpha_route, "priority": "low"}

        with pytest.raises(DuplicateRegistration) as exc:
            convoy_service.create_or_merge_convoy(db, "Bravo", [dict(truck)], **bravo_route)

        assert exc.value.registration_numbers == ["DL-01-AB-1234"]
        assert db.query(Vehicle).filter(Vehicle.registration_number == "DL-01-AB-1234").count() == 1
        # Rejected creation leaves no convoy row behind
        assert db.query(Convoy).filter(Convoy.convoy_name == "Bravo").count() == 0

    def test_duplicate_within_request_rejected(self, db, alpha_route, truck):
        with pytest.raises(DuplicateRegistration):
            convoy_service.create_or_merge_convoy(db, "Alpha", [truck, dict(truck)], **alpha_route)
        assert db.query(Convoy).count() == 0
        assert db.query(Vehicle).count() == 0

    def test_one_duplicate_rejects_whole_merge(self, db, alpha_route, truck, ambulance):
        convoy = _create_alpha(db, alpha_route, [truck]).convoy
        with pytest.raises(DuplicateRegistration):
            convoy_service.create_or_merge_convoy(db, "Alpha", [ambulance, dict(truck)])
        db.rollback()
        assert convoy_service.convoy_totals(db, convoy.id) == (1, 500.0)
        assert db.query(Vehicle).filter(Vehicle.registration_number == "DL-01-AB-5678").count() == 0

    def test_add_vehicle_duplicate_rejected(self, db, alpha_route, truck):
        convoy = _create_alpha(db, alpha_route, [truck]).convoy
        with pytest.raises(DuplicateRegistration):
            convoy_service.add_vehicle(db, convoy.id, dict(truck))
        assert db.query(Vehicle).count() == 1

    def test_store_constraint_race_reported_as_duplicate(self, db, alpha_route, truck, ambulance):
        """A concurrent writer that wins between pre-check and flush surfaces as 409."""
        convoy = _create_alpha(db, alpha_route, [truck]).convoy

        # Pre-check sees nothing, so only the unique constraint can catch it
        with patch.object(convoy_service, "_check_registrations"):
            with pytest.raises(DuplicateRegistration):
                convoy_service.add_vehicle(db, convoy.id, dict(truck))

        assert db.query(Vehicle).filter(Vehicle.registration_number == "DL-01-AB-1234").count() == 1

    def test_flush_conflict_without_taken_registration_is_convoy_conflict(self, db, alpha_route):
        with patch.object(db, "flush", side_effect=IntegrityError("INSERT", {}, Exception("unique"))):
            with pytest.raises(ConvoyConflict):
                convoy_service.create_or_merge_convoy(db, "Alpha", [], **alpha_route)


# ══════════════════════════════════════════════════════════════════════════════
# Add vehicle / list / get / delete
# ══════════════════════════════════════════════════════════════════════════════


class TestAddVehicle:

    def test_adds_to_existing_convoy(self, db, alpha_route, truck, ambulance):
        convoy = _create_alpha(db, alpha_route, [truck]).convoy
        vehicle = convoy_service.add_vehicle(db, convoy.id, ambulance)
        db.commit()

        assert vehicle.id is not None
        assert vehicle.convoy_id == convoy.id
        assert vehicle.current_status == VehicleStatusEnum.PENDING
        assert convoy_service.convoy_totals(db, convoy.id) == (2, 800.0)

    def test_unknown_convoy(self, db, truck):
        with pytest.raises(NotFound):
            convoy_service.add_vehicle(db, 999, truck)
        assert db.query(Vehicle).count() == 0


class TestListGetDelete:

    def test_totals_match_vehicle_rows(self, db, alpha_route, truck, ambulance):
        _create_alpha(db, alpha_route, [truck, ambulance])
        convoy_service.create_or_merge_convoy(
            db, "Empty", [], source=alpha_route["source"],
            destination=alpha_route["destination"], priority="low",
        )
        db.commit()

        rows = {r.convoy.convoy_name: r for r in convoy_service.list_convoys(db)}

        assert set(rows) == {"Alpha", "Empty"}
        assert rows["Alpha"].vehicle_count == 2
        assert rows["Alpha"].total_load_kg == 800.0
        assert rows["Empty"].vehicle_count == 0
        assert rows["Empty"].total_load_kg == 0.0
        for row in rows.values():
            expected = sum(v.load_weight_kg for v in db.query(Vehicle).filter(Vehicle.convoy_id == row.convoy.id))
            assert row.total_load_kg == expected

    def test_list_newest_first(self, db, alpha_route):
        for name in ("One", "Two", "Three"):
            convoy_service.create_or_merge_convoy(db, name, [], **alpha_route)
            db.commit()
        names = [r.convoy.convoy_name for r in convoy_service.list_convoys(db)]
        assert names == ["Three", "Two", "One"]

    def test_get_returns_vehicles(self, db, alpha_route, truck, ambulance):
        convoy_id = _create_alpha(db, alpha_route, [truck, ambulance]).convoy.id
        convoy = convoy_service.get_convoy(db, convoy_id)
        assert [v.registration_number for v in convoy.vehicles] == ["DL-01-AB-1234", "DL-01-AB-5678"]

    def test_get_missing(self, db):
        with pytest.raises(NotFound):
            convoy_service.get_convoy(db, 42)

    def test_delete_cascades_to_vehicles(self, db, alpha_route, truck, ambulance):
        convoy_id = _create_alpha(db, alpha_route, [truck, ambulance]).convoy.id

        removed = convoy_service.delete_convoy(db, convoy_id)
        db.commit()

        assert removed == 2
        assert db.query(Vehicle).count() == 0
        with pytest.raises(NotFound):
            convoy_service.get_convoy(db, convoy_id)

    def test_delete_frees_registration_numbers(self, db, alpha_route, truck):
        convoy_id = _create_alpha(db, alpha_route, [truck]).convoy.id
        convoy_service.delete_convoy(db, convoy_id)
        db.commit()

        result = convoy_service.create_or_merge_convoy(db, "Alpha", [truck], **alpha_route)
        assert result.status == "created"

    def test_delete_missing(self, db):
        with pytest.raises(NotFound):
            convoy_service.delete_convoy(db, 7)
