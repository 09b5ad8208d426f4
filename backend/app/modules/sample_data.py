"""Demo convoys for local development.

Loaded through convoy_service so the same validation, merge and uniqueness
rules apply as for API requests. Re-running is harmless: convoys whose name
already exists are skipped.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.convoy import Convoy
from app.modules.audit import record_audit
from app.modules.convoy_service import create_or_merge_convoy

logger = logging.getLogger(__name__)

SAMPLE_CONVOYS: list[dict] = [
    {
        "convoy_name": "Alpha",
        "source": {"lat": 28.6139, "lon": 77.2090, "place": "New Delhi"},
        "destination": {"lat": 30.7333, "lon": 76.7794, "place": "Chandigarh"},
        "priority": "high",
        "vehicles": [
            {
                "vehicle_type": "truck", "registration_number": "DL-01-AB-1234",
                "load_type": "supplies", "load_weight_kg": 500, "capacity_kg": 1000,
                "driver_name": "Raj Kumar",
            },
            {
                "vehicle_type": "ambulance", "registration_number": "DL-01-AB-5678",
                "load_type": "medical", "load_weight_kg": 300, "capacity_kg": 800,
                "driver_name": "Anil Sharma", "current_status": "en_route",
            },
        ],
    },
    {
        "convoy_name": "Bravo",
        "source": {"lat": 28.4595, "lon": 77.0266, "place": "Gurugram"},
        "destination": {"lat": 26.9124, "lon": 75.7873, "place": "Jaipur"},
        "priority": "critical",
        "vehicles": [
            {
                "vehicle_type": "tanker", "registration_number": "HR-26-CK-4411",
                "load_type": "fuel", "load_weight_kg": 8000, "capacity_kg": 12000,
                "driver_name": "Suresh Yadav",
            },
            {
                "vehicle_type": "jeep", "registration_number": "HR-26-CK-4412",
                "load_type": "personnel", "load_weight_kg": 450, "capacity_kg": 600,
                "driver_name": "Vikram Singh", "current_status": "idle",
            },
        ],
    },
    {
        "convoy_name": "Charlie",
        "source": {"lat": 28.6692, "lon": 77.4538, "place": "Ghaziabad"},
        "destination": {"lat": 27.1767, "lon": 78.0081, "place": "Agra"},
        "priority": "low",
        "vehicles": [
            {
                "vehicle_type": "van", "registration_number": "UP-14-BT-0077",
                "load_type": "supplies", "load_weight_kg": 700, "capacity_kg": 1500,
                "driver_name": "Mohit Verma",
            },
        ],
    },
]


def load_sample_data(db: Session) -> dict:
    """Add the demo convoys that are not present yet, with an audit row each.

    Flushes; caller commits.
    """
    created, skipped = 0, 0
    for entry in SAMPLE_CONVOYS:
        if db.query(Convoy).filter(Convoy.convoy_name == entry["convoy_name"]).first():
            skipped += 1
            continue
        result = create_or_merge_convoy(
            db,
            entry["convoy_name"],
            entry["vehicles"],
            source=entry["source"],
            destination=entry["destination"],
            priority=entry["priority"],
        )
        record_audit(db, result.status, "convoy", result.convoy.id, details={
            "convoy_name": result.convoy.convoy_name,
            "registrations": [v.registration_number for v in result.vehicles],
            "origin": "seed-demo",
        })
        created += 1
    logger.info("Sample data: %d convoy(s) created, %d skipped", created, skipped)
    return {"created": created, "skipped": skipped}
