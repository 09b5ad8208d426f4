"""Import all models to register them with SQLAlchemy metadata."""
from app.models.base import Base
from app.models.convoy import Convoy
from app.models.vehicle import Vehicle
from app.models.audit_log import AuditLog

__all__ = [
    "Base",
    "Convoy",
    "Vehicle",
    "AuditLog",
]
