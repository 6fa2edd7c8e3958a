"""Repository layer for data access."""

from .fleet_repository import FleetRepository, SqlFleetRepository

__all__ = [
    "FleetRepository",
    "SqlFleetRepository",
]
