"""Infrastructure adapters for laptop assignment.

These adapters implement the port interfaces defined in the domain layer,
backed either by PostgreSQL or by in-process dictionaries.
"""

from .memory_repos import InMemoryDeviceRepository, InMemoryDistributionRepository
from .postgres_device_repo import PostgresDeviceRepository
from .postgres_distribution_repo import PostgresDistributionRepository
from .schema import SCHEMA_SQL, apply_schema

__all__ = [
    "PostgresDeviceRepository",
    "PostgresDistributionRepository",
    "InMemoryDeviceRepository",
    "InMemoryDistributionRepository",
    "SCHEMA_SQL",
    "apply_schema",
]
