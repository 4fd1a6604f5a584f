"""
Infrastructure package for miniorm.

Centralizes database connectivity concerns (pool lifecycle, database type
detection, identifier escaping). Keep this layer focused on I/O and resource
management, decoupled from the mapping and pipeline logic.
"""

from miniorm.infrastructure.database_type import DatabaseType
from miniorm.infrastructure.db_factory import PoolManager

__all__ = [
    "DatabaseType",
    "PoolManager",
]
