"""
Database module for the credit ledger

Uses SQLAlchemy async for all database operations.
"""

from .client import DatabaseClient
from .errors import is_serialization_failure, conflict_field

__all__ = ["DatabaseClient", "is_serialization_failure", "conflict_field"]
