"""
Database utilities and models.

This package provides:
- SQLAlchemy models for game state
- Database connection management
- Query helpers used by the API
"""

from .connection import Database, db
from .queries import NationQueries, create_query_helper
from .models import (
    Base, User, Country, Resources, Territory, Structure, Unit, Research, Trade, Event
)

__all__ = [
    # Connection management
    'Database', 'db',

    # Query functionality
    'NationQueries', 'create_query_helper',

    # Models
    'Base', 'User', 'Country', 'Resources', 'Territory', 'Structure', 'Unit',
    'Research', 'Trade', 'Event'
]
