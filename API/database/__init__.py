"""
Database package for the academy billing service.

Usage:
    from database import db, get_db, init_db
    from database.models import Student, Invoice, Payment
"""

from .base import Base, BaseModel, TimestampMixin, utc_now
from .connection import (
    DatabaseConnection,
    db,
    get_db,
    init_db,
    reset_db,
)

# Import all models to ensure they are registered with SQLAlchemy
from .models import *


__all__ = [
    # Base
    'Base',
    'BaseModel',
    'TimestampMixin',
    'utc_now',

    # Connection
    'DatabaseConnection',
    'db',
    'get_db',
    'init_db',
    'reset_db',
]
