"""
Declarative Base for ORM models
"""
from relay_station.database import Base

__all__ = ["Base"]
