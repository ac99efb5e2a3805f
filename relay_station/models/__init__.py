"""
SQLAlchemy Models for Relay Station

Usage:
    from relay_station.models import Deal, DealPriceHistory
    # または
    from relay_station.models import Base
"""

from .base import Base
from .deal import Deal
from .deal_price_history import DealPriceHistory
from .user_role import UserRole, ADMIN_ROLE
from .cron_job_health import CronJobHealth

__all__ = [
    "Base",
    "Deal",
    "DealPriceHistory",
    "UserRole",
    "ADMIN_ROLE",
    "CronJobHealth",
]
