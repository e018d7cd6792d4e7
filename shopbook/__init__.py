"""Shopbook - booking engine and notification outbox for service businesses"""

__version__ = "0.1.0"
