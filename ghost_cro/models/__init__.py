"""Database models for Ghost CRO"""

from ghost_cro.models.store import Store, Subscription
from ghost_cro.models.ga4_connection import GA4Connection
from ghost_cro.models.test_result import TestResultRecord

__all__ = [
    "Store",
    "Subscription",
    "GA4Connection",
    "TestResultRecord",
]
