"""Installed Shopify stores and their billing subscriptions"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ghost_cro.models.base import Base


class Store(Base):
    """A shop that completed the OAuth install"""
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, unique=True, index=True, nullable=False)  # my-store.myshopify.com
    access_token = Column(Text, nullable=True)
    scope = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    user_id = Column(String, nullable=True, index=True)

    # Watchdog bookkeeping
    last_scan_at = Column(DateTime, nullable=True)
    last_score = Column(Integer, nullable=True)

    installed_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Subscription(Base):
    """Shopify app subscription, kept in sync by app_subscriptions/update webhooks"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    shopify_shop = Column(String, index=True, nullable=False)
    shopify_charge_id = Column(String, index=True, nullable=True)
    plan = Column(String, default="free")  # free, starter, growth, scale
    status = Column(String, default="active")  # active, cancelled, expired, frozen
    tests_limit = Column(Integer, default=1)
    tests_used = Column(Integer, default=0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
