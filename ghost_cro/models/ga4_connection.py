"""Google Analytics OAuth connection per dashboard user"""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ghost_cro.models.base import Base


class GA4Connection(Base):
    __tablename__ = "ga4_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)  # naive UTC
    selected_property_id = Column(String, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
