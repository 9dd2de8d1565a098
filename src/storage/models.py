"""
Database models for the durable cluster-state store.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class ClusterStateRecord(Base):
    """
    One published cluster-state version.

    A single row per cluster; version is the compare-and-swap guard and the
    JSON columns hold canonical encodings so identical states are stored as
    identical bytes.
    """

    __tablename__ = "cluster_state"

    cluster_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    nodes: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    autoscaling: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
