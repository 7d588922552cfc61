# medtracker/store/models.py
from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)

metadata = MetaData()

medicines = Table(
    "medicines",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(128), nullable=False),
    Column("name", String(200), nullable=False),
    Column("times", JSON, nullable=False),  # ["08:00", "20:00"]
    Column("with_food", Boolean, nullable=False, default=True),
    Column("duration_days", Integer, nullable=False),
    Column("start_date", DateTime, nullable=False),  # UTC naive
    Column("created_at", DateTime, nullable=False),  # UTC naive
    Column("active", Boolean, nullable=False, default=True),
    Column("taken_history", JSON, nullable=False),  # {"2025-5-3": {"08:00": true}}
    Index("ix_medicines_user_created", "user_id", "created_at"),
)
