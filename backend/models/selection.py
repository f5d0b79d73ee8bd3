from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.database import Base

SELECTION_STATUSES = ("pending", "completed", "cancelled")
SNAPSHOT_VERSION = 1


class SelectionRecord(Base):
    __tablename__ = "patient_test_selections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    # References patients.id; history outlives a deleted patient.
    patient_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    tests: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    snapshot_version: Mapped[int] = mapped_column(Integer, nullable=False, default=SNAPSHOT_VERSION)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
