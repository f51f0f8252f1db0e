"""Durable key/value rows backing the database wizard draft store.

One row per key (`wizard:<user_id>:draft`, `wizard:<user_id>:completed`).
The payload is the JSON-serialized draft or completion marker; its shape
is owned by app.wizard, not by this table.
"""

from datetime import datetime

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class WizardDraftRow(Base):
    __tablename__ = "wizard_drafts"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
