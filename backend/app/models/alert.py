"""Alert: history record of a multi-channel community broadcast.

One row per send.  Delivery is best-effort: the row records which
channels were requested and how many messages actually went out.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Alert(Base):
    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    community_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # info | warning | danger
    level: Mapped[str] = mapped_column(String(10), default="info")
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    # Only app-channel alerts are shown on the dashboard
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # ── Delivery ─────────────────────────────────────────────
    # admin | team | members | specific
    recipient_group: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_ids: Mapped[list | None] = mapped_column(JSON, default=None)
    recipient_count: Mapped[int] = mapped_column(Integer, default=0)
    sent_via_email: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_via_sms: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_via_app: Mapped[bool] = mapped_column(Boolean, default=False)
    emails_sent: Mapped[int] = mapped_column(Integer, default=0)
    sms_sent: Mapped[int] = mapped_column(Integer, default=0)
    delivery_errors: Mapped[list | None] = mapped_column(JSON, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
