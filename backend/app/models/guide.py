import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class CommunityGuide(Base):
    """Emergency response guide for one hazard, seeded from the static
    template catalog and then edited by community admins."""

    __tablename__ = "community_guides"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    community_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(50))
    color: Mapped[str | None] = mapped_column(String(100))
    # Hazard key: fire | flood | strong_winds | ...
    guide_type: Mapped[str] = mapped_column(String(30), nullable=False)
    template_id: Mapped[str | None] = mapped_column(String(50))
    # low | medium | high
    risk_level: Mapped[str | None] = mapped_column(String(10))

    # {"before": [...], "during": [...], "after": [...]}
    sections: Mapped[dict] = mapped_column(JSON, default=dict)
    supplies: Mapped[list] = mapped_column(JSON, default=list)
    emergency_contacts: Mapped[list] = mapped_column(JSON, default=list)
    custom_notes: Mapped[str | None] = mapped_column(Text)
    local_resources: Mapped[list | None] = mapped_column(JSON, default=None)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
