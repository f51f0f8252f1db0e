from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

AlertLevel = Literal["info", "warning", "danger"]
RecipientGroup = Literal["admin", "team", "members", "specific"]


class AlertCreate(BaseModel):
    title: str = Field(max_length=255)
    message: str = Field(max_length=5000)
    level: AlertLevel = "info"
    recipient_group: RecipientGroup = "members"
    specific_member_ids: list[str] = []
    send_email: bool = False
    send_sms: bool = False
    send_app: bool = True

    @model_validator(mode="after")
    def _check(self) -> "AlertCreate":
        if not self.title.strip():
            raise ValueError("Alert title is required")
        if not self.message.strip():
            raise ValueError("Alert message is required")
        if not (self.send_email or self.send_sms or self.send_app):
            raise ValueError("Choose at least one delivery channel")
        if self.recipient_group == "specific" and not self.specific_member_ids:
            raise ValueError("Select at least one member")
        return self


class AlertOut(BaseModel):
    id: str
    community_id: str
    author_id: str
    title: str
    content: str
    level: str
    is_active: bool
    recipient_group: str
    recipient_count: int
    sent_via_email: bool
    sent_via_sms: bool
    sent_via_app: bool
    emails_sent: int
    sms_sent: int
    delivery_errors: list | None
    created_at: datetime

    model_config = {"from_attributes": True}
