"""Row payloads delivered by the change-feed."""
import re
from typing import Annotated, Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class MessageRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Annotated[str, Field(min_length=1)]
    conversation_id: Annotated[str, Field()]
    sender_id: Annotated[str, Field()]
    content: Optional[str] = None
    message_type: str = "text"
    media_url: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("conversation_id", "sender_id")
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        if not UUID_PATTERN.match(v):
            raise ValueError("Must be a valid UUID")
        return v


class AppointmentRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Annotated[str, Field(min_length=1)]
    patient_id: Annotated[str, Field(min_length=1)]
    status: Optional[str] = None
    provider_id: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None


class NotificationRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Annotated[str, Field(min_length=1)]
    user_id: Annotated[str, Field(min_length=1)]
    title: str = ""
    message: str = ""
    type: str = "system_alert"
    data: Optional[dict[str, Any]] = None
    read: bool = False


class CallRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Annotated[str, Field(min_length=1)]
    caller_id: Annotated[str, Field(min_length=1)]
    receiver_id: Optional[str] = None
    conversation_id: Optional[str] = None
    call_type: str = "voice"
    status: Optional[str] = None
    caller_name: Optional[str] = None
