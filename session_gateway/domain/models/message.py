"""
Outbound Message Models
=======================
Request validation for messages sent through a connected session.
The transport receives the validated message as a plain dict.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from ...core.exceptions import MessageValidationError

MessageType = Literal['text', 'image', 'video', 'audio', 'document', 'location', 'contact']
MEDIA_TYPES = ('image', 'video', 'audio', 'document')


class OutboundMessage(BaseModel):
    to: str = Field(..., min_length=1, description="Recipient phone number or network id")
    type: MessageType
    text: Optional[str] = None
    media_url: Optional[str] = None
    media_base64: Optional[str] = None
    caption: Optional[str] = None
    file_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None
    address: Optional[str] = None
    contact_name: Optional[str] = None
    contact_number: Optional[str] = None

    @model_validator(mode='after')
    def validate_type_fields(self):
        if self.type == 'text' and not self.text:
            raise ValueError("Text is required for text messages")
        if self.type in MEDIA_TYPES:
            if not self.media_url and not self.media_base64:
                raise ValueError("Media URL or base64 is required")
            if self.type == 'document' and not self.file_name:
                raise ValueError("File name is required for documents")
        if self.type == 'location' and (self.latitude is None or self.longitude is None):
            raise ValueError("Latitude and longitude are required for location messages")
        if self.type == 'contact' and (not self.contact_name or not self.contact_number):
            raise ValueError("Contact name and number are required for contact messages")
        return self

    def to_transport(self) -> Dict[str, Any]:
        """Only the fields set for this message type."""
        return self.model_dump(exclude_none=True)


def validate_outbound_message(payload: Dict[str, Any]) -> OutboundMessage:
    """
    Validate a raw request body.

    Raises:
        MessageValidationError: With the first validation problem as message
    """
    if not isinstance(payload, dict):
        raise MessageValidationError("Message body must be a JSON object")
    try:
        return OutboundMessage(**payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", "invalid message")
        if detail.startswith("Value error, "):
            detail = detail[len("Value error, "):]
        raise MessageValidationError(f"{location}: {detail}" if location else detail) from e


class SendResult(BaseModel):
    message_id: str
    timestamp: int = Field(default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000))
    status: Literal['sent', 'failed'] = 'sent'
