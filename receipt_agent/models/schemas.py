import logging
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"


class MediaReference(BaseModel):
    """Media attached to an inbound message"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    mime_type: Optional[str] = None


class InboundMessage(BaseModel):
    """A single message from the webhook payload"""
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    sender: Optional[str] = Field(None, alias="from")
    type: Optional[str] = None
    image: Optional[MediaReference] = None
    document: Optional[MediaReference] = None


class ChangeValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: Optional[List[InboundMessage]] = None


class WebhookChange(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: Optional[ChangeValue] = None


class WebhookEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    changes: Optional[List[WebhookChange]] = None


class WebhookEnvelope(BaseModel):
    """WhatsApp Cloud API webhook body; every level may be missing"""
    model_config = ConfigDict(extra="allow")

    object: Optional[str] = None
    entry: Optional[List[WebhookEntry]] = None

    @classmethod
    def parse(cls, payload: Any) -> Optional["WebhookEnvelope"]:
        """Validate a raw body, returning None when it has the wrong shape"""
        if not isinstance(payload, dict):
            return None
        try:
            return cls.model_validate(payload)
        except ValidationError:
            return None

    def first_message(self) -> Optional[InboundMessage]:
        entry = self.entry[0] if self.entry else None
        change = entry.changes[0] if entry and entry.changes else None
        value = change.value if change else None
        return value.messages[0] if value and value.messages else None


class UserContext(BaseModel):
    """User joined with its tenant's subscription status"""
    id: str
    name: Optional[str] = None
    tenant_id: str
    subscription_status: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or "Staff"

    @property
    def is_active(self) -> bool:
        return self.subscription_status == "active"


class ExtractedRecord(BaseModel):
    """Structured receipt data returned by the vision model.

    Known fields are validated one at a time; a value of the wrong type
    leaves that field unset. The model's JSON object is kept untouched as
    the record's metadata.
    """

    merchant_name: Optional[str] = None
    total_amount: Optional[float] = None
    date: Optional[str] = None
    category: Optional[str] = None
    doc_type: Optional[str] = None

    _raw: dict = PrivateAttr(default_factory=dict)

    @classmethod
    def from_raw(cls, data: dict) -> "ExtractedRecord":
        known = {}
        for name, field in cls.model_fields.items():
            if data.get(name) is None:
                continue
            try:
                known[name] = TypeAdapter(field.annotation).validate_python(data[name])
            except ValidationError:
                logger.warning(f"Ignoring {name}={data[name]!r} from model output")

        record = cls(**known)
        record._raw = data
        return record

    @classmethod
    def unreadable(cls) -> "ExtractedRecord":
        return cls.from_raw({"merchant_name": "Unreadable", "total_amount": 0})

    @property
    def amount(self) -> float:
        return self.total_amount or 0

    @property
    def merchant(self) -> str:
        return self.merchant_name or "Unknown"

    def as_metadata(self) -> dict:
        return self._raw


class TransactionCreate(BaseModel):
    """Row written for every processed receipt"""
    tenant_id: str
    user_id: str
    amount: float = 0
    merchant: str = "Unknown"
    status: str = "Pending"
    image_url: str
    category: Optional[str] = None
    extracted_data: dict = Field(default_factory=dict)
